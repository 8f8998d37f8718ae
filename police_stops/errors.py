"""Failures surfaced by the report pipeline. None of them are recovered from."""


class PoliceStopsError(Exception):
    """Base class for report failures."""


class NetworkError(PoliceStopsError):
    """A download could not be completed."""


class FormatError(PoliceStopsError):
    """An archive, CSV or shapefile could not be decoded."""


class DataError(PoliceStopsError):
    """A required column is missing or a step received no rows."""
