"""
Police Stop Report
Hartford, CT and Owensboro, KY stops from the Stanford Open Policing Project.
"""

from police_stops.config import ReportContext
from police_stops.errors import DataError, FormatError, NetworkError, PoliceStopsError

__all__ = [
    "ReportContext",
    "PoliceStopsError",
    "NetworkError",
    "FormatError",
    "DataError",
]
