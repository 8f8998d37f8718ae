"""
Stop Metrics
Row predicates, grouped outcome rates and the other summaries the report needs.
Every function takes a DataFrame and returns a new object; inputs are never modified.
"""

import geopandas as gpd
import numpy as np
import pandas as pd

from police_stops.config import DATE_COLUMN, LAT_COLUMN, LNG_COLUMN, OTHER_RACE, POINT_CRS
from police_stops.errors import DataError


def require_columns(df, columns):
    """Raise DataError naming any of columns that df lacks."""
    missing = [c for c in columns if c not in df.columns]
    if missing:
        raise DataError(f"DataFrame missing columns: {missing}")


def require_rows(df, what="stop table"):
    """Raise DataError when df has no rows."""
    if len(df) == 0:
        raise DataError(f"The {what} has no rows")


# ============================================================================
# 1. PREDICATES
# ============================================================================
# A predicate maps a DataFrame to a boolean mask aligned with its index.
# Absent values never satisfy a comparison; only is_missing matches them.

def _as_mask(result):
    return result.fillna(False).astype(bool)


def equals(column, value):
    def predicate(df):
        require_columns(df, [column])
        return _as_mask(df[column] == value)
    predicate.__name__ = f"{column} == {value!r}"
    return predicate


def between(column, low=None, high=None):
    """Inclusive range check; either bound may be left open."""
    def predicate(df):
        require_columns(df, [column])
        mask = df[column].notna()
        if low is not None:
            mask &= _as_mask(df[column] >= low)
        if high is not None:
            mask &= _as_mask(df[column] <= high)
        return _as_mask(mask)
    predicate.__name__ = f"{low!r} <= {column} <= {high!r}"
    return predicate


def is_missing(column):
    def predicate(df):
        require_columns(df, [column])
        return df[column].isna()
    predicate.__name__ = f"{column} is missing"
    return predicate


def is_present(column):
    def predicate(df):
        require_columns(df, [column])
        return df[column].notna()
    predicate.__name__ = f"{column} is present"
    return predicate


def filter_stops(df, *predicates):
    """Keep the rows for which every predicate holds."""
    mask = pd.Series(True, index=df.index)
    for predicate in predicates:
        mask &= predicate(df)
    return df.loc[mask]


def count_where(df, *predicates):
    return int(len(filter_stops(df, *predicates)))


# ============================================================================
# 2. GROUPED RATES
# ============================================================================

def fill_missing_outcome_counts(counts, outcomes=(True, False)):
    """
    NA-to-zero policy for outcome counts.

    A partition that never shows one of the outcomes has no count for it
    after unstacking; that count is zero, not unknown, so it must not
    propagate into a ratio.
    """
    return counts.reindex(columns=list(outcomes)).fillna(0).astype(int)


def outcome_rate_by_group(df, keys, outcome, count_name=None):
    """
    Share of stops with a true outcome for every distinct tuple of keys.

    Rows whose outcome is absent are not observations. Partitions with no
    true and no false outcome are dropped rather than given 0/0.
    Returns keys, stops, <count_name>, non_<count_name> and rate.
    """
    keys = list(keys)
    require_columns(df, keys + [outcome])
    count_name = count_name or outcome

    columns = keys + ['stops', count_name, f"non_{count_name}", 'rate']

    observed = df.loc[df[outcome].notna(), keys + [outcome]].copy()
    if observed.empty:
        return pd.DataFrame(columns=columns)
    observed[outcome] = observed[outcome].astype(bool)

    counts = observed.groupby(keys + [outcome], observed=True).size().unstack(outcome)
    counts = fill_missing_outcome_counts(counts, outcomes=(True, False))

    summary = pd.DataFrame({
        count_name: counts[True],
        f"non_{count_name}": counts[False],
    })
    summary['stops'] = summary[count_name] + summary[f"non_{count_name}"]
    summary = summary[summary['stops'] > 0].copy()
    summary['rate'] = summary[count_name] / summary['stops']

    summary = summary.reset_index()
    return summary[columns]


def arrest_rate_by_group(df, keys):
    return outcome_rate_by_group(df, keys, 'arrest_made', count_name='arrests')


# ============================================================================
# 3. MINIMA AND DATES
# ============================================================================

def earliest_date(df, *predicates, column=DATE_COLUMN):
    """Minimum date among the rows passing predicates."""
    require_columns(df, [column])
    matches = filter_stops(df, *predicates)
    dates = matches[column].dropna()
    if dates.empty:
        raise DataError(f"No rows with a {column} matched {[p.__name__ for p in predicates]}")
    return dates.min()


def minimum_value(df, column, *predicates):
    require_columns(df, [column])
    values = filter_stops(df, *predicates)[column].dropna()
    if values.empty:
        raise DataError(f"Cannot take the minimum of {column} over zero rows")
    return values.min()


def format_long_date(timestamp):
    """Spell a date out the way the report prints it, e.g. 'March 2, 2014'."""
    timestamp = pd.Timestamp(timestamp)
    return f"{timestamp:%B} {timestamp.day}, {timestamp.year}"


# ============================================================================
# 4. ORDERING
# ============================================================================

def order_by_priority(df, column, priority, other=OTHER_RACE):
    """
    Turn column into an ordered categorical following priority.
    Values outside the list become `other`, which is always the last category.
    Absent values stay absent.
    """
    require_columns(df, [column])
    categories = [c for c in priority if c != other] + [other]
    out = df.copy()
    values = out[column]
    folded = values.where(values.isna() | values.isin(categories), other)
    out[column] = pd.Categorical(folded, categories=categories, ordered=True)
    return out


# ============================================================================
# 5. DISTRIBUTIONS
# ============================================================================

def frequency_polygon(values, bins=30, value_range=None):
    """
    Bin centers and counts for a frequency polygon.
    An empty bin is added on each side so the line starts and ends at zero.
    """
    values = pd.Series(values).dropna().astype(float)
    if values.empty:
        raise DataError("Cannot bin zero values")
    counts, edges = np.histogram(values, bins=bins, range=value_range)
    width = edges[1] - edges[0]
    centers = (edges[:-1] + edges[1:]) / 2
    centers = np.concatenate([[centers[0] - width], centers, [centers[-1] + width]])
    counts = np.concatenate([[0], counts, [0]])
    return centers, counts


# ============================================================================
# 6. SPATIAL
# ============================================================================

def stops_to_points(df, lng_col=LNG_COLUMN, lat_col=LAT_COLUMN, crs=POINT_CRS):
    """Point GeoDataFrame of the stops that have both coordinates."""
    located = filter_stops(df, is_present(lng_col), is_present(lat_col))
    if located.empty:
        raise DataError(f"No stops have both {lat_col} and {lng_col}")
    return gpd.GeoDataFrame(
        located.copy(),
        geometry=gpd.points_from_xy(located[lng_col], located[lat_col]),
        crs=crs
    )


def count_points_by_region(points, regions):
    """
    Copy of regions with a `stops` column: points in each polygon, 0 if none.
    A point on a shared edge belongs to the first region (by row order) that touches it,
    so every located point is counted exactly once.
    """
    regions = regions.reset_index(drop=True)
    points = points.to_crs(regions.crs)
    joined = gpd.sjoin(points[['geometry']], regions[['geometry']],
                       how='inner', predicate='intersects')
    joined = joined.sort_values('index_right', kind='stable')
    joined = joined[~joined.index.duplicated(keep='first')]
    counts = joined.groupby('index_right').size()

    out = regions.copy()
    out['stops'] = counts.reindex(out.index, fill_value=0).astype(int)
    return out
