"""
Hartford, CT Stop Analysis
Arrest counts, arrest rates by race and sex, ages of the people stopped
and where the stops happened across Hartford's neighborhoods.
"""

import numpy as np

from police_stops.config import HARTFORD_SHAPEFILES_URL, HARTFORD_STOPS_URL, RACE_PRIORITY
from police_stops.data_loading import load_boundaries, load_stops
from police_stops.stop_metrics import (
    arrest_rate_by_group,
    count_points_by_region,
    count_where,
    earliest_date,
    equals,
    format_long_date,
    order_by_priority,
    require_columns,
    require_rows,
    stops_to_points,
)
from police_stops.visualization import (
    plot_frequency_polygon,
    plot_region_counts,
    plot_stops_on_boundaries,
    render_summary_table,
)

OUTCOME_COLORS = {'arrest': '#e74c3c', 'no arrest': '#95a5a6'}


# ============================================================================
# 1. ARRESTS
# ============================================================================

def count_arrests(stops):
    """Number of stops that ended in an arrest."""
    return count_where(stops, equals('arrest_made', True))


def arrest_rate_table(stops, ctx):
    """
    Arrest rate for every race x sex combination, races in priority order
    with other/unknown last. Saved as a table image and a CSV.
    """
    ordered = order_by_priority(stops, 'subject_race', RACE_PRIORITY)
    rates = arrest_rate_by_group(ordered, ['subject_race', 'subject_sex'])
    rates = rates.sort_values(['subject_race', 'subject_sex']).reset_index(drop=True)

    rates.to_csv(ctx.output_dir / "hartford_arrest_rate_by_race_sex.csv", index=False)
    render_summary_table(
        rates[['subject_race', 'subject_sex', 'stops', 'arrests', 'rate']],
        "Hartford Arrest Rate by Race and Sex",
        ctx.output_dir / "hartford_arrest_rate_by_race_sex.png",
        ctx,
        percent_columns=['rate'],
        column_labels={
            'subject_race': 'Race',
            'subject_sex': 'Sex',
            'stops': 'Stops',
            'arrests': 'Arrests',
            'rate': 'Arrest Rate',
        }
    )
    return rates


def first_south_end_female_arrest(stops):
    """Date of the first arrest of a woman in the South End, e.g. 'March 2, 2014'."""
    first = earliest_date(
        stops,
        equals('district', 'SOUTH END'),
        equals('subject_sex', 'female'),
        equals('arrest_made', True),
    )
    return format_long_date(first)


# ============================================================================
# 2. AGES
# ============================================================================

def plot_age_distribution(stops, ctx, bins=30):
    ordered = order_by_priority(stops, 'subject_race', RACE_PRIORITY)
    return plot_frequency_polygon(
        ordered,
        'subject_age',
        'subject_race',
        ctx.output_dir / "hartford_age_distribution.png",
        ctx,
        bins=bins,
        title="Ages of People Stopped in Hartford",
        subtitle="Frequency polygon by subject race",
        xlabel="Subject age",
        ylabel="Stops",
    )


# ============================================================================
# 3. MAPS
# ============================================================================

def plot_stop_map(stops, neighborhoods, ctx):
    """Stops with coordinates over the neighborhood boundaries, arrests highlighted."""
    require_columns(stops, ['arrest_made'])
    points = stops_to_points(stops)
    points['outcome'] = np.where(points['arrest_made'].fillna(False).astype(bool),
                                 'arrest', 'no arrest')
    # Arrests drawn last so they sit on top
    points = points.sort_values('outcome', ascending=False)

    plot_stops_on_boundaries(
        neighborhoods,
        points,
        ctx.output_dir / "hartford_stop_map.png",
        ctx,
        color_column='outcome',
        colors=OUTCOME_COLORS,
        title="Hartford Police Stops",
        subtitle=f"{len(points):,} stops with recorded coordinates",
    )
    return points


def plot_stops_per_neighborhood(stops, neighborhoods, ctx):
    points = stops_to_points(stops)
    counts = count_points_by_region(points, neighborhoods)
    plot_region_counts(
        counts,
        'stops',
        ctx.output_dir / "hartford_stops_per_neighborhood.png",
        ctx,
        title="Stops per Neighborhood",
        subtitle="Hartford, CT",
    )
    return counts


# ============================================================================
# 4. MAIN EXECUTION
# ============================================================================

def run(ctx):
    """Download the Hartford inputs and answer each question in turn."""
    print("=" * 70)
    print("HARTFORD, CT")
    print("=" * 70)

    print("\n1. Loading data...")
    stops = load_stops(HARTFORD_STOPS_URL, ctx)
    require_rows(stops, "Hartford stop table")
    neighborhoods = load_boundaries(HARTFORD_SHAPEFILES_URL, ctx)

    print("\n2. Counting arrests...")
    arrests = count_arrests(stops)
    print(f"  Arrests: {arrests:,} of {len(stops):,} stops ({arrests / len(stops) * 100:.1f}%)")

    print("\n3. Arrest rate by race and sex...")
    rates = arrest_rate_table(stops, ctx)
    print(rates.to_string(index=False))

    print("\n4. First arrest of a woman in the South End...")
    first_arrest = first_south_end_female_arrest(stops)
    print(f"  {first_arrest}")

    print("\n5. Age distribution...")
    plot_age_distribution(stops, ctx)

    print("\n6. Maps...")
    plot_stop_map(stops, neighborhoods, ctx)
    plot_stops_per_neighborhood(stops, neighborhoods, ctx)

    return {
        'stops': len(stops),
        'arrests': arrests,
        'arrest_rates': rates,
        'first_south_end_female_arrest': first_arrest,
    }
