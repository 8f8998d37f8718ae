"""
Owensboro, KY Stop Analysis
Most common violations, citation rates by race, and an animated map of
stops across the police zones revealed one race at a time.
"""

import pandas as pd

from police_stops.config import (
    FRAMES_PER_UNIT,
    OWENSBORO_SHAPEFILES_URL,
    OWENSBORO_STOPS_URL,
    RACE_PRIORITY,
    STATE_LENGTH,
    TRANSITION_LENGTH,
)
from police_stops.data_loading import load_boundaries, load_stops
from police_stops.errors import DataError
from police_stops.stop_metrics import (
    equals,
    minimum_value,
    order_by_priority,
    outcome_rate_by_group,
    require_columns,
    require_rows,
    stops_to_points,
)
from police_stops.visualization import animate_stops_by_category, cubic_in_out, render_summary_table


def count_stops_by_violation(stops, ctx, top=10):
    """The `top` most frequent violations with their share of all stops."""
    require_columns(stops, ['violation'])
    counts = stops['violation'].dropna().value_counts().head(top)
    if counts.empty:
        raise DataError("No stops have a recorded violation")

    violations = pd.DataFrame({
        'violation': counts.index,
        'stops': counts.values,
        'share': counts.values / len(stops),
    })
    render_summary_table(
        violations,
        f"Top {len(violations)} Violations in Owensboro Stops",
        ctx.output_dir / "owensboro_top_violations.png",
        ctx,
        percent_columns=['share'],
        column_labels={'violation': 'Violation', 'stops': 'Stops', 'share': 'Share of Stops'}
    )
    return violations


def citation_rate_table(stops, ctx):
    ordered = order_by_priority(stops, 'subject_race', RACE_PRIORITY)
    rates = outcome_rate_by_group(ordered, ['subject_race'], 'citation_issued', count_name='citations')
    rates = rates.sort_values('subject_race').reset_index(drop=True)

    rates.to_csv(ctx.output_dir / "owensboro_citation_rate_by_race.csv", index=False)
    render_summary_table(
        rates[['subject_race', 'stops', 'citations', 'rate']],
        "Owensboro Citation Rate by Race",
        ctx.output_dir / "owensboro_citation_rate_by_race.png",
        ctx,
        percent_columns=['rate'],
        column_labels={
            'subject_race': 'Race',
            'stops': 'Stops',
            'citations': 'Citations',
            'rate': 'Citation Rate',
        }
    )
    return rates


def youngest_arrested_age(stops):
    return minimum_value(stops, 'subject_age', equals('arrest_made', True))


def animate_stops_by_race(stops, zones, ctx):
    """
    Stops over the police zones, one race at a time: two units of eased
    transition then one unit holding each state.
    """
    ordered = order_by_priority(stops, 'subject_race', RACE_PRIORITY)
    points = stops_to_points(ordered)
    return animate_stops_by_category(
        zones,
        points,
        'subject_race',
        ctx.output_dir / "owensboro_stops_by_race.gif",
        ctx,
        transition_frames=TRANSITION_LENGTH * FRAMES_PER_UNIT,
        hold_frames=STATE_LENGTH * FRAMES_PER_UNIT,
        easing=cubic_in_out,
        title="Owensboro Police Stops",
        subtitle="Subject race: {state}",
    )


# ============================================================================
# MAIN EXECUTION
# ============================================================================

def run(ctx):
    """Download the Owensboro inputs and answer each question in turn."""
    print("=" * 70)
    print("OWENSBORO, KY")
    print("=" * 70)

    print("\n1. Loading data...")
    stops = load_stops(OWENSBORO_STOPS_URL, ctx)
    require_rows(stops, "Owensboro stop table")
    zones = load_boundaries(OWENSBORO_SHAPEFILES_URL, ctx)

    print("\n2. Most common violations...")
    violations = count_stops_by_violation(stops, ctx)
    print(violations.to_string(index=False))

    print("\n3. Citation rate by race...")
    citations = citation_rate_table(stops, ctx)
    print(citations.to_string(index=False))

    print("\n4. Youngest person arrested...")
    youngest = youngest_arrested_age(stops)
    print(f"  Age {youngest:.0f}")

    print("\n5. Animated stop map...")
    schedule = animate_stops_by_race(stops, zones, ctx)

    return {
        'stops': len(stops),
        'violations': violations,
        'citation_rates': citations,
        'youngest_arrested_age': youngest,
        'animation_frames': len(schedule),
    }
