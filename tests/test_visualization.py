"""
Tests for the table, chart, map and animation renderers.
"""

from unittest.mock import patch

import geopandas as gpd
import matplotlib.pyplot as plt
import pandas as pd
import pytest
from PIL import Image
from shapely.geometry import Point, box

from police_stops.errors import DataError
from police_stops.stop_metrics import arrest_rate_by_group
from police_stops.visualization import (
    animate_stops_by_category,
    animation_schedule,
    cubic_in_out,
    format_table,
    plot_frequency_polygon,
    plot_region_counts,
    plot_stops_on_boundaries,
    render_summary_table,
)


# ============================================================================
# TABLES
# ============================================================================

def test_format_table_formats_declared_percentages(stops):
    rates = arrest_rate_by_group(stops, ['subject_race'])

    display = format_table(rates, percent_columns=['rate'], column_labels={'rate': 'Arrest Rate'})

    assert 'Arrest Rate' in display.columns
    assert display['Arrest Rate'].tolist() == ['40.00%', '40.00%']
    assert display['stops'].tolist() == ['5', '5']


def test_format_table_blanks_missing_values():
    frame = pd.DataFrame({'district': ['NORTH END', None], 'share': [0.5, None]})

    display = format_table(frame, percent_columns=['share'])

    assert display['district'].tolist() == ['NORTH END', '']
    assert display['share'].tolist() == ['50.00%', '']


def test_render_summary_table_writes_image(stops, ctx):
    rates = arrest_rate_by_group(stops, ['subject_race', 'subject_sex'])
    output_path = ctx.output_dir / "rates.png"

    display = render_summary_table(rates, "Arrest Rate", output_path, ctx, percent_columns=['rate'])

    assert output_path.exists()
    assert len(display) == 4
    assert display['rate'].str.endswith('%').all()


def test_render_empty_table_raises(ctx):
    with pytest.raises(DataError):
        render_summary_table(pd.DataFrame(columns=['a']), "Empty", ctx.output_dir / "empty.png", ctx)


# ============================================================================
# CHARTS AND MAPS
# ============================================================================

def test_plot_frequency_polygon_writes_image(stops, ctx):
    output_path = ctx.output_dir / "ages.png"

    plot_frequency_polygon(stops, 'subject_age', 'subject_race', output_path, ctx, bins=5,
                           title="Ages", subtitle="By race")

    assert output_path.exists()


def test_point_inside_polygon_is_drawn_inside_its_extent(ctx):
    """One polygon and one point inside it: the point lies within the polygon's drawn extent."""
    boundaries = gpd.GeoDataFrame({'zone': ['A']}, geometry=[box(-87.2, 37.7, -87.0, 37.8)], crs="EPSG:4326")
    points = gpd.GeoDataFrame({'subject_race': ['white']}, geometry=[Point(-87.1, 37.75)], crs="EPSG:4326")

    fig, ax = plot_stops_on_boundaries(boundaries, points, ctx.output_dir / "overlay.png", ctx,
                                       title="Overlay", close=False)
    try:
        minx, miny, maxx, maxy = boundaries.total_bounds
        px, py = points.geometry.iloc[0].x, points.geometry.iloc[0].y
        assert minx <= px <= maxx and miny <= py <= maxy

        xlim, ylim = ax.get_xlim(), ax.get_ylim()
        assert xlim[0] <= minx and maxx <= xlim[1]
        assert ylim[0] <= miny and maxy <= ylim[1]

        scatter_offsets = ax.collections[-1].get_offsets()
        assert len(scatter_offsets) == 1
        sx, sy = scatter_offsets[0]
        assert minx <= sx <= maxx and miny <= sy <= maxy
    finally:
        plt.close(fig)


def test_points_are_reprojected_to_boundary_crs(ctx):
    boundaries = gpd.GeoDataFrame(geometry=[box(-72.72, 41.72, -72.62, 41.80)], crs="EPSG:4326").to_crs("EPSG:3857")
    points = gpd.GeoDataFrame(geometry=[Point(-72.68, 41.76)], crs="EPSG:4326")

    fig, ax = plot_stops_on_boundaries(boundaries, points, ctx.output_dir / "projected.png", ctx, close=False)
    try:
        sx, sy = ax.collections[-1].get_offsets()[0]
        assert boundaries.geometry.iloc[0].contains(Point(sx, sy))
    finally:
        plt.close(fig)


def test_colored_overlay_writes_image(stops, neighborhoods, ctx):
    from police_stops.stop_metrics import stops_to_points

    output_path = ctx.output_dir / "colored.png"
    plot_stops_on_boundaries(neighborhoods, stops_to_points(stops), output_path, ctx,
                             color_column='subject_race', title="Stops")

    assert output_path.exists()


def test_plot_region_counts_writes_image(neighborhoods, ctx):
    regions = neighborhoods.assign(stops=[5, 4])
    output_path = ctx.output_dir / "regions.png"

    plot_region_counts(regions, 'stops', output_path, ctx, title="Stops per region")

    assert output_path.exists()


# ============================================================================
# ANIMATION
# ============================================================================

def test_cubic_in_out_endpoints_and_midpoint():
    assert cubic_in_out(0.0) == 0.0
    assert cubic_in_out(0.5) == pytest.approx(0.5)
    assert cubic_in_out(1.0) == 1.0
    assert cubic_in_out(0.25) < 0.25
    assert cubic_in_out(0.75) > 0.75


def test_animation_schedule_transitions_then_holds():
    schedule = animation_schedule(['white', 'black', 'hispanic'], transition_frames=4, hold_frames=2)

    assert len(schedule) == 3 * (4 + 2)

    first_state = schedule[:6]
    assert [f.state for f in first_state] == [0] * 6
    alphas = [f.alpha for f in first_state[:4]]
    assert alphas == sorted(alphas)
    assert alphas[-1] == 1.0
    assert all(f.alpha == 1.0 and f.previous is None for f in first_state[4:])

    # the second state fades in while the first fades out
    assert schedule[6].state == 1 and schedule[6].previous == 0
    # the first state wraps around from the last
    assert schedule[0].previous == 2


def test_animation_schedule_needs_states():
    with pytest.raises(DataError):
        animation_schedule([])


def test_animate_stops_by_category_writes_gif(stops, neighborhoods, ctx):
    from police_stops.stop_metrics import stops_to_points

    output_path = ctx.output_dir / "stops.gif"
    schedule = animate_stops_by_category(neighborhoods, stops_to_points(stops), 'subject_race',
                                         output_path, ctx, transition_frames=2, hold_frames=1,
                                         title="Stops", subtitle="Race: {state}")

    assert output_path.exists()
    assert len(schedule) == 2 * 3
    # identical hold frames may be merged by the GIF encoder
    with Image.open(output_path) as gif:
        assert 1 < gif.n_frames <= len(schedule)


def test_subtitle_without_title_is_shown(ctx):
    from police_stops.visualization import _label

    fig, ax = plt.subplots()
    try:
        _label(fig, ax, ctx, subtitle="Subject race: white")
        assert ax.get_title() == "Subject race: white"
    finally:
        plt.close(fig)


def test_save_lays_out_the_given_figure(ctx):
    """Layout is applied to the figure being saved, not whichever figure pyplot holds as current."""
    from police_stops.visualization import _save

    fig, ax = plt.subplots()
    other = plt.figure()
    try:
        with patch.object(fig, 'tight_layout') as fig_layout, \
                patch.object(other, 'tight_layout') as other_layout:
            _save(fig, ctx.output_dir / "layout.png", ctx)
        fig_layout.assert_called_once()
        other_layout.assert_not_called()
        assert (ctx.output_dir / "layout.png").exists()
    finally:
        plt.close(fig)
        plt.close(other)
