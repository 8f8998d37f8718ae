"""
Visualization
Formatted tables, frequency plots, stop maps and the animated stop map.
Every renderer takes the ReportContext explicitly instead of relying on
global plotting state.
"""

from collections import namedtuple
from pathlib import Path

import matplotlib
matplotlib.use('Agg')

import matplotlib.pyplot as plt
import numpy as np
import pandas as pd
from matplotlib.animation import FuncAnimation, PillowWriter
from matplotlib.patches import Patch

from police_stops.config import ANIMATION_FPS, FRAMES_PER_UNIT, STATE_LENGTH, TRANSITION_LENGTH
from police_stops.errors import DataError
from police_stops.stop_metrics import frequency_polygon, require_columns

AnimationFrame = namedtuple('AnimationFrame', ['state', 'previous', 'alpha'])


def _save(fig, output_path, ctx):
    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    fig.tight_layout()
    fig.savefig(output_path, dpi=ctx.dpi, bbox_inches='tight')
    print(f"  Saved: {output_path}")
    return output_path


def _label(fig, ax, ctx, title=None, subtitle=None, caption=None, xlabel=None, ylabel=None):
    """Title (with optional subtitle line), axis labels and a caption in the corner."""
    heading = "\n".join(part for part in (title, subtitle) if part)
    if heading:
        ax.set_title(heading, fontsize=14, fontweight='bold', pad=15)
    if xlabel is not None:
        ax.set_xlabel(xlabel, fontsize=12)
    if ylabel is not None:
        ax.set_ylabel(ylabel, fontsize=12)
    caption = caption if caption is not None else ctx.source_caption
    if caption:
        fig.text(0.99, 0.01, caption, ha='right', va='bottom', fontsize=9, style='italic')


# ============================================================================
# 1. TABLES
# ============================================================================

def format_table(df, percent_columns=(), column_labels=None):
    """String version of df ready for display."""
    df_display = df.copy()

    for col in df_display.columns:
        values = df_display[col]
        if col in percent_columns:
            df_display[col] = values.apply(lambda x: f"{x:.2%}" if pd.notna(x) else "")
        elif pd.api.types.is_bool_dtype(values):
            df_display[col] = values.astype(object).where(values.notna(), "").map(str)
        elif pd.api.types.is_integer_dtype(values):
            df_display[col] = values.apply(lambda x: f"{x:,}" if pd.notna(x) else "")
        elif pd.api.types.is_float_dtype(values):
            df_display[col] = values.apply(lambda x: f"{x:,.2f}" if pd.notna(x) else "")
        else:
            df_display[col] = values.astype(object).where(values.notna(), "").map(str)

    if column_labels:
        df_display = df_display.rename(columns=column_labels)
    return df_display.reset_index(drop=True)


def render_summary_table(df, title, output_path, ctx, percent_columns=(), column_labels=None):
    """Create a formatted table image from a DataFrame and return the displayed text."""
    if len(df) == 0:
        raise DataError(f"Nothing to tabulate for '{title}'")

    df_display = format_table(df, percent_columns=percent_columns, column_labels=column_labels)

    fig, ax = plt.subplots(figsize=(10, max(3, len(df_display) * 0.5 + 1.5)))
    ax.axis('tight')
    ax.axis('off')

    table = ax.table(cellText=df_display.values,
                     colLabels=df_display.columns,
                     cellLoc='left',
                     loc='center',
                     bbox=[0, 0, 1, 1])

    table.auto_set_font_size(False)
    table.set_fontsize(10)
    table.scale(1, 2)

    # Header styling
    for i in range(len(df_display.columns)):
        table[(0, i)].set_facecolor(ctx.header_color)
        table[(0, i)].set_text_props(weight='bold', color='white')

    # Alternating rows
    for i in range(1, len(df_display) + 1):
        for j in range(len(df_display.columns)):
            table[(i, j)].set_facecolor(ctx.stripe_color if i % 2 == 0 else 'white')

    fig.suptitle(title, fontsize=16, fontweight='bold', y=0.98)
    fig.text(0.99, 0.01, ctx.source_caption, ha='right', va='bottom', fontsize=9, style='italic')

    _save(fig, output_path, ctx)
    plt.close(fig)
    return df_display


# ============================================================================
# 2. CHARTS
# ============================================================================

def plot_frequency_polygon(df, value_column, group_column, output_path, ctx, bins=30,
                           title=None, subtitle=None, caption=None, xlabel=None, ylabel='Count'):
    """One frequency polygon per group, all sharing the same bins."""
    require_columns(df, [value_column, group_column])
    data = df[[value_column, group_column]].dropna()
    if data.empty:
        raise DataError(f"No rows with both {value_column} and {group_column}")

    value_range = (float(data[value_column].min()), float(data[value_column].max()))
    if isinstance(data[group_column].dtype, pd.CategoricalDtype):
        groups = [g for g in data[group_column].cat.categories if (data[group_column] == g).any()]
    else:
        groups = sorted(data[group_column].unique())

    fig, ax = plt.subplots(figsize=ctx.figsize)
    for group in groups:
        centers, counts = frequency_polygon(data.loc[data[group_column] == group, value_column],
                                            bins=bins, value_range=value_range)
        ax.plot(centers, counts, label=str(group), linewidth=1.5,
                color=ctx.category_colors.get(group))

    ax.grid(True, alpha=0.3)
    ax.legend(title=group_column.replace('_', ' '), loc='upper right', fontsize=9)
    _label(fig, ax, ctx, title, subtitle, caption, xlabel or value_column.replace('_', ' '), ylabel)

    _save(fig, output_path, ctx)
    plt.close(fig)
    return output_path


# ============================================================================
# 3. MAPS
# ============================================================================

def _map_extent(ax, *frames, margin=0.02):
    """Fit the axes to the combined bounds of every layer."""
    bounds = np.array([frame.total_bounds for frame in frames if len(frame) > 0])
    minx, miny = bounds[:, 0].min(), bounds[:, 1].min()
    maxx, maxy = bounds[:, 2].max(), bounds[:, 3].max()
    pad_x = (maxx - minx) * margin or margin
    pad_y = (maxy - miny) * margin or margin
    ax.set_xlim(minx - pad_x, maxx + pad_x)
    ax.set_ylim(miny - pad_y, maxy + pad_y)


def _draw_boundaries(boundaries, ax, ctx):
    boundaries.plot(ax=ax, facecolor=ctx.boundary_facecolor,
                    edgecolor=ctx.boundary_edgecolor, linewidth=0.6)


def plot_stops_on_boundaries(boundaries, points, output_path, ctx, color_column=None,
                             colors=None, title=None, subtitle=None, caption=None,
                             xlabel='Longitude', ylabel='Latitude', marker_size=4, close=True):
    """
    Scatter stops over polygon boundaries.

    Points are reprojected to the boundary CRS so both layers share
    coordinates, and the axes cover both layers. With close=False the figure
    stays open and (fig, ax) can be inspected by the caller.
    """
    points = points.to_crs(boundaries.crs)

    fig, ax = plt.subplots(figsize=ctx.map_figsize)
    _draw_boundaries(boundaries, ax, ctx)

    if color_column is None:
        ax.scatter(points.geometry.x, points.geometry.y, s=marker_size,
                   color=ctx.point_color, alpha=0.6, edgecolors='none')
    else:
        colors = colors or ctx.category_colors
        legend_elements = []
        for value in pd.unique(points[color_column].dropna()):
            subset = points[points[color_column] == value]
            color = colors.get(value, ctx.point_color)
            ax.scatter(subset.geometry.x, subset.geometry.y, s=marker_size,
                       color=color, alpha=0.6, edgecolors='none')
            legend_elements.append(Patch(facecolor=color, label=str(value)))
        ax.legend(handles=legend_elements, loc='upper right', fontsize=9,
                  title=color_column.replace('_', ' '), frameon=True)

    _map_extent(ax, boundaries, points)
    _label(fig, ax, ctx, title, subtitle, caption, xlabel, ylabel)

    _save(fig, output_path, ctx)
    if close:
        plt.close(fig)
    return fig, ax


def plot_region_counts(regions, column, output_path, ctx, title=None, subtitle=None,
                       caption=None, legend_label='Stops'):
    """Choropleth of a numeric region column."""
    require_columns(regions, [column])

    fig, ax = plt.subplots(figsize=ctx.map_figsize)
    regions.plot(
        ax=ax,
        column=column,
        cmap='Reds',
        legend=True,
        legend_kwds={
            'label': legend_label,
            'shrink': 0.8,
            'orientation': 'vertical',
            'pad': 0.02
        },
        edgecolor='gray',
        linewidth=0.3,
        missing_kwds={'color': 'lightgray', 'label': 'No data'}
    )
    ax.axis('off')
    _label(fig, ax, ctx, title, subtitle, caption)

    _save(fig, output_path, ctx)
    plt.close(fig)
    return output_path


# ============================================================================
# 4. ANIMATION
# ============================================================================

def cubic_in_out(t):
    """Cubic ease-in-out on [0, 1]."""
    t = min(max(t, 0.0), 1.0)
    if t < 0.5:
        return 4 * t ** 3
    return 1 - (-2 * t + 2) ** 3 / 2


def animation_schedule(states, transition_frames=TRANSITION_LENGTH * FRAMES_PER_UNIT,
                       hold_frames=STATE_LENGTH * FRAMES_PER_UNIT, easing=cubic_in_out):
    """
    Frame plan for revealing states one at a time.

    Each state fades in over transition_frames (the previous state fading
    out, wrapping around from the last state) and is then held for
    hold_frames at full opacity.
    """
    n_states = len(states)
    if n_states == 0:
        raise DataError("An animation needs at least one state")

    frames = []
    for i in range(n_states):
        previous = (i - 1) % n_states if n_states > 1 else None
        for k in range(1, transition_frames + 1):
            frames.append(AnimationFrame(i, previous, easing(k / transition_frames)))
        for _ in range(hold_frames):
            frames.append(AnimationFrame(i, None, 1.0))
    return frames


def animate_stops_by_category(boundaries, points, category_column, output_path, ctx,
                              states=None, transition_frames=TRANSITION_LENGTH * FRAMES_PER_UNIT,
                              hold_frames=STATE_LENGTH * FRAMES_PER_UNIT, easing=cubic_in_out,
                              fps=ANIMATION_FPS, title=None, subtitle='{state}', caption=None,
                              xlabel='Longitude', ylabel='Latitude', marker_size=4):
    """
    Animated map revealing the stops of one category state at a time.
    `subtitle` is formatted with the current state. Written as a GIF.
    """
    require_columns(points, [category_column])
    points = points.to_crs(boundaries.crs)
    if states is None:
        category = points[category_column]
        if isinstance(category.dtype, pd.CategoricalDtype):
            states = [s for s in category.cat.categories if (category == s).any()]
        else:
            states = sorted(category.dropna().unique())
    schedule = animation_schedule(states, transition_frames, hold_frames, easing)

    fig, ax = plt.subplots(figsize=ctx.map_figsize)
    _draw_boundaries(boundaries, ax, ctx)

    layers = []
    for state in states:
        subset = points[points[category_column] == state]
        layers.append(ax.scatter(subset.geometry.x, subset.geometry.y, s=marker_size,
                                 color=ctx.category_colors.get(state, ctx.point_color),
                                 alpha=0.0, edgecolors='none'))

    _map_extent(ax, boundaries, points)
    _label(fig, ax, ctx, title, subtitle.format(state=states[0]), caption, xlabel, ylabel)
    heading = ax.title

    def update(frame_index):
        frame = schedule[frame_index]
        for layer in layers:
            layer.set_alpha(0.0)
        if frame.previous is not None and frame.previous != frame.state:
            layers[frame.previous].set_alpha(1.0 - frame.alpha)
        layers[frame.state].set_alpha(frame.alpha)
        current = subtitle.format(state=states[frame.state])
        heading.set_text(f"{title}\n{current}" if title else current)
        return layers + [heading]

    anim = FuncAnimation(fig, update, frames=len(schedule), interval=1000 / fps, blit=False)

    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    anim.save(output_path, writer=PillowWriter(fps=fps), dpi=min(ctx.dpi, 100))
    plt.close(fig)
    print(f"  Saved: {output_path} ({len(schedule)} frames)")
    return schedule
