"""
Plots of batch cost results.

Requires the 'plot' optional dependency: pip install -e ".[plot]"

Usage:
    from job_cost_meter.plot import plot_cost_distribution

    result = BatchRunner(config).run(source.records(["-S", "2024-01-01"]))
    plot_cost_distribution(result, save_path="costs.png", show=False)
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional, Tuple, Union

try:
    import matplotlib.pyplot as plt
    import numpy as np
    HAS_MATPLOTLIB = True
except ImportError:
    HAS_MATPLOTLIB = False


COLORS = {
    'cost': '#1a5276',
    'cumulative': '#e67e22',
    'rate': '#5dade2',
}


@dataclass
class PlotStyle:
    """Style settings shared by all plots.

    Override individual fields to customize: ``PlotStyle(dpi=150)``.
    """

    bar_alpha: float = 0.8
    bar_edgecolor: str = 'black'
    bar_linewidth: float = 0.5

    line_width: float = 1.5
    line_alpha: float = 0.9

    grid: bool = True
    grid_alpha: float = 0.3
    grid_linestyle: str = '--'
    grid_color: str = '#cccccc'

    dpi: int = 150
    facecolor: str = 'white'

    title_fontsize: int = 13
    axis_label_fontsize: int = 11
    tick_fontsize: int = 10

    hide_top_spine: bool = True
    spine_color: str = '#cccccc'


DEFAULT_STYLE = PlotStyle()


def _apply_common_style(ax, style: PlotStyle):
    """Apply shared style settings (grid, spines, background) to an axes."""
    ax.set_facecolor(style.facecolor)
    if style.grid:
        ax.grid(True, axis='y', alpha=style.grid_alpha,
                linestyle=style.grid_linestyle, color=style.grid_color)
        ax.set_axisbelow(True)
    if style.hide_top_spine:
        ax.spines['top'].set_visible(False)
    for side in ('left', 'bottom', 'right'):
        ax.spines[side].set_color(style.spine_color)


def _check_matplotlib():
    """Raise helpful error if matplotlib is not installed."""
    if not HAS_MATPLOTLIB:
        raise ImportError(
            "Plotting requires matplotlib. Install with: pip install -e '.[plot]'"
        )


def _finish(fig, save_path, show: bool, style: PlotStyle):
    plt.tight_layout()
    if save_path:
        fig.savefig(save_path, dpi=style.dpi, bbox_inches='tight',
                    facecolor=style.facecolor)
    if show:
        plt.show()
    else:
        plt.close(fig)
    return fig


def plot_cost_distribution(
    result,
    save_path: Optional[Union[str, Path]] = None,
    figsize: Tuple[float, float] = (10, 6),
    show: bool = True,
    title: Optional[str] = None,
    style: Optional[PlotStyle] = None,
) -> Optional[Any]:
    """
    Plot the per-job total cost, sorted ascending, with the cumulative share
    of the overall sum on a second axis.

    Args:
        result: BatchResult from a batch run
        save_path: Optional path to save the figure
        figsize: Figure size (width, height) in inches
        show: Whether to display the plot
        title: Optional custom title
        style: Optional PlotStyle

    Returns:
        matplotlib Figure object, or None if there are no jobs
    """
    _check_matplotlib()
    style = style or DEFAULT_STYLE

    costs = np.array(sorted(float(r.total_cost) for r in result.rows))
    if costs.size == 0:
        return None

    fig, ax = plt.subplots(figsize=figsize)
    fig.patch.set_facecolor(style.facecolor)
    x = np.arange(1, costs.size + 1)

    ax.bar(x, costs, color=COLORS['cost'], alpha=style.bar_alpha,
           edgecolor=style.bar_edgecolor, linewidth=style.bar_linewidth)
    ax.set_xlabel('Jobs (sorted by cost)', fontsize=style.axis_label_fontsize)
    ax.set_ylabel(f'Total cost ({result.currency})', fontsize=style.axis_label_fontsize)
    _apply_common_style(ax, style)

    total = costs.sum()
    if total > 0:
        ax2 = ax.twinx()
        ax2.plot(x, np.cumsum(costs) / total * 100, color=COLORS['cumulative'],
                 linewidth=style.line_width, alpha=style.line_alpha)
        ax2.set_ylim(0, 100)
        ax2.set_ylabel('Cumulative share of cost (%)', fontsize=style.axis_label_fontsize)
        ax2.spines['top'].set_visible(False)

    if title is None:
        title = f"Job cost distribution ({costs.size} jobs)"
    ax.set_title(title, fontsize=style.title_fontsize, fontweight='bold', color='#333333')

    return _finish(fig, save_path, show, style)


def plot_rate_breakdown(
    result,
    save_path: Optional[Union[str, Path]] = None,
    figsize: Tuple[float, float] = (10, 6),
    show: bool = True,
    title: Optional[str] = None,
    style: Optional[PlotStyle] = None,
) -> Optional[Any]:
    """
    Bar chart of the summed cost of every rate over all jobs.

    Returns:
        matplotlib Figure object, or None if no rate is configured
    """
    _check_matplotlib()
    style = style or DEFAULT_STYLE

    rates = result.config.rates
    if not rates:
        return None
    sums = [
        float(sum(r.rate_costs.get(rate.key, 0) for r in result.rows))
        for rate in rates
    ]
    labels = [f"{rate.group.name}/{rate.name}" for rate in rates]

    fig, ax = plt.subplots(figsize=figsize)
    fig.patch.set_facecolor(style.facecolor)
    x = np.arange(len(labels))
    ax.bar(x, sums, color=COLORS['rate'], alpha=style.bar_alpha,
           edgecolor=style.bar_edgecolor, linewidth=style.bar_linewidth)
    ax.set_xticks(x)
    ax.set_xticklabels(labels, rotation=30, ha='right', fontsize=style.tick_fontsize)
    ax.set_ylabel(f'Cost ({result.currency})', fontsize=style.axis_label_fontsize)
    _apply_common_style(ax, style)

    if title is None:
        title = "Cost per rate"
    ax.set_title(title, fontsize=style.title_fontsize, fontweight='bold', color='#333333')

    return _finish(fig, save_path, show, style)
