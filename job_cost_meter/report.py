"""
Text and JSON renderings of cost results.

Only formatting happens here; every number comes from the runner results.
"""

from decimal import Decimal
from typing import List, Optional
import json

from .formatter import kv_block, separator, table, title
from .runner import BatchResult, JobCostResult
from .stats import ColumnSpec, StatisticsColumn

_CENT = Decimal("0.01")

STATISTICS_ROWS = ("sum", "count", "total count", "mean", "std-dev", "total mean", "total dev")


def _money(value: Decimal) -> str:
    return f"{value:.2f}"


# ── Single job ─────────────────────────────────────────────────────

def render_quiet(result: JobCostResult) -> str:
    return _money(result.row.total_cost)


def render_short(result: JobCostResult) -> str:
    return f"job cost estimate: {_money(result.row.total_cost)} {result.currency}"


def render_verbose(result: JobCostResult) -> str:
    """
    Full breakdown: every node group the job ran on, with the cost of
    each of its rates that applied, followed by the total.
    """
    row = result.row
    currency = result.currency
    total = f"{_money(row.total_cost)} {currency}"

    blocks = []
    for group, rates in result.config.groups_with_rates():
        nodes = row.group_nodes.get(group.key)
        if not nodes:
            continue
        items = [
            (rate.name, f"{_money(row.rate_costs[rate.key])} {currency}")
            for rate in rates if rate.key in row.rate_costs
        ]
        block = f"{group.name} ({nodes} nodes):"
        if items:
            block += "\n" + kv_block(items, indent=4)
        blocks.append(block)

    width = max(40, len(total) + 8)
    lines = [
        "",
        title("job cost estimate", width),
        "",
        f"({row.node_count} nodes total)",
    ]
    lines.extend(blocks)
    lines.append(separator(width))
    lines.append(f"total: {total}")
    lines.append("")
    return "\n".join(lines)


def render_json(result: JobCostResult) -> str:
    """Per node group list of the applied rates and their cost."""
    row = result.row
    nodesets = []
    for group, rates in result.config.groups_with_rates():
        nodes = row.group_nodes.get(group.key)
        if not nodes:
            continue
        nodesets.append({
            "nodeset": group.name,
            "nodes": nodes,
            "rates": [
                {
                    "rate": rate.name,
                    "cost": str(row.rate_costs[rate.key].quantize(_CENT)),
                }
                for rate in rates if rate.key in row.rate_costs
            ],
        })
    return json.dumps(nodesets, indent=2)


# ── Batch ──────────────────────────────────────────────────────────

def format_value(value, spec: ColumnSpec) -> str:
    """Format a table value with its column precision and unit."""
    if value is None:
        return ""
    return f"{value:.{spec.precision}f} {spec.unit}"


def _shown_columns(result: BatchResult, quiet: bool) -> List[ColumnSpec]:
    if quiet:
        return [c for c in result.columns if c.kind == "total"]
    return list(result.columns)


def details_rows(result: BatchResult, quiet: bool = False) -> List[List[str]]:
    """Formatted per-job rows, one cell per displayed column after the job id."""
    columns = _shown_columns(result, quiet)
    return [
        [row.job_id] + [format_value(c.getter(row), c) for c in columns]
        for row in result.rows
    ]


def render_details(result: BatchResult, quiet: bool = False) -> str:
    """One table row per job; with `quiet` only the total cost column."""
    columns = _shown_columns(result, quiet)
    return table(
        ["Job"] + [c.name for c in columns],
        details_rows(result, quiet),
    )


def _quantile_cell(stat: StatisticsColumn, index: int, spec: ColumnSpec) -> str:
    if index >= len(stat.quantiles):
        return ""
    q = stat.quantiles[index]
    cell = format_value(q.value, spec)
    if q.cumulative_percent is not None:
        cell += f" ({q.cumulative_percent:5.1f}%)"
    return cell


def _summary_cells(stat: StatisticsColumn, spec: ColumnSpec) -> List[str]:
    return [
        format_value(stat.sum, spec),
        str(stat.active_count),
        str(stat.total_count),
        format_value(stat.mean, spec),
        format_value(stat.deviation, spec),
        format_value(stat.total_mean, spec),
        format_value(stat.total_deviation, spec),
    ]


def statistics_rows(result: BatchResult, quiet: bool = False) -> List[List[str]]:
    """Formatted statistics rows: one per quantile, then the summary rows."""
    pairs = [
        (stat, spec) for stat, spec in zip(result.statistics, result.columns)
        if not quiet or spec.kind == "total"
    ]
    percents: List[int] = []
    for stat, _ in pairs:
        if len(stat.quantiles) > len(percents):
            percents = [q.percent for q in stat.quantiles]

    rows = [
        [f"{p}%"] + [_quantile_cell(stat, i, spec) for stat, spec in pairs]
        for i, p in enumerate(percents)
    ]
    summaries = [_summary_cells(stat, spec) for stat, spec in pairs]
    for i, label in enumerate(STATISTICS_ROWS):
        rows.append([label] + [cells[i] for cells in summaries])
    return rows


def render_statistics(result: BatchResult, quiet: bool = False) -> str:
    """Quantile and summary table of every column; with `quiet` only the total."""
    rows = statistics_rows(result, quiet)
    quantile_count = len(rows) - len(STATISTICS_ROWS)
    return table(
        [""] + [c.name for c in _shown_columns(result, quiet)],
        rows,
        row_separators=[quantile_count],
    )


def render_batch(
    result: BatchResult,
    details: bool = True,
    statistics: bool = True,
    quiet: bool = False,
    heading: Optional[str] = None,
) -> str:
    """Details and/or statistics tables separated by a blank line."""
    parts = []
    if heading:
        parts.append(title(heading))
    if details:
        parts.append(render_details(result, quiet=quiet))
    if statistics:
        parts.append(render_statistics(result, quiet=quiet))
    return "\n\n".join(parts)
