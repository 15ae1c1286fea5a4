"""
Column statistics over a table of per-job cost rows.

Every column is summarized over its "active" rows (rows where the value is
present) and, for the mean and deviation, a second time over all rows with
missing values counted as zero. The second view spreads a rate's cost over
all jobs, including the ones that never touched the rate's node group.
"""

from dataclasses import dataclass, field
from decimal import Decimal, ROUND_HALF_EVEN, localcontext
from typing import Callable, List, Optional, Sequence, Union

from .config import Configuration
from .model import DECIMAL_PRECISION, CostRow

Number = Union[int, Decimal]

PERCENT_QUANTUM = Decimal("0.00001")


@dataclass
class Quantile:
    """Nearest-rank quantile of the active values of a column."""
    percent: int
    value: Decimal
    # Share of the column sum reached up to and including this rank
    cumulative_percent: Optional[Decimal]

    def to_dict(self) -> dict:
        return {
            "percent": self.percent,
            "value": str(self.value),
            "cumulative_percent": (
                str(self.cumulative_percent) if self.cumulative_percent is not None else None
            ),
        }


@dataclass
class StatisticsColumn:
    """Summary statistics of one table column."""
    name: str
    unit: str
    total_count: int
    active_count: int
    sum: Decimal
    quantiles: List[Quantile] = field(default_factory=list)
    mean: Optional[Decimal] = None
    deviation: Optional[Decimal] = None
    total_mean: Optional[Decimal] = None
    total_deviation: Optional[Decimal] = None

    def to_dict(self) -> dict:
        def s(v: Optional[Decimal]) -> Optional[str]:
            return str(v) if v is not None else None

        return {
            "name": self.name,
            "unit": self.unit,
            "total_count": self.total_count,
            "active_count": self.active_count,
            "sum": str(self.sum),
            "quantiles": [q.to_dict() for q in self.quantiles],
            "mean": s(self.mean),
            "deviation": s(self.deviation),
            "total_mean": s(self.total_mean),
            "total_deviation": s(self.total_deviation),
        }


def quantile_percents(percentile_step: int) -> List[int]:
    """Percentages reported for a quantile step: 0, step, 2*step, ... <= 100."""
    if not 0 < percentile_step <= 100:
        raise ValueError(f"percentile step must be in (0, 100], got {percentile_step}")
    return list(range(0, 101, percentile_step))


def _mean_and_deviation(total: Decimal, square_sum: Decimal, count: int):
    mean = total / count
    variance = square_sum / count - mean * mean
    if variance > 0:
        deviation = variance.sqrt()
    else:
        deviation = Decimal(0)
    return mean, deviation


def summarize(
    values: Sequence[Optional[Number]],
    percentile_step: int = 25,
    name: str = "",
    unit: str = "",
) -> StatisticsColumn:
    """
    Summarize one column of values.

    Args:
        values: Column values, None for rows where the value is absent
        percentile_step: Distance between reported quantiles in percent
        name: Column name (for reporting)
        unit: Column unit (for reporting)

    Returns:
        StatisticsColumn; mean, deviation and quantiles are None/empty
        when no value is present
    """
    percents = quantile_percents(percentile_step)
    active = sorted(Decimal(v) for v in values if v is not None)
    total_count = len(values)
    active_count = len(active)

    with localcontext() as ctx:
        ctx.prec = DECIMAL_PRECISION

        partial_sums = []
        running = Decimal(0)
        square_sum = Decimal(0)
        for v in active:
            running += v
            square_sum += v * v
            partial_sums.append(running)

        column = StatisticsColumn(
            name=name,
            unit=unit,
            total_count=total_count,
            active_count=active_count,
            sum=running,
        )
        if not active:
            return column

        last = active_count - 1
        for p in percents:
            index = last * p // 100
            if running != 0:
                cumulative = (partial_sums[index] * 100 / running).quantize(
                    PERCENT_QUANTUM, rounding=ROUND_HALF_EVEN
                )
            else:
                cumulative = None
            column.quantiles.append(Quantile(p, active[index], cumulative))

        column.mean, column.deviation = _mean_and_deviation(running, square_sum, active_count)
        column.total_mean, column.total_deviation = _mean_and_deviation(
            running, square_sum, total_count
        )

    return column


@dataclass(frozen=True)
class ColumnSpec:
    """A column of the per-job cost table."""
    name: str
    unit: str
    precision: int
    getter: Callable[[CostRow], Optional[Number]]
    kind: str = "job"  # job | group | rate | total


def cost_table_columns(config: Configuration) -> List[ColumnSpec]:
    """
    Columns of the batch table in display order.

    Size, runtime and energy come first, then each node group (node count)
    followed by its rates (cost), then the total.
    """
    currency = config.currency
    columns = [
        ColumnSpec("Size", "nodes", 0, lambda r: r.node_count),
        ColumnSpec("Runtime", "h", 4, lambda r: r.runtime_hours),
        ColumnSpec("Energy", "J", 0, lambda r: r.energy_joules),
    ]
    for group, rates in config.groups_with_rates():
        columns.append(ColumnSpec(
            group.name, "nodes", 0,
            lambda r, k=group.key: r.group_nodes.get(k),
            kind="group",
        ))
        for rate in rates:
            columns.append(ColumnSpec(
                rate.name, currency, 2,
                lambda r, k=rate.key: r.rate_costs.get(k),
                kind="rate",
            ))
    columns.append(ColumnSpec("Total", currency, 2, lambda r: r.total_cost, kind="total"))
    return columns


def summarize_rows(
    rows: Sequence[CostRow],
    columns: Sequence[ColumnSpec],
    percentile_step: int = 25,
) -> List[StatisticsColumn]:
    """Summarize every table column over `rows`."""
    return [
        summarize([spec.getter(r) for r in rows], percentile_step, spec.name, spec.unit)
        for spec in columns
    ]
