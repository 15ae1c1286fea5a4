"""
Per-job cost computation.

A job's cost is the sum of one contribution per configured rate:

- time rates:   canonical * overlap_nodes * runtime_s / (1000 * seconds_per_year)
- energy rates: canonical * energy_J / (1000 * 1000 * 3600)

where `canonical` is the rate in milli-currency per node-year (or per kWh)
and `overlap_nodes` is the number of the job's nodes in the rate's group.
A rate whose group shares no node with the job is skipped, and energy rates
are skipped when no valid energy reading exists.

All arithmetic uses Decimal, never binary floats.
"""

from dataclasses import dataclass, field
from decimal import Decimal, ROUND_HALF_EVEN, localcontext
from typing import Dict, List, Optional

from .config import Configuration, RateKind
from .errors import SourceContractError
from .hostlist import HostlistExpander, expand_hostlist, overlap_count


SECONDS_PER_YEAR = 365 * 24 * 3600
JOULES_PER_KWH = 1000 * 3600
MILLI = 1000

# Energy counters at or above this value are wrapped-around garbage
ENERGY_LIMIT = 10 ** 18

# Working precision and the scale costs are kept at
DECIMAL_PRECISION = 50
COST_QUANTUM = Decimal("1E-10")


def valid_energy(value: Optional[int]) -> Optional[int]:
    """Return `value` if it is a usable energy reading, else None."""
    if value is None or value < 0 or value >= ENERGY_LIMIT:
        return None
    return value


@dataclass(frozen=True)
class JobRecord:
    """A finished (or running) top-level job with its steps folded in."""
    job_id: str
    runtime_seconds: int
    energy_joules: Optional[int]  # None = not measured
    node_list: str


@dataclass
class CostRow:
    """Cost estimate of one job."""
    job_id: str
    node_count: int
    runtime_seconds: int
    energy_joules: Optional[int]
    # Group key -> number of the job's nodes in that group (omitted when 0)
    group_nodes: Dict[str, int] = field(default_factory=dict)
    # Rate key -> cost in currency units (omitted when the rate was skipped)
    rate_costs: Dict[str, Decimal] = field(default_factory=dict)
    total_cost: Decimal = Decimal(0)

    @property
    def runtime_hours(self) -> Decimal:
        with localcontext() as ctx:
            ctx.prec = DECIMAL_PRECISION
            hours = Decimal(self.runtime_seconds) / 3600
        return hours.quantize(COST_QUANTUM, rounding=ROUND_HALF_EVEN)

    def to_dict(self) -> dict:
        return {
            "job_id": self.job_id,
            "node_count": self.node_count,
            "runtime_seconds": self.runtime_seconds,
            "runtime_hours": str(self.runtime_hours),
            "energy_joules": self.energy_joules,
            "group_nodes": dict(self.group_nodes),
            "rate_costs": {k: str(v) for k, v in self.rate_costs.items()},
            "total_cost": str(self.total_cost),
        }


def time_rate_cost(canonical_value: Decimal, nodes: int, runtime_seconds: int) -> Decimal:
    """Cost of `nodes` nodes for `runtime_seconds` at a canonical time rate."""
    with localcontext() as ctx:
        ctx.prec = DECIMAL_PRECISION
        cost = canonical_value * nodes * runtime_seconds / (MILLI * SECONDS_PER_YEAR)
    return cost.quantize(COST_QUANTUM, rounding=ROUND_HALF_EVEN)


def energy_rate_cost(canonical_value: Decimal, energy_joules: int) -> Decimal:
    """Cost of `energy_joules` at a canonical energy rate."""
    with localcontext() as ctx:
        ctx.prec = DECIMAL_PRECISION
        cost = canonical_value * energy_joules / (MILLI * JOULES_PER_KWH)
    return cost.quantize(COST_QUANTUM, rounding=ROUND_HALF_EVEN)


class CostModel:
    """
    Computes CostRows for jobs under one configuration.

    Example:
        model = CostModel(load_config("rates.conf"))
        row = model.compute(JobRecord("42", 3600, None, "machine[1-4]"))
        print(row.total_cost)
    """

    def __init__(self, config: Configuration, expand: HostlistExpander = expand_hostlist):
        self.config = config
        self.expand = expand

    def job_nodes(self, job: JobRecord) -> List[str]:
        """
        Expanded, sorted node names of a job.

        Raises:
            SourceContractError: If the node list cannot be expanded
        """
        try:
            nodes = self.expand(job.node_list)
        except ValueError as e:
            raise SourceContractError(f"job '{job.job_id}': {e}") from e
        return sorted(set(nodes))

    def group_overlaps(self, nodes: List[str]) -> Dict[str, int]:
        """Overlap of `nodes` with every configured group, keyed by group key."""
        return {g.key: overlap_count(nodes, g.members) for g in self.config.groups}

    def compute(self, job: JobRecord) -> CostRow:
        """Compute the cost row of a single job."""
        nodes = self.job_nodes(job)
        energy = valid_energy(job.energy_joules)
        overlaps = self.group_overlaps(nodes)

        rate_costs: Dict[str, Decimal] = {}
        total = Decimal(0)
        for rate in self.config.rates:
            overlap = overlaps[rate.group.key]
            if overlap == 0:
                continue
            if rate.kind is RateKind.TIME:
                cost = time_rate_cost(rate.canonical_value, overlap, job.runtime_seconds)
            elif rate.kind is RateKind.ENERGY:
                if energy is None:
                    continue
                cost = energy_rate_cost(rate.canonical_value, energy)
            else:
                raise ValueError(f"Unknown rate kind: {rate.kind}")
            rate_costs[rate.key] = cost
            with localcontext() as ctx:
                ctx.prec = DECIMAL_PRECISION
                total += cost

        return CostRow(
            job_id=job.job_id,
            node_count=len(nodes),
            runtime_seconds=job.runtime_seconds,
            energy_joules=energy,
            group_nodes={k: v for k, v in overlaps.items() if v},
            rate_costs=rate_costs,
            total_cost=total,
        )


def compute_job_cost(
    config: Configuration,
    job: JobRecord,
    expand: HostlistExpander = expand_hostlist,
) -> CostRow:
    """Convenience wrapper: cost of one job under `config`."""
    return CostModel(config, expand).compute(job)
