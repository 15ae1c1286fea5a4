"""
Runners that turn accounting records into cost results.

Orchestrates records -> aggregation -> cost model -> statistics.
"""

from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional
import json
import logging

from .aggregate import AccountingRecord, JobStepAggregator
from .config import Configuration
from .errors import SourceContractError
from .hostlist import HostlistExpander, expand_hostlist
from .model import CostModel, CostRow, JobRecord
from .stats import ColumnSpec, StatisticsColumn, cost_table_columns, summarize_rows

logger = logging.getLogger(__name__)

VERSION = "1.0.0"


def _meta(config: Configuration, **extra: Any) -> Dict[str, Any]:
    meta = {
        "version": VERSION,
        "config_file": config.source,
        "currency": config.currency,
    }
    meta.update(extra)
    return meta


@dataclass
class JobCostResult:
    """Cost estimate of a single job."""
    meta: Dict[str, Any]
    config: Configuration
    job: JobRecord
    row: CostRow

    @property
    def currency(self) -> str:
        return self.config.currency

    def to_dict(self) -> dict:
        """Convert to JSON-serializable dict."""
        return {
            "meta": self.meta,
            "config": self.config.to_dict(),
            "job": {
                "job_id": self.job.job_id,
                "runtime_seconds": self.job.runtime_seconds,
                "energy_joules": self.job.energy_joules,
                "node_list": self.job.node_list,
            },
            "cost": self.row.to_dict(),
        }


@dataclass
class BatchResult:
    """
    Per-job cost table and column statistics of a batch of jobs.

    `jobs_dropped` counts jobs without nodes, `jobs_over_runtime` jobs
    removed by the maximum runtime filter.
    """
    meta: Dict[str, Any]
    config: Configuration
    rows: List[CostRow] = field(default_factory=list)
    columns: List[ColumnSpec] = field(default_factory=list)
    statistics: List[StatisticsColumn] = field(default_factory=list)
    jobs_dropped: int = 0
    jobs_over_runtime: int = 0

    @property
    def currency(self) -> str:
        return self.config.currency

    def to_dict(self) -> dict:
        """Convert to JSON-serializable dict."""
        return {
            "meta": self.meta,
            "config": self.config.to_dict(),
            "columns": [
                {"name": c.name, "unit": c.unit, "kind": c.kind} for c in self.columns
            ],
            "jobs": [r.to_dict() for r in self.rows],
            "statistics": [s.to_dict() for s in self.statistics],
            "jobs_dropped": self.jobs_dropped,
            "jobs_over_runtime": self.jobs_over_runtime,
        }


class JobCostRunner:
    """
    Cost estimate of one job, e.g. from a job epilog.

    Example:
        config = load_config("/etc/slurm/job-cost.conf")
        runner = JobCostRunner(config, SacctSource())
        result = runner.run(os.environ["SLURM_JOB_ID"])
        print(render_short(result))
    """

    def __init__(
        self,
        config: Configuration,
        source,
        expand: HostlistExpander = expand_hostlist,
    ):
        """
        Initialize runner.

        Args:
            config: Rate configuration
            source: Object providing `job_records(job_id)`
            expand: Hostlist expander for job node lists
        """
        self.config = config
        self.source = source
        self.model = CostModel(config, expand)

    def run(self, job_id: str, node_list: Optional[str] = None) -> JobCostResult:
        """
        Compute the cost of `job_id`.

        Args:
            job_id: Top-level job id
            node_list: Replaces the node list reported by the accounting data

        Raises:
            SourceContractError: If the job has no records or no nodes
        """
        records = [
            r for r in self.source.job_records(job_id) if r.parent_job_id == job_id
        ]
        if not records:
            raise SourceContractError(f"no accounting records found for job '{job_id}'")
        if node_list:
            records = [
                replace(r, node_list=node_list) if r.job_id == job_id else r
                for r in records
            ]

        jobs = [j for j in JobStepAggregator(records).jobs() if j.job_id == job_id]
        if not jobs:
            raise SourceContractError(f"job '{job_id}' has no nodes assigned")
        job = jobs[0]
        row = self.model.compute(job)
        logger.debug("job %s: %d nodes, total %s", job_id, row.node_count, row.total_cost)

        return JobCostResult(
            meta=_meta(self.config, job_id=job_id),
            config=self.config,
            job=job,
            row=row,
        )


class BatchRunner:
    """
    Cost table and statistics over many jobs.

    Example:
        runner = BatchRunner(config, percentile_step=10)
        result = runner.run(SacctSource().records(["-S", "2024-01-01"]))
        print(render_statistics(result))
    """

    def __init__(
        self,
        config: Configuration,
        percentile_step: int = 25,
        max_runtime: Optional[int] = None,
        expand: HostlistExpander = expand_hostlist,
    ):
        """
        Initialize runner.

        Args:
            config: Rate configuration
            percentile_step: Distance between reported quantiles in percent
            max_runtime: Drop jobs running longer than this many seconds
            expand: Hostlist expander for job node lists
        """
        if not 0 < percentile_step <= 100:
            raise ValueError(f"percentile step must be in 1..100, got {percentile_step}")
        self.config = config
        self.percentile_step = percentile_step
        self.max_runtime = max_runtime
        self.model = CostModel(config, expand)

    def run(self, records: Iterable[AccountingRecord]) -> BatchResult:
        """
        Aggregate `records` into jobs and compute their costs.

        Returns:
            BatchResult with one row per kept job in stream order
        """
        aggregator = JobStepAggregator(records)
        rows = []
        over_runtime = 0
        for job in aggregator.jobs():
            if self.max_runtime is not None and job.runtime_seconds > self.max_runtime:
                logger.warning(
                    "dropping job %s: runtime of %d seconds exceeds the maximum of %d seconds",
                    job.job_id, job.runtime_seconds, self.max_runtime,
                )
                over_runtime += 1
                continue
            rows.append(self.model.compute(job))
        logger.info("analysed %d jobs", len(rows))

        columns = cost_table_columns(self.config)
        statistics = summarize_rows(rows, columns, self.percentile_step)

        return BatchResult(
            meta=_meta(
                self.config,
                percentile_step=self.percentile_step,
                max_runtime=self.max_runtime,
            ),
            config=self.config,
            rows=rows,
            columns=columns,
            statistics=statistics,
            jobs_dropped=aggregator.jobs_dropped,
            jobs_over_runtime=over_runtime,
        )


def save_result(result, path: str | Path) -> None:
    """
    Save a JobCostResult or BatchResult to a JSON file.

    Args:
        result: Result to save
        path: Output file path
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, 'w') as f:
        json.dump(result.to_dict(), f, indent=2)
