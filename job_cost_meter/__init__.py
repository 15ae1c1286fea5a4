"""
SLURM Job Cost Meter

Estimates what a SLURM job cost, from a small rate configuration describing
node groups and their time and energy rates, and summarizes the cost of many
jobs into a table with quantiles, means and deviations.

Example usage (single job):
    from job_cost_meter import load_config, JobCostRunner, SacctSource, render_short

    config = load_config("/etc/slurm/job-cost.conf")
    result = JobCostRunner(config, SacctSource()).run("4242")
    print(render_short(result))

Example usage (batch):
    from job_cost_meter import load_config, BatchRunner, SacctSource, render_statistics

    config = load_config("rates.conf")
    result = BatchRunner(config, percentile_step=10).run(
        SacctSource().records(["-S", "2024-01-01"])
    )
    print(render_statistics(result))

CLI usage:
    job-cost-meter rates.conf -j 4242
    batch-cost-analyser rates.conf -S 2024-01-01
"""

from .errors import (
    JobCostError,
    ConfigError,
    SourceContractError,
)

from .units import (
    UnitError,
    parse_time_unit,
    parse_energy_unit,
)

from .hostlist import (
    expand_hostlist,
    overlap_count,
)

from .config import (
    RateKind,
    NodeGroup,
    Rate,
    Configuration,
    parse_config,
    load_config,
)

from .model import (
    JobRecord,
    CostRow,
    CostModel,
    compute_job_cost,
)

from .aggregate import (
    AccountingRecord,
    JobStepAggregator,
    parse_runtime,
)

from .stats import (
    Quantile,
    StatisticsColumn,
    summarize,
    summarize_rows,
    cost_table_columns,
)

from .slurm import (
    SacctSource,
    DumpSource,
    ScontrolExpander,
)

from .runner import (
    VERSION,
    JobCostRunner,
    JobCostResult,
    BatchRunner,
    BatchResult,
    save_result,
)

from .report import (
    render_quiet,
    render_short,
    render_verbose,
    render_json,
    render_details,
    render_statistics,
)

from .output import OutputWriter

__version__ = VERSION

__all__ = [
    # Errors
    'JobCostError',
    'ConfigError',
    'SourceContractError',
    'UnitError',
    # Units and hostlists
    'parse_time_unit',
    'parse_energy_unit',
    'expand_hostlist',
    'overlap_count',
    # Config
    'RateKind',
    'NodeGroup',
    'Rate',
    'Configuration',
    'parse_config',
    'load_config',
    # Cost model
    'JobRecord',
    'CostRow',
    'CostModel',
    'compute_job_cost',
    # Aggregation and statistics
    'AccountingRecord',
    'JobStepAggregator',
    'parse_runtime',
    'Quantile',
    'StatisticsColumn',
    'summarize',
    'summarize_rows',
    'cost_table_columns',
    # SLURM
    'SacctSource',
    'DumpSource',
    'ScontrolExpander',
    # Runner
    'JobCostRunner',
    'JobCostResult',
    'BatchRunner',
    'BatchResult',
    'save_result',
    # Output
    'render_quiet',
    'render_short',
    'render_verbose',
    'render_json',
    'render_details',
    'render_statistics',
    'OutputWriter',
]
