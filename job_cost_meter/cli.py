"""
Command-line interfaces.

Usage:
    job-cost-meter /etc/slurm/job-cost.conf                # from a job epilog
    job-cost-meter rates.conf -j 4242 -o                   # one job, JSON
    batch-cost-analyser rates.conf -S 2024-01-01 -u alice  # sacct selection
    batch-cost-analyser -s -i 10 --sacct-dump jobs.txt rates.conf
"""

import argparse
import logging
import os
import sys
from pathlib import Path
from typing import List, Optional

from .config import Configuration, load_config
from .errors import ConfigError, SourceContractError
from .formatter import colorize, supports_color
from .hostlist import HostlistExpander, expand_hostlist
from .output import OutputWriter
from .report import render_batch, render_json, render_quiet, render_short, render_verbose
from .runner import BatchRunner, JobCostRunner
from .slurm import DumpSource, SacctSource, ScontrolExpander

# Optional plotting support
try:
    from .plot import HAS_MATPLOTLIB, plot_cost_distribution
except ImportError:
    HAS_MATPLOTLIB = False
    plot_cost_distribution = None

logger = logging.getLogger(__name__)

CONFIG_ERROR_HEADER = "job-cost-meter configuration error:"
ADMIN_NOTE = "please inform your system administrator about this"

EXIT_OK = 0
EXIT_CONFIG = 1
EXIT_USAGE = 2
EXIT_SOURCE = 3

RENDERERS = {
    "quiet": render_quiet,
    "short": render_short,
    "verbose": render_verbose,
    "json": render_json,
}


def _configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper()),
        format="%(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )


def _add_common_arguments(parser: argparse.ArgumentParser, default_log_level: str) -> None:
    parser.add_argument(
        "--scontrol",
        action="store_true",
        help="Expand hostlists with 'scontrol show hostnames' instead of the built-in expander",
    )
    parser.add_argument(
        "--sacct-dump",
        type=Path,
        default=None,
        metavar="FILE",
        help="Read saved 'sacct -P' output (jobid|elapsed|consumedenergyraw|nodelist) "
             "instead of calling sacct",
    )
    parser.add_argument(
        "--log-level",
        default=default_log_level,
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help=f"Logging level for messages on stderr (default: {default_log_level})",
    )


def _print_config_error(e: ConfigError) -> None:
    print(CONFIG_ERROR_HEADER, file=sys.stderr)
    for message in e.messages:
        print(f"  {message}", file=sys.stderr)
    print(ADMIN_NOTE, file=sys.stderr)


def _print_source_error(e: Exception) -> int:
    print(f"fatal error: {e}", file=sys.stderr)
    print(ADMIN_NOTE, file=sys.stderr)
    return EXIT_SOURCE


def _load(
    args: argparse.Namespace,
    expand: HostlistExpander,
    check_permissions: bool = False,
) -> Optional[Configuration]:
    """Load the rate configuration, printing any error. None on failure."""
    try:
        return load_config(args.config, expand=expand, check_permissions=check_permissions)
    except FileNotFoundError:
        print(f"fatal error: no configuration file found at '{args.config}'", file=sys.stderr)
    except ConfigError as e:
        _print_config_error(e)
    return None


def _print(text: str, use_color: bool) -> None:
    print(colorize(text) if use_color else text)


# ── job-cost-meter ─────────────────────────────────────────────────

def build_job_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="job-cost-meter",
        description="Estimate the cost of a single SLURM job from a rate configuration",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Without --job the job id is taken from $SLURM_JOB_ID and the node list
from $SLURM_NODELIST, as set in a job epilog.

Examples:
  %(prog)s /etc/slurm/job-cost.conf
  %(prog)s rates.conf -j 4242 -v
  %(prog)s rates.conf -j 4242 -n 'node[01-04]' -q
        """,
    )
    parser.add_argument("config", type=Path, help="Rate configuration file")

    mode = parser.add_mutually_exclusive_group()
    mode.add_argument("-q", "--quiet", dest="mode", action="store_const", const="quiet",
                      help="Print the total cost only")
    mode.add_argument("-s", "--short", dest="mode", action="store_const", const="short",
                      help="Print a one line summary")
    mode.add_argument("-v", "--verbose", dest="mode", action="store_const", const="verbose",
                      help="Print the cost of every rate (default)")
    mode.add_argument("-o", "--json", dest="mode", action="store_const", const="json",
                      help="Print the cost of every rate as JSON")
    parser.set_defaults(mode="verbose")

    parser.add_argument("-j", "--job", default=None, help="Job id (default: $SLURM_JOB_ID)")
    parser.add_argument("-n", "--nodes", default=None,
                        help="Node list to charge instead of the one in the accounting data")
    parser.add_argument(
        "--check-permissions",
        action="store_true",
        help="Refuse a config file not owned by the current user or writable by others",
    )
    _add_common_arguments(parser, "WARNING")
    return parser


def run_job(args: argparse.Namespace) -> int:
    """Run job-cost-meter for parsed arguments and return the exit code."""
    job_id = args.job
    node_list = args.nodes
    if job_id is None:
        job_id = os.environ.get("SLURM_JOB_ID")
        if node_list is None:
            node_list = os.environ.get("SLURM_NODELIST") or None
    if not job_id:
        print("fatal error: no job id given and SLURM_JOB_ID is not set", file=sys.stderr)
        return EXIT_USAGE

    expand = ScontrolExpander() if args.scontrol else expand_hostlist
    config = _load(args, expand, check_permissions=args.check_permissions)
    if config is None:
        return EXIT_CONFIG

    source = DumpSource(args.sacct_dump) if args.sacct_dump else SacctSource()
    try:
        result = JobCostRunner(config, source, expand).run(job_id, node_list=node_list)
    except (SourceContractError, OSError) as e:
        return _print_source_error(e)

    text = RENDERERS[args.mode](result)
    _print(text, use_color=args.mode == "verbose" and supports_color())
    return EXIT_OK


def job_main(argv: Optional[List[str]] = None) -> int:
    """Entry point of job-cost-meter."""
    args = build_job_parser().parse_args(argv)
    _configure_logging(args.log_level)
    return run_job(args)


# ── batch-cost-analyser ────────────────────────────────────────────

def _percentile_step(text: str) -> int:
    try:
        value = int(text)
    except ValueError:
        raise argparse.ArgumentTypeError(f"illegal value '{text}'")
    if not 1 <= value <= 100:
        raise argparse.ArgumentTypeError(f"illegal value '{text}', must be in 1..100")
    return value


def build_batch_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="batch-cost-analyser",
        description="Cost table and statistics over many SLURM jobs",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
All arguments after CONFIG are passed to 'sacct' to select the jobs.
Without -s and -d both tables are printed.

Examples:
  %(prog)s rates.conf -S 2024-01-01 -E 2024-02-01
  %(prog)s -s -i 10 rates.conf -u alice
  %(prog)s -d -q -m 86400 rates.conf -a
  %(prog)s --output-dir results/jan --plot rates.conf -S 2024-01-01
        """,
    )
    parser.add_argument("-q", "--quiet", action="store_true",
                        help="Only show the total cost column in the details and statistics tables")
    parser.add_argument("-s", "--statistics", action="store_true",
                        help="Print the statistics table")
    parser.add_argument("-d", "--details", action="store_true",
                        help="Print the per-job details table")
    parser.add_argument("-i", "--increment", type=_percentile_step, default=25,
                        metavar="PERCENT",
                        help="Quantile increment of the statistics table (default: 25)")
    parser.add_argument("-m", "--max-runtime", type=int, default=-1, metavar="SECONDS",
                        help="Ignore jobs running longer than this; 0 or negative disables (default)")
    parser.add_argument("--output-dir", type=Path, default=None,
                        help="Also write results, CSV tables and plots to this directory")
    parser.add_argument("--plot", action="store_true",
                        help="Generate plots (requires matplotlib)")
    parser.add_argument("--workers", type=int, default=1,
                        help="Number of parallel sacct calls (default: 1)")
    _add_common_arguments(parser, "INFO")
    parser.add_argument("config", type=Path, help="Rate configuration file")
    parser.add_argument("sacct_args", nargs=argparse.REMAINDER,
                        help="Job selection options passed to sacct")
    return parser


def run_batch(args: argparse.Namespace) -> int:
    """Run batch-cost-analyser for parsed arguments and return the exit code."""
    show_details = args.details or not args.statistics
    show_statistics = args.statistics or not args.details

    expand = ScontrolExpander() if args.scontrol else expand_hostlist
    config = _load(args, expand)
    if config is None:
        return EXIT_CONFIG

    if args.sacct_dump:
        source = DumpSource(args.sacct_dump)
    else:
        source = SacctSource(max_workers=max(1, args.workers))
    runner = BatchRunner(
        config,
        percentile_step=args.increment,
        max_runtime=args.max_runtime if args.max_runtime > 0 else None,
        expand=expand,
    )
    try:
        result = runner.run(source.records(args.sacct_args))
    except (SourceContractError, OSError) as e:
        return _print_source_error(e)

    text = render_batch(
        result,
        details=show_details,
        statistics=show_statistics,
        quiet=args.quiet,
    )
    _print(text, use_color=supports_color())

    if args.plot and not HAS_MATPLOTLIB:
        print("Warning: --plot requires matplotlib. Install with: pip install -e '.[plot]'",
              file=sys.stderr)
    if args.output_dir:
        OutputWriter(args.output_dir).write(result, generate_plots=args.plot)
        logger.info("results saved to %s", args.output_dir)
    elif args.plot and HAS_MATPLOTLIB:
        plot_cost_distribution(result, show=True)

    return EXIT_OK


def batch_main(argv: Optional[List[str]] = None) -> int:
    """Entry point of batch-cost-analyser."""
    args = build_batch_parser().parse_args(argv)
    _configure_logging(args.log_level)
    return run_batch(args)


if __name__ == "__main__":
    sys.exit(job_main())
