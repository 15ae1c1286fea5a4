"""
Main entry point.

Usage:
    python -m job_cost_meter rates.conf -j 4242
    python -m job_cost_meter batch rates.conf -S 2024-01-01

The first form runs job-cost-meter; with `batch` as first argument the
remaining arguments go to batch-cost-analyser.
"""

import sys

from .cli import batch_main, job_main


def main() -> int:
    argv = sys.argv[1:]
    if argv and argv[0] == "batch":
        return batch_main(argv[1:])
    return job_main(argv)


if __name__ == "__main__":
    sys.exit(main())
