"""
Exception types shared across the cost meter.

Configuration problems are collected and raised together as a ConfigError.
Violations of the accounting source's data contract are raised as
SourceContractError and always abort the run.
"""

from typing import Iterable, List


class JobCostError(Exception):
    """Base class for all job-cost-meter errors."""


class ConfigError(JobCostError):
    """Invalid rate configuration, carrying every message found."""

    def __init__(self, messages: Iterable[str]):
        self.messages: List[str] = list(messages)
        super().__init__("; ".join(self.messages))


class SourceContractError(JobCostError):
    """The accounting source returned data of an unexpected shape."""
