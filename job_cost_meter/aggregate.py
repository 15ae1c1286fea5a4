"""
Folding of accounting records into one record per job.

`sacct` lists every job followed by its steps (`42`, `42.batch`, `42.0`,
...). Runtime and node list come from the job line; energy is measured per
step and summed here. A job is complete once the next job line (or the end
of the stream) has been seen.
"""

from dataclasses import dataclass
from typing import Generic, Iterable, Iterator, List, Optional, TypeVar
import logging
import re

from .errors import SourceContractError
from .hostlist import NO_NODES
from .model import ENERGY_LIMIT, JobRecord

logger = logging.getLogger(__name__)

T = TypeVar("T")

_RUNTIME_RE = re.compile(r"^(?:(?:(\d+)-)?(\d+):)?(\d{1,2}):(\d{1,2})$")


@dataclass(frozen=True)
class AccountingRecord:
    """One raw line of job accounting data (a job or a job step)."""
    job_id: str
    elapsed: str
    energy: str
    node_list: str

    @property
    def is_step(self) -> bool:
        return "." in self.job_id

    @property
    def parent_job_id(self) -> str:
        return self.job_id.split(".", 1)[0]


def parse_runtime(text: str) -> int:
    """
    Parse a Slurm elapsed time into seconds.

    Accepted forms are `D-HH:MM:SS`, `HH:MM:SS` and `MM:SS`.

    Raises:
        SourceContractError: For any other format
    """
    m = _RUNTIME_RE.match(text.strip())
    if not m:
        raise SourceContractError(f"unexpected runtime format '{text}'")
    days, hours, minutes, seconds = (int(g) if g else 0 for g in m.groups())
    return seconds + 60 * (minutes + 60 * (hours + 24 * days))


def parse_energy(text: str) -> Optional[int]:
    """
    Parse a raw energy reading in joules.

    Returns None when no measurement was recorded or the counter wrapped
    around (values of 10^18 J and more).

    Raises:
        SourceContractError: If the reading is not an integer
    """
    text = text.strip()
    if not text:
        return None
    if not text.isdigit():
        raise SourceContractError(f"unexpected energy reading '{text}'")
    value = int(text)
    if value >= ENERGY_LIMIT:
        return None
    return value


class PeekableStream(Generic[T]):
    """Iterator wrapper that can look one item ahead."""

    _EMPTY = object()

    def __init__(self, items: Iterable[T]):
        self._it = iter(items)
        self._pending = self._EMPTY

    def __iter__(self) -> "PeekableStream[T]":
        return self

    def __next__(self) -> T:
        if self._pending is not self._EMPTY:
            item, self._pending = self._pending, self._EMPTY
            return item
        return next(self._it)

    def peek(self, default: Optional[T] = None) -> Optional[T]:
        """Return the next item without consuming it (`default` at the end)."""
        if self._pending is self._EMPTY:
            try:
                self._pending = next(self._it)
            except StopIteration:
                return default
        return self._pending


class JobStepAggregator:
    """
    Turns a stream of AccountingRecords into one JobRecord per job.

    Example:
        aggregator = JobStepAggregator(source.records(["-S", "2024-01-01"]))
        for job in aggregator.jobs():
            print(job.job_id, job.energy_joules)
    """

    def __init__(self, records: Iterable[AccountingRecord]):
        self.stream: PeekableStream[AccountingRecord] = PeekableStream(records)
        self.records_seen = 0
        self.jobs_dropped = 0

    def _take_steps(self, job_id: str) -> List[AccountingRecord]:
        """Consume the step records that directly follow job `job_id`."""
        steps = []
        while True:
            nxt = self.stream.peek()
            if nxt is None or not nxt.is_step:
                return steps
            if nxt.parent_job_id != job_id:
                raise SourceContractError(
                    f"job step '{nxt.job_id}' does not follow its job (current job is '{job_id}')"
                )
            steps.append(next(self.stream))
            self.records_seen += 1

    def jobs(self) -> Iterator[JobRecord]:
        """Yield finalized jobs in stream order."""
        for record in self.stream:
            self.records_seen += 1
            if record.is_step:
                raise SourceContractError(
                    f"job step '{record.job_id}' appears before any job"
                )
            steps = self._take_steps(record.job_id)

            readings = [parse_energy(s.energy) for s in steps]
            valid = [r for r in readings if r is not None]
            energy = sum(valid) if valid else None
            if not energy:
                energy = None

            runtime = parse_runtime(record.elapsed)
            node_list = record.node_list.strip()
            if node_list in NO_NODES:
                logger.debug("dropping job %s: no nodes assigned", record.job_id)
                self.jobs_dropped += 1
                continue

            yield JobRecord(
                job_id=record.job_id,
                runtime_seconds=runtime,
                energy_joules=energy,
                node_list=node_list,
            )
