"""
SLURM accounting adapter.

Reads job accounting data with `sacct` and expands node lists with
`scontrol show hostnames`. Everything returned here is raw text wrapped in
AccountingRecords; interpretation happens in `aggregate`.
"""

from concurrent.futures import ThreadPoolExecutor
from typing import Dict, Iterable, Iterator, List, Sequence
import logging
import subprocess

from .aggregate import AccountingRecord
from .errors import SourceContractError
from .hostlist import NO_NODES

logger = logging.getLogger(__name__)

SACCT_FIELDS = ("jobid", "elapsed", "consumedenergyraw", "nodelist")


def run_command(argv: Sequence[str]) -> str:
    """
    Run a command and return its stdout.

    Raises:
        SourceContractError: If the command is missing or exits non-zero
    """
    logger.debug("running %s", " ".join(argv))
    try:
        result = subprocess.run(list(argv), capture_output=True, text=True, check=False)
    except FileNotFoundError:
        raise SourceContractError(f"command not found: {argv[0]}")
    if result.returncode != 0:
        raise SourceContractError(
            f"'{' '.join(argv)}' failed with exit code {result.returncode}: {result.stderr.strip()}"
        )
    return result.stdout


def parse_sacct_lines(lines: Iterable[str]) -> Iterator[AccountingRecord]:
    """
    Parse `sacct -P -n -o jobid,elapsed,consumedenergyraw,nodelist` output.

    Raises:
        SourceContractError: If a line does not have exactly four fields
    """
    for lineno, line in enumerate(lines, start=1):
        line = line.rstrip("\n")
        if not line.strip():
            continue
        fields = line.split("|")
        if len(fields) != len(SACCT_FIELDS):
            raise SourceContractError(
                f"sacct line {lineno} has {len(fields)} fields, expected {len(SACCT_FIELDS)}: '{line}'"
            )
        job_id, elapsed, energy, node_list = (f.strip() for f in fields)
        yield AccountingRecord(job_id=job_id, elapsed=elapsed, energy=energy, node_list=node_list)


def split_batches(job_ids: Sequence[str], batch_size: int = 128) -> List[List[str]]:
    """
    Split job ids into batches for separate `sacct -j` calls.

    A new batch is only started at a job id (never at a step), once the
    current batch holds at least `batch_size` ids, so a job and its steps
    always end up in the same batch.

    Raises:
        SourceContractError: If the first id is a job step
    """
    batches: List[List[str]] = []
    for job_id in job_ids:
        if "." in job_id:
            if not batches:
                raise SourceContractError(f"first job id '{job_id}' is a job step id")
            batches[-1].append(job_id)
        elif not batches or len(batches[-1]) >= batch_size:
            batches.append([job_id])
        else:
            batches[-1].append(job_id)
    return batches


class SacctSource:
    """
    Job accounting records from `sacct`.

    Example:
        source = SacctSource()
        for record in source.records(["-S", "2024-01-01", "-u", "alice"]):
            print(record.job_id, record.elapsed)
    """

    def __init__(
        self,
        executable: str = "sacct",
        batch_size: int = 128,
        max_workers: int = 1,
    ):
        self.executable = executable
        self.batch_size = batch_size
        self.max_workers = max_workers

    def _sacct(self, args: Sequence[str]) -> List[str]:
        return run_command([self.executable, "-P", "-n", *args]).splitlines()

    def list_job_ids(self, selection_args: Sequence[str] = ()) -> List[str]:
        """Ids of all jobs and steps matching the sacct selection options."""
        return [line.strip() for line in self._sacct(["-o", "jobid", *selection_args]) if line.strip()]

    def _fetch_batch(self, batch: List[str]) -> List[AccountingRecord]:
        lines = self._sacct(["-o", ",".join(SACCT_FIELDS), "-j", ",".join(batch)])
        return list(parse_sacct_lines(lines))

    def fetch(self, job_ids: Sequence[str]) -> List[AccountingRecord]:
        """
        Fetch accounting records for `job_ids`, keeping sacct's order.

        Batches may be fetched in parallel; results are concatenated in
        batch order so steps still directly follow their job.
        """
        batches = split_batches(job_ids, self.batch_size)
        logger.info("fetching %d job ids in %d sacct batch(es)", len(job_ids), len(batches))
        if self.max_workers > 1 and len(batches) > 1:
            with ThreadPoolExecutor(max_workers=self.max_workers) as executor:
                results = list(executor.map(self._fetch_batch, batches))
        else:
            results = [self._fetch_batch(b) for b in batches]

        records = [r for batch_records in results for r in batch_records]
        logger.info("done fetching information (%d jobs and job steps)", len(records))
        return records

    def records(self, selection_args: Sequence[str] = ()) -> List[AccountingRecord]:
        """All records matching the sacct selection options."""
        logger.info("fetching job list...")
        return self.fetch(self.list_job_ids(selection_args))

    def job_records(self, job_id: str) -> List[AccountingRecord]:
        """Records of a single job and its steps."""
        lines = self._sacct(["-o", ",".join(SACCT_FIELDS), "-j", job_id])
        return list(parse_sacct_lines(lines))


class DumpSource:
    """Accounting records replayed from saved `sacct -P` output."""

    def __init__(self, path: str):
        self.path = path

    def records(self, selection_args: Sequence[str] = ()) -> List[AccountingRecord]:
        if selection_args:
            logger.warning("ignoring sacct selection options with a dump file: %s", " ".join(selection_args))
        with open(self.path, "r", encoding="utf-8") as f:
            return list(parse_sacct_lines(f))

    def job_records(self, job_id: str) -> List[AccountingRecord]:
        return [
            r for r in self.records()
            if r.job_id == job_id or r.parent_job_id == job_id
        ]


class ScontrolExpander:
    """Hostlist expander backed by `scontrol show hostnames`."""

    def __init__(self, executable: str = "scontrol"):
        self.executable = executable
        self._cache: Dict[str, List[str]] = {}

    def __call__(self, expr: str) -> List[str]:
        expr = (expr or "").strip()
        if expr in NO_NODES:
            return []
        if expr not in self._cache:
            out = run_command([self.executable, "show", "hostnames", expr])
            self._cache[expr] = sorted({h.strip() for h in out.splitlines() if h.strip()})
        return self._cache[expr]
