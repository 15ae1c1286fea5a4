"""
Unit tests for the cost model, job step aggregation and statistics.

Run with: pytest test_model.py -v
"""

import pytest
from decimal import Decimal

from .aggregate import (
    AccountingRecord, JobStepAggregator, PeekableStream, parse_energy, parse_runtime,
)
from .config import parse_config
from .errors import SourceContractError
from .model import (
    CostModel, CostRow, JobRecord, compute_job_cost, energy_rate_cost, time_rate_cost,
    valid_energy,
)
from .stats import cost_table_columns, quantile_percents, summarize, summarize_rows

ONE_YEAR = 365 * 24 * 3600


def rec(job_id, elapsed="00:10:00", energy="", nodes="a[0-1]"):
    return AccountingRecord(job_id=job_id, elapsed=elapsed, energy=energy, node_list=nodes)


class TestCostModel:
    """Tests for per-job cost computation."""

    @pytest.fixture
    def power_config(self):
        return parse_config("nodes Base a[0-3]\n    rate Power 1000 1/a\n")

    def test_one_year_two_nodes(self, power_config):
        row = compute_job_cost(power_config, JobRecord("1", ONE_YEAR, None, "a[0-1]"))
        assert row.rate_costs == {"Power": Decimal(2000)}
        assert row.total_cost == Decimal(2000)
        assert row.node_count == 2
        assert row.group_nodes == {"Base": 2}

    def test_zero_overlap(self, power_config):
        row = compute_job_cost(power_config, JobRecord("1", ONE_YEAR, 1000, "b[0-1]"))
        assert row.rate_costs == {}
        assert row.group_nodes == {}
        assert row.total_cost == 0

    def test_partial_overlap_counts_only_shared_nodes(self, power_config):
        row = compute_job_cost(power_config, JobRecord("1", ONE_YEAR, None, "a[2-5]"))
        assert row.node_count == 4
        assert row.group_nodes == {"Base": 2}
        assert row.total_cost == Decimal(2000)

    def test_malformed_node_list(self, power_config):
        with pytest.raises(SourceContractError, match="job '7': unbalanced"):
            compute_job_cost(power_config, JobRecord("7", 60, None, "a[1-"))

    def test_hourly_rate(self):
        config = parse_config("nodes Base a[0-3]\n    rate Cooling 1 1/h\n")
        row = compute_job_cost(config, JobRecord("1", 3600, None, "a[0-1]"))
        assert row.total_cost == Decimal(2)

    def test_energy_rate(self):
        config = parse_config("nodes Base a[0-3]\n    energy-rate Power 30 c/kWh\n")
        row = compute_job_cost(config, JobRecord("1", 60, 3600000, "a0"))
        assert row.rate_costs == {"Power": Decimal("0.3")}

    def test_energy_rate_skipped_without_energy(self):
        config = parse_config("nodes Base a[0-3]\n    energy-rate Power 30 c/kWh\n")
        row = compute_job_cost(config, JobRecord("1", 60, None, "a0"))
        assert "Power" not in row.rate_costs
        assert row.total_cost == 0
        assert row.group_nodes == {"Base": 1}

    def test_wrapped_energy_ignored(self):
        config = parse_config("nodes Base a[0-3]\n    energy-rate Power 30 c/kWh\n")
        row = compute_job_cost(config, JobRecord("1", 60, 10 ** 18, "a0"))
        assert row.energy_joules is None
        assert row.rate_costs == {}

    def test_overlapping_groups_with_same_rate_name(self):
        config = parse_config(
            "nodes Base a[0-3]\n    rate Cooling 1 1/h\n"
            "nodes Hot a[2-5]\n    rate Cooling 1 1/h\n"
        )
        row = compute_job_cost(config, JobRecord("1", 3600, None, "a[0-3]"))
        assert row.rate_costs == {"Base/Cooling": Decimal(4), "Hot/Cooling": Decimal(2)}
        assert row.total_cost == Decimal(6)

    def test_cost_linear_in_nodes(self):
        one = time_rate_cost(Decimal(87600), 1, 3600)
        assert one == Decimal("0.01")
        assert time_rate_cost(Decimal(87600), 3, 3600) == 3 * one

    def test_decimal_precision(self):
        """1 c/s over one second on one node is exactly one cent."""
        config = parse_config("nodes A a1\n    rate R 1 c/s\n")
        row = compute_job_cost(config, JobRecord("1", 1, None, "a1"))
        assert row.total_cost == Decimal("0.01")

    def test_energy_cost_formula(self):
        assert energy_rate_cost(Decimal(1000), 3600000) == Decimal(1)

    def test_valid_energy(self):
        assert valid_energy(None) is None
        assert valid_energy(-1) is None
        assert valid_energy(10 ** 18) is None
        assert valid_energy(10 ** 18 - 1) == 10 ** 18 - 1

    def test_runtime_hours(self):
        row = CostRow(job_id="1", node_count=1, runtime_seconds=5400, energy_joules=None)
        assert row.runtime_hours == Decimal("1.5")

    def test_to_dict(self, power_config):
        row = CostModel(power_config).compute(JobRecord("7", ONE_YEAR, 5, "a0"))
        d = row.to_dict()
        assert d["job_id"] == "7"
        assert d["energy_joules"] == 5
        assert Decimal(d["total_cost"]) == 1000
        assert list(d["rate_costs"]) == ["Power"]


class TestAggregate:
    """Tests for folding job steps into jobs."""

    def test_parse_runtime(self):
        assert parse_runtime("00:10:00") == 600
        assert parse_runtime("1-02:03:04") == 93784
        assert parse_runtime("05:30") == 330
        assert parse_runtime("365-00:00:00") == ONE_YEAR

    @pytest.mark.parametrize("text", ["", "abc", "1:2:3:4", "UNLIMITED", "10"])
    def test_parse_runtime_invalid(self, text):
        with pytest.raises(SourceContractError):
            parse_runtime(text)

    def test_parse_energy(self):
        assert parse_energy("") is None
        assert parse_energy("42") == 42
        assert parse_energy("18446744073709551615") is None
        with pytest.raises(SourceContractError):
            parse_energy("12a")

    def test_peekable_stream(self):
        stream = PeekableStream([1, 2])
        assert stream.peek() == 1
        assert next(stream) == 1
        assert stream.peek() == 2
        assert list(stream) == [2]
        assert stream.peek("end") == "end"

    def test_step_energies_summed(self):
        records = [
            rec("42", "00:10:00", "", "a[0-1]"),
            rec("42.0", energy="100"),
            rec("42.1", energy="50"),
            rec("43", "00:05:00", "", "b1"),
        ]
        jobs = list(JobStepAggregator(records).jobs())
        assert [j.job_id for j in jobs] == ["42", "43"]
        assert jobs[0].energy_joules == 150
        assert jobs[0].runtime_seconds == 600
        assert jobs[0].node_list == "a[0-1]"
        assert jobs[1].energy_joules is None
        assert jobs[1].runtime_seconds == 300

    def test_job_emitted_after_following_record(self):
        records = [
            rec("42", nodes="A"),
            rec("42.0", energy="100"),
            rec("42.1", energy="50"),
            rec("43", "00:05:00", nodes="B"),
        ]
        consumed = []

        def feed():
            for r in records:
                consumed.append(r.job_id)
                yield r

        jobs = JobStepAggregator(feed()).jobs()
        first = next(jobs)
        assert first.job_id == "42"
        assert first.energy_joules == 150
        assert consumed == ["42", "42.0", "42.1", "43"]
        second = next(jobs)
        assert second.job_id == "43"
        with pytest.raises(StopIteration):
            next(jobs)

    def test_parent_energy_not_counted(self):
        records = [rec("42", energy="999"), rec("42.0", energy="100"), rec("42.1", energy="50")]
        (job,) = JobStepAggregator(records).jobs()
        assert job.energy_joules == 150

    def test_wrapped_step_energy_ignored(self):
        records = [rec("42"), rec("42.0", energy="18446744073709551615"), rec("42.1", energy="7")]
        (job,) = JobStepAggregator(records).jobs()
        assert job.energy_joules == 7

    def test_zero_energy_is_absent(self):
        records = [rec("42"), rec("42.0", energy="0")]
        (job,) = JobStepAggregator(records).jobs()
        assert job.energy_joules is None

    def test_job_without_nodes_dropped(self):
        aggregator = JobStepAggregator([rec("41", nodes="None assigned"), rec("42")])
        assert [j.job_id for j in aggregator.jobs()] == ["42"]
        assert aggregator.jobs_dropped == 1
        assert aggregator.records_seen == 2

    def test_step_before_job(self):
        with pytest.raises(SourceContractError, match="before any job"):
            list(JobStepAggregator([rec("42.0")]).jobs())

    def test_step_of_other_job(self):
        with pytest.raises(SourceContractError, match="does not follow its job"):
            list(JobStepAggregator([rec("42"), rec("43.0")]).jobs())


class TestStatistics:
    """Tests for column statistics."""

    def test_quantile_percents(self):
        assert quantile_percents(25) == [0, 25, 50, 75, 100]
        assert quantile_percents(30) == [0, 30, 60, 90]
        assert len(quantile_percents(10)) == 11
        with pytest.raises(ValueError):
            quantile_percents(0)
        with pytest.raises(ValueError):
            quantile_percents(101)

    def test_one_to_five(self):
        column = summarize([1, 2, 3, 4, 5], 25)
        assert [q.value for q in column.quantiles] == [1, 2, 3, 4, 5]
        assert column.sum == 15
        assert column.active_count == 5
        assert column.total_count == 5
        assert column.mean == 3
        assert abs(column.deviation - Decimal(2).sqrt()) < Decimal("1E-20")
        assert column.quantiles[0].cumulative_percent == Decimal("6.66667")
        assert column.quantiles[-1].cumulative_percent == Decimal(100)

    def test_unsorted_input(self):
        column = summarize([5, 1, 4, 2, 3], 50)
        assert [q.value for q in column.quantiles] == [1, 3, 5]

    def test_absent_values(self):
        column = summarize([None, 2, None, 4], 50)
        assert column.total_count == 4
        assert column.active_count == 2
        assert [q.value for q in column.quantiles] == [2, 2, 4]
        assert column.mean == 3
        assert column.deviation == 1
        assert column.total_mean == Decimal("1.5")
        assert abs(column.total_deviation - Decimal("2.75").sqrt()) < Decimal("1E-20")

    def test_all_absent(self):
        column = summarize([None, None], 25)
        assert column.active_count == 0
        assert column.total_count == 2
        assert column.sum == 0
        assert column.quantiles == []
        assert column.mean is None
        assert column.total_deviation is None

    def test_zero_sum_has_no_cumulative_percent(self):
        column = summarize([0, 0], 50)
        assert all(q.cumulative_percent is None for q in column.quantiles)
        assert column.deviation == 0

    def test_table_columns(self):
        config = parse_config(
            "currency Euro\n"
            "nodes Base a[0-3]\n    rate Procurement 1 1/a\n    rate Cooling 1 1/a\n"
            "nodes GPU a[2-3]\n    energy-rate Power 1 1/kWh\n"
        )
        columns = cost_table_columns(config)
        assert [c.name for c in columns] == [
            "Size", "Runtime", "Energy", "Base", "Procurement", "Cooling",
            "GPU", "Power", "Total",
        ]
        assert [c.kind for c in columns][3:] == [
            "group", "rate", "rate", "group", "rate", "total",
        ]
        assert columns[-1].unit == "Euro"

    def test_summarize_rows_idempotent(self):
        config = parse_config("nodes Base a[0-3]\n    rate Power 1000 1/a\n")
        model = CostModel(config)
        jobs = [
            JobRecord("1", 3600, 100, "a[0-1]"),
            JobRecord("2", 7200, None, "a[0-3]"),
            JobRecord("3", 60, None, "b1"),
        ]
        columns = cost_table_columns(config)

        def run():
            rows = [model.compute(j) for j in jobs]
            return [s.to_dict() for s in summarize_rows(rows, columns, 10)]

        assert run() == run()
        stats = {s["name"]: s for s in run()}
        assert stats["Base"]["active_count"] == 2
        assert stats["Base"]["total_count"] == 3
        assert stats["Energy"]["active_count"] == 1
