"""
Tests for the job-cost-meter and batch-cost-analyser command lines.

Accounting data is replayed from --sacct-dump files.

Run with: pytest test_cli.py -v
"""

import json

import pytest

from .cli import EXIT_CONFIG, EXIT_OK, EXIT_SOURCE, EXIT_USAGE, batch_main, job_main


CONFIG_TEXT = "nodes Base a[0-3]\n    rate Power 1000 1/a\n"

DUMP_TEXT = """\
42|365-00:00:00||a[0-1]
42.batch|365-00:00:00|100|a0
42.0|365-00:00:00|50|a[0-1]
43|01:00:00||b1
"""


@pytest.fixture(autouse=True)
def plain_env(monkeypatch):
    monkeypatch.setenv("NO_COLOR", "1")
    monkeypatch.delenv("SLURM_JOB_ID", raising=False)
    monkeypatch.delenv("SLURM_NODELIST", raising=False)


@pytest.fixture
def files(tmp_path):
    config = tmp_path / "rates.conf"
    config.write_text(CONFIG_TEXT)
    dump = tmp_path / "sacct.txt"
    dump.write_text(DUMP_TEXT)
    return str(config), str(dump)


class TestJobCli:
    """Tests for job-cost-meter."""

    def test_quiet(self, files, capsys):
        config, dump = files
        assert job_main([config, "-j", "42", "-q", "--sacct-dump", dump]) == EXIT_OK
        assert capsys.readouterr().out == "2000.00\n"

    def test_short(self, files, capsys):
        config, dump = files
        assert job_main([config, "-j", "42", "-s", "--sacct-dump", dump]) == EXIT_OK
        assert capsys.readouterr().out == "job cost estimate: 2000.00 dollar\n"

    def test_verbose_is_default(self, files, capsys):
        config, dump = files
        assert job_main([config, "-j", "42", "--sacct-dump", dump]) == EXIT_OK
        out = capsys.readouterr().out
        assert "Base (2 nodes):" in out
        assert "total: 2000.00 dollar" in out

    def test_json(self, files, capsys):
        config, dump = files
        assert job_main([config, "-j", "42", "-o", "--sacct-dump", dump]) == EXIT_OK
        data = json.loads(capsys.readouterr().out)
        assert data == [{"nodeset": "Base", "nodes": 2, "rates": [{"rate": "Power", "cost": "2000.00"}]}]

    def test_modes_exclusive(self, files):
        config, dump = files
        with pytest.raises(SystemExit) as exc:
            job_main([config, "-q", "-o", "--sacct-dump", dump])
        assert exc.value.code == EXIT_USAGE

    def test_epilog_environment(self, files, capsys, monkeypatch):
        config, dump = files
        monkeypatch.setenv("SLURM_JOB_ID", "42")
        monkeypatch.setenv("SLURM_NODELIST", "a[0-3]")
        assert job_main([config, "-q", "--sacct-dump", dump]) == EXIT_OK
        assert capsys.readouterr().out == "4000.00\n"

    def test_nodes_option(self, files, capsys):
        config, dump = files
        assert job_main([config, "-j", "42", "-n", "a0", "-q", "--sacct-dump", dump]) == EXIT_OK
        assert capsys.readouterr().out == "1000.00\n"

    def test_missing_job_id(self, files, capsys):
        config, dump = files
        assert job_main([config, "--sacct-dump", dump]) == EXIT_USAGE
        assert "SLURM_JOB_ID" in capsys.readouterr().err

    def test_config_error(self, tmp_path, files, capsys):
        _, dump = files
        bad = tmp_path / "bad.conf"
        bad.write_text("rate Power 1 1/a\nnodes A a1\nbogus\n")
        assert job_main([str(bad), "-j", "42", "--sacct-dump", dump]) == EXIT_CONFIG
        err = capsys.readouterr().err
        assert err.startswith("job-cost-meter configuration error:\n")
        assert "line 1: 'rate' command used before the first 'nodes' command" in err
        assert "line 3: unknown command 'bogus'" in err

    def test_missing_config(self, tmp_path, files, capsys):
        _, dump = files
        missing = str(tmp_path / "missing.conf")
        assert job_main([missing, "-j", "42", "--sacct-dump", dump]) == EXIT_CONFIG
        assert "no configuration file found" in capsys.readouterr().err

    def test_source_error(self, tmp_path, files, capsys):
        config, _ = files
        dump = tmp_path / "broken.txt"
        dump.write_text("42|junk\n")
        assert job_main([config, "-j", "42", "--sacct-dump", str(dump)]) == EXIT_SOURCE
        assert "please inform your system administrator" in capsys.readouterr().err

    def test_malformed_node_list(self, files, capsys):
        config, dump = files
        assert job_main([config, "-j", "42", "-n", "a[1-", "--sacct-dump", dump]) == EXIT_SOURCE
        err = capsys.readouterr().err
        assert "unbalanced '['" in err
        assert "please inform your system administrator" in err


class TestBatchCli:
    """Tests for batch-cost-analyser."""

    def test_both_tables_by_default(self, files, capsys):
        config, dump = files
        assert batch_main(["--sacct-dump", dump, config]) == EXIT_OK
        out = capsys.readouterr().out
        assert "Job" in out
        assert "total dev" in out

    def test_statistics_only(self, files, capsys):
        config, dump = files
        assert batch_main(["-s", "-i", "50", "--sacct-dump", dump, config]) == EXIT_OK
        out = capsys.readouterr().out
        assert "50%" in out
        assert "Job" not in out

    def test_details_only_quiet(self, files, capsys):
        config, dump = files
        assert batch_main(["-d", "-q", "--sacct-dump", dump, config]) == EXIT_OK
        out = capsys.readouterr().out
        assert "2000.00 dollar" in out
        assert "Runtime" not in out
        assert "total dev" not in out

    def test_statistics_only_quiet(self, files, capsys):
        config, dump = files
        assert batch_main(["-s", "-q", "--sacct-dump", dump, config]) == EXIT_OK
        out = capsys.readouterr().out
        assert "Total" in out
        assert "total dev" in out
        assert "Runtime" not in out
        assert "Power" not in out

    def test_max_runtime(self, files, capsys):
        config, dump = files
        assert batch_main(["-d", "-m", "3600", "--sacct-dump", dump, config]) == EXIT_OK
        captured = capsys.readouterr()
        assert "2000.00" not in captured.out
        assert "43" in captured.out

    def test_max_runtime_zero_disables_filter(self, files, capsys):
        config, dump = files
        assert batch_main(["-d", "-m", "0", "--sacct-dump", dump, config]) == EXIT_OK
        captured = capsys.readouterr()
        assert "2000.00" in captured.out
        assert "dropping job" not in captured.err

    @pytest.mark.parametrize("value", ["0", "101", "x"])
    def test_bad_increment(self, files, value):
        config, dump = files
        with pytest.raises(SystemExit) as exc:
            batch_main(["-i", value, "--sacct-dump", dump, config])
        assert exc.value.code == EXIT_USAGE

    def test_output_dir(self, files, tmp_path, capsys):
        config, dump = files
        out = tmp_path / "results"
        assert batch_main(["--output-dir", str(out), "--sacct-dump", dump, config]) == EXIT_OK
        data = json.loads((out / "results.json").read_text())
        assert [j["job_id"] for j in data["jobs"]] == ["42", "43"]

    def test_sacct_arguments_passed_through(self, files, monkeypatch, capsys):
        from . import slurm
        config, _ = files
        calls = []

        def fake_run(argv):
            calls.append(list(argv))
            return ""

        monkeypatch.setattr(slurm, "run_command", fake_run)
        assert batch_main([config, "-S", "2024-01-01", "-u", "alice"]) == EXIT_OK
        assert calls[0] == ["sacct", "-P", "-n", "-o", "jobid", "-S", "2024-01-01", "-u", "alice"]

    def test_source_error(self, files, capsys, monkeypatch):
        from . import slurm
        config, _ = files
        monkeypatch.setattr(slurm, "run_command", lambda argv: "1.0\n2\n")
        assert batch_main([config]) == EXIT_SOURCE
        assert "is a job step id" in capsys.readouterr().err
