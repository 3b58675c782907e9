"""The prunecue command line."""

import csv
import shlex
import sys

import pytest

from prunecue import TRANSIENT_EXIT_CODE
from prunecue_cli import cli


@pytest.fixture
def fake_command(tmp_path):
    """A deletion command that records its arguments and succeeds."""
    script = tmp_path / "fake_deleterow.py"
    script.write_text("import sys\nprint(' '.join(sys.argv[1:]))\n")
    return shlex.join([sys.executable, str(script)])


def run_cli(*args):
    with pytest.raises(SystemExit) as exc:
        cli.main(list(args))
    return exc.value.code


class TestPreview:
    def test_lists_every_unit_in_plan_order(self, tmp_path, capsys):
        log_dir = tmp_path / "logs"

        cli.main([
            "--cutoff", "2019-12-31",
            "--start-year", "2017",
            "--category", "Request",
            "--category", "CRL",
            "--command", "certutil",
            "--log-dir", str(log_dir),
            "--preview",
        ])

        lines = [l for l in capsys.readouterr().out.splitlines() if l.startswith("certutil")]
        assert lines == [
            "certutil -deleterow '12/31/2017 23:59:59' Request",
            "certutil -deleterow '12/31/2018 23:59:59' Request",
            "certutil -deleterow '12/31/2019 00:00:00' Request",
            "certutil -deleterow '12/31/2017 23:59:59' CRL",
            "certutil -deleterow '12/31/2018 23:59:59' CRL",
            "certutil -deleterow '12/31/2019 00:00:00' CRL",
        ]
        assert not log_dir.exists()

    def test_preview_does_not_need_command(self, tmp_path, capsys):
        cli.main([
            "--cutoff", "2019-12-31",
            "--start-year", "2019",
            "--command", "no-such-command-xyz",
            "--log-dir", str(tmp_path / "logs"),
            "--preview",
        ])

        assert "no-such-command-xyz -deleterow" in capsys.readouterr().out


class TestRun:
    def test_successful_run_writes_summary(self, tmp_path, capsys, fake_command):
        log_dir = tmp_path / "logs"

        cli.main([
            "--cutoff", "2019-12-31",
            "--start-year", "2017",
            "--category", "Request",
            "--command", fake_command,
            "--log-dir", str(log_dir),
            "--no-tui",
        ])

        out = capsys.readouterr().out
        assert "Request: OK=3 Fail=0" in out

        summaries = list(log_dir.glob("prune_Request_2017-2019_*.csv"))
        assert len(summaries) == 1
        with open(summaries[0], newline="", encoding="utf-8") as f:
            rows = list(csv.DictReader(f))
        assert sorted(r["year"] for r in rows) == ["2017", "2018", "2019"]
        assert {r["exit_code"] for r in rows} == {"0"}
        assert len(list(log_dir.glob("prune_Request_2017-2019_*.jsonl"))) == 1
        assert len(list(log_dir.glob("Request_*.out.log"))) == 3

    def test_tally_printed_once(self, tmp_path, capsys, fake_command):
        common = [
            "--cutoff", "2019-12-31",
            "--start-year", "2019",
            "--category", "CRL",
            "--command", fake_command,
        ]

        cli.main(common + ["--log-dir", str(tmp_path / "plain"), "--no-tui"])
        out = capsys.readouterr().out
        assert out.count("CRL: OK=1 Fail=0") == 1
        assert "Sweep Results" not in out
        assert "Summary:" in out

        cli.main(common + ["--log-dir", str(tmp_path / "live")])
        out = capsys.readouterr().out
        assert "Sweep Results" in out
        assert "OK=" not in out

    def test_unit_failures_do_not_fail_run(self, tmp_path, capsys):
        script = tmp_path / "fail.py"
        script.write_text("import sys\nsys.exit(5)\n")

        cli.main([
            "--cutoff", "2019-12-31",
            "--start-year", "2019",
            "--category", "Cert",
            "--command", shlex.join([sys.executable, str(script)]),
            "--log-dir", str(tmp_path / "logs"),
            "--verbose",
        ])

        assert "Cert: OK=0 Fail=1" in capsys.readouterr().out


class TestExitCodes:
    def test_future_cutoff(self, tmp_path):
        assert run_cli("--cutoff", "2999-01-01", "--log-dir", str(tmp_path)) == cli.EXIT_USAGE

    def test_inverted_range(self, tmp_path):
        code = run_cli("--cutoff", "2019-12-31", "--start-year", "2020", "--log-dir", str(tmp_path))
        assert code == cli.EXIT_USAGE

    def test_bad_concurrency(self, tmp_path):
        code = run_cli("--cutoff", "2019-12-31", "--concurrency", "0", "--log-dir", str(tmp_path))
        assert code == cli.EXIT_USAGE

    def test_missing_command(self, tmp_path):
        log_dir = tmp_path / "logs"
        code = run_cli(
            "--cutoff", "2019-12-31",
            "--command", "no-such-command-xyz",
            "--log-dir", str(log_dir),
        )

        assert code == cli.EXIT_USAGE
        assert not log_dir.exists()

    def test_every_year_declined(self, tmp_path, monkeypatch, fake_command):
        monkeypatch.setattr(cli.Confirm, "ask", lambda *args, **kwargs: False)
        log_dir = tmp_path / "logs"

        code = run_cli(
            "--cutoff", "2019-12-31",
            "--start-year", "2018",
            "--command", fake_command,
            "--log-dir", str(log_dir),
            "--confirm",
        )

        assert code == cli.EXIT_FAILED
        assert not log_dir.exists()


def test_transient_code_accepts_hex():
    assert cli._exit_code_arg("0x800705AA") == TRANSIENT_EXIT_CODE
    assert cli._exit_code_arg(str(TRANSIENT_EXIT_CODE)) == TRANSIENT_EXIT_CODE
