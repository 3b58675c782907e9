"""UnitRunner against real child processes."""

import sys
import time
from pathlib import Path

import pytest

from prunecue import TRANSIENT_EXIT_CODE, CommandNotFound, UnitRunner, WorkUnit
from prunecue.models import signed32

UNIT = WorkUnit("Cert", 2019, "12/31/2019 23:59:59")


def python_runner(code: str, log_dir) -> UnitRunner:
    return UnitRunner([sys.executable, "-c", code], log_dir=log_dir)


def wait_for_exit(runner, handle, limit=10.0):
    deadline = time.monotonic() + limit
    while time.monotonic() < deadline:
        code = runner.poll(handle)
        if code is not None:
            return code
        time.sleep(0.02)
    raise AssertionError("process did not exit")


class TestCommandLine:
    def test_argv_order(self, tmp_path):
        runner = UnitRunner(["certutil"], log_dir=tmp_path)

        assert runner.argv(UNIT) == ["certutil", "-deleterow", "12/31/2019 23:59:59", "Cert"]
        assert "12/31/2019 23:59:59" in runner.command_line(UNIT)

    def test_check_available(self, tmp_path):
        UnitRunner([sys.executable], log_dir=tmp_path).check_available()
        with pytest.raises(CommandNotFound):
            UnitRunner(["no-such-command-xyz"], log_dir=tmp_path).check_available()

    def test_artifact_names(self, tmp_path):
        runner = UnitRunner(["certutil"], log_dir=tmp_path)
        out, err = runner.artifact_paths(UNIT.next_attempt(), "STAMP")

        assert out.name == "Cert_12312019235959_a1_STAMP.out.log"
        assert err.name == "Cert_12312019235959_a1_STAMP.err.log"


class TestProcesses:
    def test_captures_output_and_exit_code(self, tmp_path):
        code = "import sys; print(sys.argv[1:]); print('oops', file=sys.stderr); sys.exit(3)"
        runner = python_runner(code, tmp_path)

        handle = runner.start(UNIT)
        assert wait_for_exit(runner, handle) == 3

        stdout = Path(handle.stdout_path).read_text()
        assert "-deleterow" in stdout
        assert "12/31/2019 23:59:59" in stdout
        assert "Cert" in stdout
        assert "oops" in Path(handle.stderr_path).read_text()

    def test_artifacts_written_on_success(self, tmp_path):
        runner = python_runner("pass", tmp_path)
        handle = runner.start(UNIT)

        assert wait_for_exit(runner, handle) == 0
        assert Path(handle.stdout_path).exists()
        assert Path(handle.stderr_path).exists()

    def test_log_dir_created_on_first_start(self, tmp_path):
        log_dir = tmp_path / "logs" / "nested"
        runner = python_runner("pass", log_dir)
        assert not log_dir.exists()

        handle = runner.start(UNIT)
        wait_for_exit(runner, handle)

        assert log_dir.is_dir()

    def test_concurrent_attempts_do_not_collide(self, tmp_path):
        runner = python_runner("pass", tmp_path)
        handles = [runner.start(UNIT) for _ in range(3)]
        for h in handles:
            wait_for_exit(runner, h)

        assert len({h.stdout_path for h in handles}) == 3

    def test_poll_does_not_block(self, tmp_path):
        runner = python_runner("import time; time.sleep(30)", tmp_path)
        handle = runner.start(UNIT)
        try:
            started = time.monotonic()
            assert runner.poll(handle) is None
            assert time.monotonic() - started < 1.0
        finally:
            runner.kill(handle)

    def test_kill_running_process(self, tmp_path):
        runner = python_runner("import time; time.sleep(30)", tmp_path)
        handle = runner.start(UNIT)

        runner.kill(handle)

        assert handle.killed
        assert handle.process.poll() is not None

    def test_kill_after_exit_is_noop(self, tmp_path):
        runner = python_runner("pass", tmp_path)
        handle = runner.start(UNIT)
        wait_for_exit(runner, handle)

        runner.kill(handle)

        assert not handle.killed
        assert runner.poll(handle) == 0

    def test_elapsed_uses_clock(self, tmp_path):
        ticks = iter([100.0, 107.5])
        runner = UnitRunner([sys.executable, "-c", "pass"], log_dir=tmp_path, clock=lambda: next(ticks))
        handle = runner.start(UNIT)
        try:
            assert runner.elapsed(handle) == 7.5
        finally:
            wait_for_exit(runner, handle)


def test_signed32_normalises_dword_status():
    assert signed32(0x800705AA) == TRANSIENT_EXIT_CODE
    assert signed32(3) == 3
    assert signed32(-9) == -9
