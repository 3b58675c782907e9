"""Start, poll and kill the per-unit deletion command."""

from __future__ import annotations

import logging
import os
import re
import shlex
import shutil
import subprocess
import time
from datetime import datetime
from pathlib import Path
from typing import Callable, Sequence

from prunecue.errors import CommandNotFound, ConfigError
from prunecue.models import UnitHandle, WorkUnit, signed32

logger = logging.getLogger(__name__)

DEFAULT_VERB = "-deleterow"

# Seconds to wait for a killed child to be reaped.
KILL_WAIT = 5.0


def render_command(argv: Sequence[str]) -> str:
    if os.name == "nt":
        return subprocess.list2cmdline(list(argv))
    return shlex.join(argv)


class UnitRunner:
    """
    Runs one unit's command as a child process.

    Output goes to two files per attempt so concurrent units never share
    a file. Nothing touches the filesystem until the first `start`.

    Example:
        runner = UnitRunner(["certutil"], log_dir="C:/Temp/prunecue")
        handle = runner.start(unit)
        while runner.poll(handle) is None:
            time.sleep(0.25)
    """

    def __init__(
        self,
        command: Sequence[str],
        *,
        verb: str = DEFAULT_VERB,
        log_dir: str | Path,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if not command:
            raise ConfigError("Command must name an executable.")
        self.command = list(command)
        self.verb = verb
        self.log_dir = Path(log_dir)
        self._clock = clock

    # --- Command line ---

    def argv(self, unit: WorkUnit) -> list[str]:
        return [*self.command, self.verb, unit.boundary, unit.category]

    def command_line(self, unit: WorkUnit) -> str:
        return render_command(self.argv(unit))

    def check_available(self) -> str:
        """Resolve the executable, raising CommandNotFound if it is missing."""
        resolved = shutil.which(self.command[0])
        if resolved is None:
            raise CommandNotFound(f"Command not found on this host: {self.command[0]}")
        return resolved

    def artifact_paths(self, unit: WorkUnit, stamp: str) -> tuple[Path, Path]:
        digits = re.sub(r"\D", "", unit.boundary)
        base = f"{unit.category}_{digits}_a{unit.attempt}_{stamp}"
        return self.log_dir / f"{base}.out.log", self.log_dir / f"{base}.err.log"

    # --- Process lifecycle ---

    def start(self, unit: WorkUnit) -> UnitHandle:
        """
        Spawn the command for `unit` with output redirected to its artifacts.

        Raises:
            OSError: If the log directory or artifacts cannot be created, or
                the process cannot be spawned.
        """
        self.log_dir.mkdir(parents=True, exist_ok=True)
        stamp = datetime.now().strftime("%Y%m%d-%H%M%S-%f")
        out_path, err_path = self.artifact_paths(unit, stamp)
        argv = self.argv(unit)

        out = open(out_path, "wb")
        try:
            err = open(err_path, "wb")
        except OSError:
            out.close()
            raise
        try:
            process = subprocess.Popen(argv, stdin=subprocess.DEVNULL, stdout=out, stderr=err)
        except OSError:
            out.close()
            err.close()
            raise

        handle = UnitHandle(
            unit=unit,
            command_line=render_command(argv),
            stdout_path=str(out_path),
            stderr_path=str(err_path),
            started_at=self._clock(),
            process=process,
        )
        handle._files.extend([out, err])
        logger.debug("Started pid %s: %s", process.pid, handle.command_line)
        return handle

    def poll(self, handle: UnitHandle) -> int | None:
        """Exit status if the process has exited, else None. Never blocks."""
        if handle.exit_code is not None:
            return handle.exit_code
        code = handle.process.poll()
        if code is None:
            return None
        handle.exit_code = signed32(code)
        self._close(handle)
        return handle.exit_code

    def kill(self, handle: UnitHandle) -> None:
        """Kill the process. A no-op if it already exited."""
        process = handle.process
        if process is None or process.poll() is not None:
            self._close(handle)
            return
        try:
            process.kill()
        except ProcessLookupError:
            # Exited between poll() and kill()
            pass
        try:
            process.wait(timeout=KILL_WAIT)
        except subprocess.TimeoutExpired:
            logger.warning("pid %s did not exit within %.0fs of kill", process.pid, KILL_WAIT)
        handle.killed = True
        self._close(handle)

    def elapsed(self, handle: UnitHandle) -> float:
        return self._clock() - handle.started_at

    def _close(self, handle: UnitHandle) -> None:
        for f in handle._files:
            f.close()
        handle._files.clear()
