"""Shared fakes for driving the scheduler without real processes."""

from __future__ import annotations

import pytest

from prunecue.models import UnitHandle, WorkUnit

HANG = None  # Outcome code for a process that never exits


class FakeClock:
    """Monotonic clock that only moves when the scheduler sleeps."""

    def __init__(self) -> None:
        self.now = 0.0
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


class FakeRunner:
    """
    Runner with scripted outcomes.

    `outcomes` maps (category, year) to a list of (exit_code, duration), one
    per attempt; the last entry repeats. exit_code HANG never exits.
    """

    def __init__(self, clock: FakeClock, outcomes=None, default=(0, 1.0)) -> None:
        self.clock = clock
        self.outcomes = outcomes or {}
        self.default = default
        self.started: list[WorkUnit] = []
        self.killed: list[WorkUnit] = []
        self.live = 0
        self.max_live = 0

    def _outcome(self, unit: WorkUnit):
        script = self.outcomes.get(unit.key, [self.default])
        return script[min(unit.attempt, len(script) - 1)]

    def command_line(self, unit: WorkUnit) -> str:
        return f"fake -deleterow '{unit.boundary}' {unit.category}"

    def start(self, unit: WorkUnit) -> UnitHandle:
        self.started.append(unit)
        self.live += 1
        self.max_live = max(self.max_live, self.live)
        base = f"{unit.category}_{unit.year}_a{unit.attempt}"
        return UnitHandle(
            unit=unit,
            command_line=self.command_line(unit),
            stdout_path=f"{base}.out.log",
            stderr_path=f"{base}.err.log",
            started_at=self.clock(),
        )

    def poll(self, handle: UnitHandle) -> int | None:
        if handle.exit_code is not None:
            return handle.exit_code
        if handle.killed:
            return None
        code, duration = self._outcome(handle.unit)
        if code is HANG or self.elapsed(handle) < duration:
            return None
        handle.exit_code = code
        self.live -= 1
        return code

    def kill(self, handle: UnitHandle) -> None:
        if handle.exit_code is None and not handle.killed:
            handle.killed = True
            self.killed.append(handle.unit)
            self.live -= 1

    def elapsed(self, handle: UnitHandle) -> float:
        return self.clock() - handle.started_at


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def make_runner(clock):
    def _make(outcomes=None, default=(0, 1.0)):
        return FakeRunner(clock, outcomes, default)
    return _make
