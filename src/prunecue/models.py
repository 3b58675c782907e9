"""Core data models for prunecue."""

from __future__ import annotations

import subprocess
from dataclasses import dataclass, field, replace
from typing import IO, Union

# Tables the store's deletion verb accepts, in plan order.
CATEGORIES: tuple[str, ...] = ("Request", "Cert", "CRL")

# HRESULT 0x800705AA: insufficient system resources (version store exhausted).
TRANSIENT_EXIT_CODE = -2147023446

# HRESULT 0x800705B4: operation timed out. Assigned by the scheduler on kill.
TIMEOUT_EXIT_CODE = -2147023436


def signed32(code: int) -> int:
    """Normalise an unsigned DWORD exit status to its signed 32-bit value."""
    if code > 0x7FFFFFFF:
        return code - (1 << 32)
    return code


@dataclass(frozen=True)
class WorkUnit:
    """One (category, year) deletion job."""

    category: str
    year: int
    boundary: str  # Formatted timestamp, passed verbatim to the command
    attempt: int = 0

    def next_attempt(self) -> WorkUnit:
        return replace(self, attempt=self.attempt + 1)

    @property
    def key(self) -> tuple[str, int]:
        return (self.category, self.year)


@dataclass(frozen=True)
class AttemptResult:
    """Audit record of one execution of one work unit."""

    category: str
    year: int
    boundary: str
    attempt: int
    exit_code: int
    duration: float  # Seconds
    stdout_path: str
    stderr_path: str
    command_line: str

    @property
    def succeeded(self) -> bool:
        return self.exit_code == 0

    @property
    def timed_out(self) -> bool:
        return self.exit_code == TIMEOUT_EXIT_CODE

    def as_row(self) -> list[str]:
        return [
            self.category,
            str(self.year),
            self.boundary,
            str(self.attempt),
            str(self.exit_code),
            f"{self.duration:.3f}",
            self.stdout_path,
            self.stderr_path,
            self.command_line,
        ]


@dataclass(frozen=True)
class Retry:
    """Run the unit again after `delay` seconds."""

    delay: float


@dataclass(frozen=True)
class GiveUp:
    """The attempt's record is final for its (category, year)."""

    succeeded: bool = False


Decision = Union[Retry, GiveUp]


@dataclass
class UnitHandle:
    """A started attempt, as tracked by the runner."""

    unit: WorkUnit
    command_line: str
    stdout_path: str
    stderr_path: str
    started_at: float
    process: subprocess.Popen | None = None
    exit_code: int | None = None
    killed: bool = False
    _files: list[IO] = field(default_factory=list, repr=False)
