"""Run configuration for prunecue."""

from __future__ import annotations

import tempfile
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path

from prunecue.errors import ConfigError
from prunecue.models import CATEGORIES, TRANSIENT_EXIT_CODE
from prunecue.planner import check_categories, default_start_year
from prunecue.runner import DEFAULT_VERB
from prunecue.sweep import DEFAULT_POLL_INTERVAL, MAX_CONCURRENCY


def default_log_dir() -> Path:
    return Path(tempfile.gettempdir()) / "prunecue"


@dataclass
class SweepConfig:
    """Configuration for one sweep."""

    cutoff: datetime
    categories: tuple[str, ...] = CATEGORIES
    start_year: int | None = None      # None = max(2000, cutoff.year - 15)
    concurrency: int = 2
    timeout: float = 0                 # Seconds per attempt, 0 = unbounded
    max_retries: int = 4
    log_dir: Path = field(default_factory=default_log_dir)
    command: tuple[str, ...] = ("certutil",)
    verb: str = DEFAULT_VERB
    transient_code: int = TRANSIENT_EXIT_CODE
    poll_interval: float = DEFAULT_POLL_INTERVAL
    preview: bool = False
    confirm: bool = False              # Ask before each year

    @property
    def first_year(self) -> int:
        if self.start_year is None:
            return default_start_year(self.cutoff)
        return self.start_year

    @property
    def last_year(self) -> int:
        return self.cutoff.year

    def validate(self) -> None:
        """Raise ConfigError for values no sweep can run with."""
        self.categories = check_categories(self.categories)
        if not 1 <= self.concurrency <= MAX_CONCURRENCY:
            raise ConfigError(
                f"Concurrency must be between 1 and {MAX_CONCURRENCY}, got {self.concurrency}"
            )
        if self.timeout < 0:
            raise ConfigError(f"Timeout must be >= 0, got {self.timeout}")
        if self.max_retries < 0:
            raise ConfigError(f"Max retries must be >= 0, got {self.max_retries}")
        if self.poll_interval <= 0:
            raise ConfigError(f"Poll interval must be > 0, got {self.poll_interval}")
        if not self.command or not self.command[0]:
            raise ConfigError("Command must name an executable.")
