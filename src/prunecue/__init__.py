"""prunecue - Bounded-concurrency, retrying sweeps of date-bounded row deletions."""

from prunecue.config import SweepConfig
from prunecue.errors import (
    CommandNotFound,
    ConfigError,
    InvalidRange,
    PrunecueError,
    RunDeclined,
    SummaryWriteError,
)
from prunecue.models import (
    CATEGORIES,
    TIMEOUT_EXIT_CODE,
    TRANSIENT_EXIT_CODE,
    AttemptResult,
    GiveUp,
    Retry,
    UnitHandle,
    WorkUnit,
)
from prunecue.planner import confirm_years, parse_cutoff, plan_units
from prunecue.report import AttemptJournal, CategoryTally, format_tally, tally, write_summary
from prunecue.retry import RetryPolicy, backoff_delay
from prunecue.runner import UnitRunner
from prunecue.sweep import Sweep

__version__ = "0.1.0"
__all__ = [
    "Sweep",
    "SweepConfig",
    "UnitRunner",
    "RetryPolicy",
    "backoff_delay",
    "plan_units",
    "parse_cutoff",
    "confirm_years",
    "tally",
    "format_tally",
    "write_summary",
    "AttemptJournal",
    "CategoryTally",
    "WorkUnit",
    "AttemptResult",
    "UnitHandle",
    "Retry",
    "GiveUp",
    "CATEGORIES",
    "TRANSIENT_EXIT_CODE",
    "TIMEOUT_EXIT_CODE",
    "PrunecueError",
    "ConfigError",
    "InvalidRange",
    "CommandNotFound",
    "RunDeclined",
    "SummaryWriteError",
]
