"""Exceptions raised by prunecue."""

from __future__ import annotations


class PrunecueError(Exception):
    """Base class for run-level failures."""


class ConfigError(PrunecueError, ValueError):
    """Invalid option or input value."""


class InvalidRange(ConfigError):
    """The requested cutoff/year range cannot be planned."""


class CommandNotFound(PrunecueError):
    """The deletion command is not available on this host."""


class RunDeclined(PrunecueError):
    """The operator declined every year of the plan."""


class SummaryWriteError(PrunecueError, OSError):
    """The run summary could not be written completely."""
