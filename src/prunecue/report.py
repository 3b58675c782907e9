"""Fold attempt results into tallies and durable run records."""

from __future__ import annotations

import csv
import json
import logging
import os
import tempfile
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Iterable

from prunecue.errors import SummaryWriteError
from prunecue.models import AttemptResult

logger = logging.getLogger(__name__)

SUMMARY_COLUMNS: tuple[str, ...] = (
    "category",
    "year",
    "boundary",
    "attempt",
    "exit_code",
    "duration_seconds",
    "stdout_path",
    "stderr_path",
    "command_line",
)


@dataclass
class CategoryTally:
    """Success/failure record counts for one category."""

    category: str
    ok: int = 0
    failed: int = 0

    @property
    def total(self) -> int:
        return self.ok + self.failed


def tally(
    results: Iterable[AttemptResult],
    categories: Iterable[str] | None = None,
) -> dict[str, CategoryTally]:
    """
    Count every attempt record per category.

    A unit that failed transiently and then succeeded contributes one
    failure and one success. Categories listed in `categories` appear even
    with no records; others follow in order of first appearance.
    """
    tallies: dict[str, CategoryTally] = {}
    for category in categories or ():
        tallies[category] = CategoryTally(category)
    for result in results:
        entry = tallies.setdefault(result.category, CategoryTally(result.category))
        if result.succeeded:
            entry.ok += 1
        else:
            entry.failed += 1
    return tallies


def format_tally(tallies: dict[str, CategoryTally]) -> str:
    return "\n".join(f"{t.category}: OK={t.ok} Fail={t.failed}" for t in tallies.values())


def run_basename(categories: Iterable[str], first_year: int, last_year: int, stamp: str) -> str:
    return f"prune_{'-'.join(categories)}_{first_year}-{last_year}_{stamp}"


def summary_path(
    log_dir: str | Path,
    categories: Iterable[str],
    first_year: int,
    last_year: int,
    stamp: str,
) -> Path:
    return Path(log_dir) / f"{run_basename(categories, first_year, last_year, stamp)}.csv"


def write_summary(results: Iterable[AttemptResult], path: str | Path) -> Path:
    """
    Write one CSV row per attempt, all or nothing.

    Rows go to a temporary sibling that replaces `path` only once fully
    written and flushed.

    Raises:
        SummaryWriteError: If any part of the write fails. No file is left
            at `path` in that case.
    """
    path = Path(path)
    tmp_name = None
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=path.parent)
        with os.fdopen(fd, "w", newline="", encoding="utf-8") as f:
            writer = csv.writer(f)
            writer.writerow(SUMMARY_COLUMNS)
            for result in results:
                writer.writerow(result.as_row())
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_name, path)
    except OSError as e:
        if tmp_name is not None and os.path.exists(tmp_name):
            os.unlink(tmp_name)
        raise SummaryWriteError(f"Could not write summary {path}: {e}") from e
    logger.info("Wrote summary %s", path)
    return path


class AttemptJournal:
    """
    Append-only JSON Lines log of attempts as they finish.

    Each line is flushed to disk before the scheduler moves on, so the
    attempts completed so far survive a stopped host process.
    """

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)

    def append(self, result: AttemptResult) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        line = json.dumps(asdict(result), sort_keys=True)
        with open(self.path, "a", encoding="utf-8") as f:
            f.write(line + "\n")
            f.flush()
            os.fsync(f.fileno())

    def read(self) -> list[AttemptResult]:
        if not self.path.exists():
            return []
        with open(self.path, encoding="utf-8") as f:
            return [AttemptResult(**json.loads(line)) for line in f if line.strip()]
