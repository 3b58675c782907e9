"""Partition a cutoff into per-(category, year) work units."""

from __future__ import annotations

from datetime import datetime
from typing import Callable, Iterable

from prunecue.errors import ConfigError, InvalidRange, RunDeclined
from prunecue.models import CATEGORIES, WorkUnit

# Numeric directives only, so the result never depends on the host locale.
BOUNDARY_FORMAT = "%m/%d/%Y %H:%M:%S"

EARLIEST_YEAR = 2000
DEFAULT_LOOKBACK_YEARS = 15


def format_boundary(moment: datetime) -> str:
    return moment.strftime(BOUNDARY_FORMAT)


def year_end(year: int) -> datetime:
    """Last whole second of `year`."""
    return datetime(year, 12, 31, 23, 59, 59)


def default_start_year(cutoff: datetime) -> int:
    return max(EARLIEST_YEAR, cutoff.year - DEFAULT_LOOKBACK_YEARS)


def parse_cutoff(text: str) -> datetime:
    """
    Parse a cutoff given on the command line.

    Accepts ISO-8601 dates or datetimes ("2019-12-31", "2019-12-31T18:00:00")
    and the boundary format itself ("12/31/2019 18:00:00").
    """
    value = text.strip()
    try:
        parsed = datetime.fromisoformat(value)
    except ValueError:
        try:
            parsed = datetime.strptime(value, BOUNDARY_FORMAT)
        except ValueError:
            raise ConfigError(
                f"Invalid cutoff: {text!r}. Use YYYY-MM-DD[THH:MM:SS] or 'MM/DD/YYYY HH:MM:SS'."
            ) from None
    # Boundaries are host-local wall clock
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone().replace(tzinfo=None)
    return parsed.replace(microsecond=0)


def check_categories(categories: Iterable[str]) -> tuple[str, ...]:
    selected = tuple(categories)
    if not selected:
        raise ConfigError("At least one category is required.")
    unknown = [c for c in selected if c not in CATEGORIES]
    if unknown:
        raise ConfigError(
            f"Unknown category: {', '.join(unknown)}. Choose from {', '.join(CATEGORIES)}."
        )
    if len(set(selected)) != len(selected):
        raise ConfigError(f"Duplicate category in {', '.join(selected)}.")
    return selected


def plan_units(
    cutoff: datetime,
    start_year: int,
    categories: Iterable[str],
    now: datetime | None = None,
) -> list[WorkUnit]:
    """
    Build the ordered work-unit list for a cutoff.

    Every category gets one unit per year in [start_year, cutoff.year].
    Earlier years are bounded by their last second, the cutoff year by the
    cutoff itself. Order is category-major, year-ascending.

    Raises:
        InvalidRange: If start_year is after the cutoff year, or the cutoff
            lies in the future.
        ConfigError: If categories is empty or names an unknown table.
    """
    selected = check_categories(categories)
    now = now or datetime.now()
    if cutoff > now:
        raise InvalidRange(
            f"Cutoff {format_boundary(cutoff)} is in the future (now {format_boundary(now)})."
        )
    if start_year > cutoff.year:
        raise InvalidRange(f"Start year {start_year} is after cutoff year {cutoff.year}.")

    units = []
    for category in selected:
        for year in range(start_year, cutoff.year + 1):
            bound = cutoff if year == cutoff.year else year_end(year)
            units.append(WorkUnit(category=category, year=year, boundary=format_boundary(bound)))
    return units


def confirm_years(
    units: list[WorkUnit],
    confirm: Callable[[int, list[WorkUnit]], bool],
) -> list[WorkUnit]:
    """
    Ask `confirm` once per year and keep only the accepted years' units.

    Plan order is preserved. Raises RunDeclined if nothing was accepted.
    """
    accepted = set()
    for year in sorted({u.year for u in units}):
        if confirm(year, [u for u in units if u.year == year]):
            accepted.add(year)
    if not accepted:
        raise RunDeclined("Every year was declined; nothing to do.")
    return [u for u in units if u.year in accepted]
