#!/usr/bin/env python3
"""
prunecue: delete store rows older than a cutoff, one (table, year) at a time.

Usage:
    prunecue --cutoff 2019-12-31 --preview
    prunecue --cutoff 2019-12-31 --category Request --start-year 2017
    prunecue --cutoff "12/31/2019 00:00:00" --concurrency 3 --timeout 3600 --confirm
"""

from __future__ import annotations

import argparse
import logging
import os
import shlex
import sys
import time
from datetime import datetime
from pathlib import Path

from rich.console import Console
from rich.logging import RichHandler
from rich.prompt import Confirm

from prunecue.config import SweepConfig
from prunecue.errors import CommandNotFound, ConfigError, RunDeclined
from prunecue.models import CATEGORIES, TRANSIENT_EXIT_CODE, AttemptResult, WorkUnit, signed32
from prunecue.planner import confirm_years, parse_cutoff, plan_units
from prunecue.report import (
    AttemptJournal,
    format_tally,
    run_basename,
    summary_path,
    tally,
    write_summary,
)
from prunecue.retry import RetryPolicy
from prunecue.runner import DEFAULT_VERB, UnitRunner
from prunecue.sweep import MAX_CONCURRENCY, Sweep
from prunecue_cli.display import SweepDisplay, SweepState, print_results, print_simple_stats

EXIT_FAILED = 1
EXIT_USAGE = 2
EXIT_INTERRUPTED = 130


def configure_logging(verbose: bool = False, console: Console | None = None) -> None:
    """Configure logging for the CLI."""
    prunecue_logger = logging.getLogger("prunecue")
    prunecue_logger.handlers.clear()
    if verbose:
        prunecue_logger.setLevel(logging.DEBUG)
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter("%(levelname)s: %(message)s"))
        prunecue_logger.addHandler(handler)
    else:
        # Warnings only; routed through the console so they sit above the live view
        prunecue_logger.setLevel(logging.WARNING)
        prunecue_logger.addHandler(RichHandler(console=console, show_path=False))


def _exit_code_arg(text: str) -> int:
    """Accept decimal or 0x-prefixed exit codes, e.g. 0x800705AA."""
    try:
        return signed32(int(text, 0))
    except ValueError:
        raise argparse.ArgumentTypeError(f"not an integer exit code: {text!r}") from None


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="prunecue",
        description="Delete store rows older than a cutoff, one table and year at a time",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  prunecue --cutoff 2019-12-31 --preview
  prunecue --cutoff 2019-12-31 --category Request --category Cert
  prunecue --cutoff 2019-12-31 --start-year 2012 --concurrency 3 --timeout 3600
        """,
    )
    parser.add_argument(
        "--cutoff",
        required=True,
        help="Delete rows up to this moment: YYYY-MM-DD[THH:MM:SS] or 'MM/DD/YYYY HH:MM:SS'",
    )
    parser.add_argument(
        "--category",
        action="append",
        choices=CATEGORIES,
        default=None,
        help="Table to prune; repeat for several (default: all)",
    )
    parser.add_argument(
        "--start-year",
        type=int,
        default=None,
        help="Earliest year to prune (default: max(2000, cutoff year - 15))",
    )
    parser.add_argument(
        "--concurrency", "-c",
        type=int,
        default=2,
        help=f"Max deletions running at once, 1-{MAX_CONCURRENCY} (default: 2)",
    )
    parser.add_argument(
        "--timeout", "-t",
        type=float,
        default=0,
        help="Kill an attempt after N seconds, 0 = never (default: 0)",
    )
    parser.add_argument(
        "--max-retries",
        type=int,
        default=4,
        help="Retries for the transient resource-exhaustion status (default: 4)",
    )
    parser.add_argument(
        "--log-dir",
        default=None,
        help="Directory for per-attempt output, journal and summary (default: <temp>/prunecue)",
    )
    parser.add_argument(
        "--command",
        default="certutil",
        help="Deletion command, with any fixed leading arguments (default: certutil)",
    )
    parser.add_argument(
        "--verb",
        default=DEFAULT_VERB,
        help=f"Operation verb passed before the boundary (default: {DEFAULT_VERB})",
    )
    parser.add_argument(
        "--transient-code",
        type=_exit_code_arg,
        default=TRANSIENT_EXIT_CODE,
        help="Exit status that is retried (default: 0x800705AA)",
    )
    parser.add_argument(
        "--preview",
        action="store_true",
        help="Print the command for every planned unit and exit",
    )
    parser.add_argument(
        "--confirm",
        action="store_true",
        help="Ask before pruning each year",
    )
    parser.add_argument(
        "--no-tui",
        action="store_true",
        help="Plain progress lines instead of the live display",
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Print every event and debug log (implies --no-tui)",
    )
    return parser


def config_from_args(args: argparse.Namespace) -> SweepConfig:
    config = SweepConfig(
        cutoff=parse_cutoff(args.cutoff),
        categories=tuple(args.category) if args.category else CATEGORIES,
        start_year=args.start_year,
        concurrency=args.concurrency,
        timeout=args.timeout,
        max_retries=args.max_retries,
        command=tuple(shlex.split(args.command, posix=os.name != "nt")),
        verb=args.verb,
        transient_code=args.transient_code,
        preview=args.preview,
        confirm=args.confirm,
    )
    if args.log_dir:
        config.log_dir = Path(args.log_dir)
    config.validate()
    return config


def print_header(config: SweepConfig, units: list[WorkUnit]) -> None:
    mode = "preview" if config.preview else "run"
    print(f"\nprunecue [{mode}]")
    print(f"   Cutoff: {config.cutoff.isoformat(sep=' ')}, Years: {config.first_year}-{config.last_year}")
    print(f"   Categories: {', '.join(config.categories)}, Units: {len(units)}")
    if not config.preview:
        timeout = f"{config.timeout:g}s" if config.timeout else "none"
        print(
            f"   Concurrency: {config.concurrency}, Timeout: {timeout}, "
            f"Max retries: {config.max_retries}"
        )
        print(f"   Logs: {config.log_dir}")
    print()


def print_preview(units: list[WorkUnit], runner: UnitRunner) -> None:
    """List the command line of every planned unit, in plan order."""
    for unit in units:
        print(runner.command_line(unit))


def _unit_label(unit: WorkUnit | AttemptResult) -> str:
    return f"{unit.category} {unit.year} #{unit.attempt}"


def run_sweep(
    config: SweepConfig,
    units: list[WorkUnit],
    runner: UnitRunner,
    console: Console,
    use_tui: bool = True,
    verbose: bool = False,
) -> None:
    """Run the planned units, then write and print the results."""
    stamp = datetime.now().strftime("%Y%m%dT%H%M%S")
    base = run_basename(config.categories, config.first_year, config.last_year, stamp)
    journal = AttemptJournal(config.log_dir / f"{base}.jsonl")

    sweep = Sweep(
        runner,
        RetryPolicy(transient_code=config.transient_code),
        concurrency=config.concurrency,
        timeout=config.timeout,
        max_retries=config.max_retries,
        poll_interval=config.poll_interval,
        journal=journal,
    )
    state = SweepState(
        planned=len(units),
        concurrency=config.concurrency,
        timeout=config.timeout,
        max_retries=config.max_retries,
    )

    def record(event_type: str, label: str, details: str = "") -> None:
        state.queued = sweep.pending_count
        state.running = sweep.active_count
        state.deferred = sweep.deferred_count
        state.active = [_unit_label(u) for u in sweep.active_units]
        state.add_event(event_type, label, details)
        if verbose:
            ts = datetime.now().strftime("%H:%M:%S.%f")[:-3]
            print(f"{ts} {event_type:<10} {label:<18} {details}")
        elif not use_tui:
            print_simple_stats(state)

    @sweep.on_start
    def on_start(unit, handle):
        record("started", _unit_label(unit))

    @sweep.on_attempt
    def on_attempt(result):
        if result.succeeded:
            state.ok += 1
            state.finished += 1
            record("completed", _unit_label(result), f"{result.duration:.1f}s")
        else:
            state.failed += 1
            event = "timeout" if result.timed_out else "failed"
            record(event, _unit_label(result), f"exit {result.exit_code}")

    @sweep.on_retry
    def on_retry(unit, delay):
        state.retries += 1
        record("retrying", _unit_label(unit), f"in {delay}s")

    @sweep.on_give_up
    def on_give_up(result):
        state.finished += 1
        record("gave up", _unit_label(result), result.stderr_path)

    sweep.submit(units)
    state.queued = sweep.pending_count
    state.start_time = time.time()

    if use_tui:
        with SweepDisplay(state, console=console):
            results = sweep.run()
    else:
        results = sweep.run()
        if not verbose:
            print()

    tallies = tally(results, config.categories)
    summary = write_summary(
        results,
        summary_path(config.log_dir, config.categories, config.first_year, config.last_year, stamp),
    )

    if use_tui:
        print_results(console, tallies, str(summary), str(journal.path), str(config.log_dir))
    else:
        print(format_tally(tallies))
        print_results(console, None, str(summary), str(journal.path), str(config.log_dir))


def _ask_year(console: Console):
    def ask(year: int, year_units: list[WorkUnit]) -> bool:
        tables = ", ".join(u.category for u in year_units)
        return Confirm.ask(
            f"Delete rows up to {year_units[0].boundary} from {tables}?",
            console=console,
            default=False,
        )
    return ask


def main(argv: list[str] | None = None) -> None:
    args = build_parser().parse_args(argv)

    use_tui = not (args.no_tui or args.verbose or args.preview)
    console = Console()
    configure_logging(verbose=args.verbose, console=console)

    try:
        config = config_from_args(args)
        units = plan_units(config.cutoff, config.first_year, config.categories)
        runner = UnitRunner(config.command, verb=config.verb, log_dir=config.log_dir)
        print_header(config, units)
        if config.preview:
            print_preview(units, runner)
            return
        runner.check_available()
        if config.confirm:
            units = confirm_years(units, _ask_year(console))
        run_sweep(config, units, runner, console, use_tui=use_tui, verbose=args.verbose)
    except (ConfigError, CommandNotFound) as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(EXIT_USAGE)
    except RunDeclined as e:
        print(f"Aborted: {e}", file=sys.stderr)
        sys.exit(EXIT_FAILED)
    except KeyboardInterrupt:
        print("\nInterrupted.", file=sys.stderr)
        sys.exit(EXIT_INTERRUPTED)
    except OSError as e:
        print(f"\nError: {e}", file=sys.stderr)
        sys.exit(EXIT_FAILED)


if __name__ == "__main__":
    main()
