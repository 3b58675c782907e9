"""Rich-based display for the prunecue CLI.

This module only renders data. The CLI feeds a SweepState from the
scheduler's callbacks and the display draws it.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from datetime import datetime

from rich.console import Console, Group
from rich.live import Live
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from prunecue.report import CategoryTally


@dataclass
class EventRecord:
    """A recent event for display."""

    timestamp: datetime
    event_type: str
    unit: str
    details: str = ""


@dataclass
class SweepState:
    """Current state of a sweep for display.

    This is the data contract between the CLI callbacks and the display.
    """

    # Plan
    planned: int = 0
    concurrency: int = 0
    timeout: float = 0
    max_retries: int = 0

    # Queue stats
    queued: int = 0
    running: int = 0
    deferred: int = 0
    finished: int = 0      # Units with a terminal result
    ok: int = 0            # Successful attempt records
    failed: int = 0        # Failed attempt records
    retries: int = 0

    # Timing
    start_time: float = 0.0

    # Units currently running, "Cert 2014 #0" style
    active: list[str] = field(default_factory=list)

    # Recent events (most recent first)
    events: list[EventRecord] = field(default_factory=list)
    max_events: int = 8

    @property
    def elapsed(self) -> float:
        if self.start_time <= 0:
            return 0.0
        return time.time() - self.start_time

    @property
    def progress(self) -> float:
        """Fraction of planned units with a terminal result (0.0 to 1.0)."""
        if self.planned > 0:
            return self.finished / self.planned
        return 0.0

    def add_event(self, event_type: str, unit: str, details: str = "") -> None:
        """Add an event to the display log."""
        self.events.insert(0, EventRecord(
            timestamp=datetime.now(),
            event_type=event_type,
            unit=unit,
            details=details,
        ))
        if len(self.events) > self.max_events:
            self.events = self.events[:self.max_events]


EVENT_STYLES = {
    "started": "yellow",
    "completed": "green",
    "failed": "red",
    "retrying": "magenta",
    "timeout": "red",
    "gave up": "bold red",
}


class SweepDisplay:
    """Live view of a running sweep.

    Shows:
    - Queue stats panel
    - Active units with their concurrency slot usage
    - Recent events log
    """

    def __init__(self, state: SweepState, console: Console | None = None):
        self.state = state
        self.console = console or Console()
        self._live: Live | None = None

    def __enter__(self) -> SweepDisplay:
        self._live = Live(
            self,
            console=self.console,
            refresh_per_second=4,
            screen=False,
        )
        self._live.__enter__()
        return self

    def __exit__(self, *args) -> None:
        if self._live:
            self._live.__exit__(*args)
            self._live = None

    def __rich__(self) -> Panel:
        return self._build_layout()

    def _build_layout(self) -> Panel:
        return Panel(
            Group(
                self._build_queue_section(),
                self._build_active_section(),
                self._build_events_section(),
            ),
            title="[bold cyan]prunecue[/bold cyan]",
            border_style="cyan",
        )

    def _build_queue_section(self) -> Panel:
        s = self.state

        stats = Table.grid(expand=True, padding=(0, 2))
        for _ in range(5):
            stats.add_column(justify="left")
        stats.add_row(
            f"[dim]Queued:[/dim] [bold]{s.queued}[/bold]",
            f"[dim]Running:[/dim] [bold yellow]{s.running}[/bold yellow]",
            f"[dim]Waiting retry:[/dim] [bold magenta]{s.deferred}[/bold magenta]",
            f"[dim]OK:[/dim] [bold green]{s.ok}[/bold green]",
            f"[dim]Failed:[/dim] [bold red]{s.failed}[/bold red]",
        )

        stats2 = Table.grid(expand=True, padding=(0, 2))
        for _ in range(3):
            stats2.add_column(justify="left")
        stats2.add_row(
            f"[dim]Progress:[/dim] [bold]{s.finished}/{s.planned}[/bold] {self._progress_bar(s.progress, 20)}",
            f"[dim]Retries:[/dim] [bold]{s.retries}[/bold]",
            f"[dim]Elapsed:[/dim] [bold]{s.elapsed:.0f}s[/bold]",
        )

        content = Table.grid(expand=True)
        content.add_row(stats)
        content.add_row(stats2)
        return Panel(content, title="[bold]Queue[/bold]", border_style="blue")

    def _build_active_section(self) -> Panel:
        s = self.state

        table = Table(box=None, expand=True, padding=(0, 1), show_header=False)
        table.add_column("Slot", width=6, style="dim")
        table.add_column("Unit")

        for i in range(s.concurrency):
            unit = s.active[i] if i < len(s.active) else "[dim]idle[/dim]"
            table.add_row(f"#{i + 1}", unit)

        timeout = f"{s.timeout:g}s" if s.timeout else "none"
        return Panel(
            table,
            title=f"[bold]Active[/bold] [dim](timeout {timeout}, max retries {s.max_retries})[/dim]",
            border_style="blue",
        )

    def _build_events_section(self) -> Panel:
        s = self.state

        table = Table(box=None, expand=True, padding=(0, 1), show_header=False)
        table.add_column("Time", width=10, style="dim")
        table.add_column("Event", width=10)
        table.add_column("Unit", width=18)
        table.add_column("Details")

        for event in s.events[:5]:
            style = EVENT_STYLES.get(event.event_type, "white")
            table.add_row(
                event.timestamp.strftime("%H:%M:%S"),
                f"[{style}]{event.event_type}[/{style}]",
                event.unit,
                event.details[:40],
            )

        if not s.events:
            table.add_row("[dim]No events yet[/dim]", "", "", "")

        return Panel(table, title="[bold]Recent Events[/bold]", border_style="blue")

    def _progress_bar(self, pct: float, width: int) -> str:
        filled = int(min(max(pct, 0.0), 1.0) * width)
        return f"[green]{'█' * filled}[/green][dim]{'░' * (width - filled)}[/dim]"


def print_simple_stats(state: SweepState) -> None:
    """Print a single-line progress update (no TUI)."""
    print(
        f"\r  {state.finished}/{state.planned} done | "
        f"running={state.running} queued={state.queued} waiting={state.deferred} | "
        f"ok={state.ok} failed={state.failed} | {state.elapsed:.0f}s",
        end="",
        flush=True,
    )


def print_results(
    console: Console,
    tallies: dict[str, CategoryTally] | None,
    summary: str | None,
    journal: str | None,
    log_dir: str,
) -> None:
    """Print the per-category results table, if given, and artifact locations."""
    console.print()
    if tallies is not None:
        table = Table(title="Sweep Results", border_style="green")
        table.add_column("Category", style="bold")
        table.add_column("OK", justify="right")
        table.add_column("Fail", justify="right")

        for t in tallies.values():
            failed = f"[red]{t.failed}[/red]" if t.failed else "0"
            table.add_row(t.category, f"[green]{t.ok}[/green]", failed)

        console.print(table)

    paths = Text()
    if summary:
        paths.append("Summary: ", style="dim")
        paths.append(f"{summary}\n")
    if journal:
        paths.append("Journal: ", style="dim")
        paths.append(f"{journal}\n")
    paths.append("Logs:    ", style="dim")
    paths.append(log_dir)
    console.print(paths)
