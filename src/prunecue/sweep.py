"""Admission-controlled poll loop that drives work units to completion."""

from __future__ import annotations

import logging
import time
from collections import deque
from typing import TYPE_CHECKING, Callable, Iterable

from prunecue.errors import ConfigError
from prunecue.models import (
    TIMEOUT_EXIT_CODE,
    AttemptResult,
    GiveUp,
    Retry,
    UnitHandle,
    WorkUnit,
)
from prunecue.retry import RetryPolicy

if TYPE_CHECKING:
    from prunecue.report import AttemptJournal
    from prunecue.runner import UnitRunner

logger = logging.getLogger(__name__)

MAX_CONCURRENCY = 8
DEFAULT_POLL_INTERVAL = 0.25


class Sweep:
    """
    Runs work units with at most `concurrency` live processes.

    One thread of control polls every active unit on a fixed tick. A unit
    is always in exactly one place: pending, deferred (waiting out a retry
    delay), active, or finished with its result emitted.

    Example:
        sweep = Sweep(runner, concurrency=2, timeout=600)

        @sweep.on_attempt
        def on_attempt(result):
            print(result.category, result.year, result.exit_code)

        sweep.submit(plan_units(cutoff, 2010, CATEGORIES))
        results = sweep.run()
    """

    def __init__(
        self,
        runner: UnitRunner,
        policy: RetryPolicy | None = None,
        *,
        concurrency: int = 2,
        timeout: float = 0,
        max_retries: int = 4,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        journal: AttemptJournal | None = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        if not 1 <= concurrency <= MAX_CONCURRENCY:
            raise ConfigError(f"Concurrency must be between 1 and {MAX_CONCURRENCY}, got {concurrency}")
        if timeout < 0:
            raise ConfigError(f"Timeout must be >= 0, got {timeout}")
        if max_retries < 0:
            raise ConfigError(f"Max retries must be >= 0, got {max_retries}")
        if poll_interval <= 0:
            raise ConfigError(f"Poll interval must be > 0, got {poll_interval}")

        self.runner = runner
        self.policy = policy or RetryPolicy()
        self.concurrency = concurrency
        self.timeout = timeout
        self.max_retries = max_retries
        self.poll_interval = poll_interval
        self.journal = journal
        self._clock = clock
        self._sleep = sleep

        # Scheduler state
        self._queue: deque[WorkUnit] = deque()            # Pending, FIFO
        self._deferred: list[tuple[float, WorkUnit]] = []  # (ready_at, unit)
        self._active: dict[int, UnitHandle] = {}           # Running, by admission id
        self._next_id = 0
        self._results: list[AttemptResult] = []            # Completion order

        # Callbacks
        self._on_start_callback: Callable | None = None
        self._on_attempt_callback: Callable | None = None
        self._on_retry_callback: Callable | None = None
        self._on_give_up_callback: Callable | None = None

    # --- Event Callbacks ---

    def on_start(self, func):
        """
        Decorator to register start callback.

        Called with (unit, handle) right after the process is spawned.
        """
        self._on_start_callback = func
        return func

    def on_attempt(self, func):
        """
        Decorator to register attempt callback.

        Called with the AttemptResult of every finished attempt, in
        completion order, before the retry decision is applied.
        """
        self._on_attempt_callback = func
        return func

    def on_retry(self, func):
        """
        Decorator to register retry callback.

        Called with (next_unit, delay) when a transient failure is rescheduled.
        """
        self._on_retry_callback = func
        return func

    def on_give_up(self, func):
        """
        Decorator to register terminal-failure callback.

        Called with the final AttemptResult of a unit that did not succeed.
        """
        self._on_give_up_callback = func
        return func

    def _emit(self, callback: Callable | None, *args) -> None:
        if callback is None:
            return
        try:
            callback(*args)
        except Exception:
            logger.exception("Callback %s failed", getattr(callback, "__name__", callback))

    # --- State ---

    @property
    def pending_count(self) -> int:
        return len(self._queue)

    @property
    def deferred_count(self) -> int:
        return len(self._deferred)

    @property
    def active_count(self) -> int:
        return len(self._active)

    @property
    def active_units(self) -> list[WorkUnit]:
        return [handle.unit for handle in self._active.values()]

    @property
    def results(self) -> list[AttemptResult]:
        return list(self._results)

    def submit(self, units: Iterable[WorkUnit]) -> None:
        """Append units to the back of the pending queue, in order."""
        self._queue.extend(units)

    # --- Loop ---

    def run(self) -> list[AttemptResult]:
        """
        Run until every submitted unit has a terminal result.

        Unit failures never raise. OSError from artifact or journal I/O
        kills whatever is still running and propagates.

        Returns:
            Every AttemptResult in completion order.
        """
        try:
            while self._queue or self._deferred or self._active:
                self._release_deferred()
                self._admit()
                if self._active or self._queue:
                    self._sleep(self.poll_interval)
                else:
                    self._sleep(self._until_next_ready())
                    continue
                self._check_active()
        except OSError:
            self._abort_active()
            raise
        return self.results

    def _release_deferred(self) -> None:
        if not self._deferred:
            return
        now = self._clock()
        waiting = []
        for ready_at, unit in self._deferred:
            if ready_at <= now:
                self._queue.append(unit)
            else:
                waiting.append((ready_at, unit))
        self._deferred = waiting

    def _until_next_ready(self) -> float:
        earliest = min(ready_at for ready_at, _ in self._deferred)
        return max(earliest - self._clock(), 0.0)

    def _admit(self) -> None:
        while self._queue and len(self._active) < self.concurrency:
            unit = self._queue.popleft()
            handle = self.runner.start(unit)
            self._next_id += 1
            self._active[self._next_id] = handle
            logger.debug("Admitted %s %s attempt %d", unit.category, unit.year, unit.attempt)
            self._emit(self._on_start_callback, unit, handle)

    def _check_active(self) -> None:
        finished: list[tuple[int, int]] = []
        for active_id, handle in self._active.items():
            unit = handle.unit
            code = self.runner.poll(handle)
            if code is not None:
                finished.append((active_id, code))
                continue
            if self.timeout > 0 and self.runner.elapsed(handle) > self.timeout:
                # First detected status wins: a natural exit racing the kill
                # does not replace the sentinel.
                self.runner.kill(handle)
                logger.warning(
                    "%s %s attempt %d timed out after %ss",
                    unit.category, unit.year, unit.attempt, self.timeout,
                )
                finished.append((active_id, TIMEOUT_EXIT_CODE))

        for active_id, code in finished:
            handle = self._active.pop(active_id)
            duration = self.runner.elapsed(handle)
            self._finish(handle, code, duration)

    def _finish(self, handle: UnitHandle, code: int, duration: float) -> None:
        unit = handle.unit
        result = AttemptResult(
            category=unit.category,
            year=unit.year,
            boundary=unit.boundary,
            attempt=unit.attempt,
            exit_code=code,
            duration=duration,
            stdout_path=handle.stdout_path,
            stderr_path=handle.stderr_path,
            command_line=handle.command_line,
        )
        self._results.append(result)
        if self.journal is not None:
            self.journal.append(result)
        self._emit(self._on_attempt_callback, result)

        decision = self.policy.decide(code, unit.attempt, self.max_retries)
        if isinstance(decision, Retry):
            retry_unit = unit.next_attempt()
            self._deferred.append((self._clock() + decision.delay, retry_unit))
            logger.info(
                "%s %s exited %d (transient); retry %d in %ss",
                unit.category, unit.year, code, retry_unit.attempt, decision.delay,
            )
            self._emit(self._on_retry_callback, retry_unit, decision.delay)
        elif isinstance(decision, GiveUp) and not decision.succeeded:
            logger.warning(
                "%s %s failed with %d after %d attempt(s); see %s",
                unit.category, unit.year, code, unit.attempt + 1, handle.stderr_path,
            )
            self._emit(self._on_give_up_callback, result)
        else:
            logger.debug("%s %s completed in %.2fs", unit.category, unit.year, duration)

    def _abort_active(self) -> None:
        for handle in list(self._active.values()):
            self.runner.kill(handle)
        self._active.clear()
