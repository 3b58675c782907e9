"""Retry decisions for finished attempts."""

from __future__ import annotations

from prunecue.models import TRANSIENT_EXIT_CODE, Decision, GiveUp, Retry

# Seconds to wait before retry 1, 2, 3, 4.
BACKOFF_TABLE: tuple[int, ...] = (3, 10, 30, 60)
BACKOFF_FALLBACK = 120


def backoff_delay(
    retry_number: int,
    table: tuple[int, ...] = BACKOFF_TABLE,
    fallback: int = BACKOFF_FALLBACK,
) -> int:
    """
    Delay before the given retry (1-based).

    Numbers below 1 get the first entry, numbers past the table get
    `fallback`.
    """
    if not table:
        return fallback
    if retry_number < 1:
        return table[0]
    if retry_number > len(table):
        return fallback
    return table[retry_number - 1]


class RetryPolicy:
    """
    Retry only the store's resource-exhaustion status.

    Zero is success; every other status, including the timeout sentinel,
    is a terminal failure that needs an operator.

    Example:
        policy = RetryPolicy()
        policy.decide(TRANSIENT_EXIT_CODE, attempt=0, max_retries=4)  # Retry(delay=3)
        policy.decide(1, attempt=0, max_retries=4)                    # GiveUp(succeeded=False)
    """

    def __init__(
        self,
        transient_code: int = TRANSIENT_EXIT_CODE,
        backoff: tuple[int, ...] = BACKOFF_TABLE,
        fallback: int = BACKOFF_FALLBACK,
    ) -> None:
        if any(later < earlier for earlier, later in zip(backoff, backoff[1:])):
            raise ValueError(f"Backoff table must be non-decreasing: {backoff}")
        if backoff and fallback < backoff[-1]:
            raise ValueError(f"Fallback delay {fallback} is shorter than the table's last entry")
        self.transient_code = transient_code
        self.backoff = tuple(backoff)
        self.fallback = fallback

    def delay(self, retry_number: int) -> int:
        return backoff_delay(retry_number, self.backoff, self.fallback)

    def decide(self, exit_code: int, attempt: int, max_retries: int) -> Decision:
        if exit_code == 0:
            return GiveUp(succeeded=True)
        if exit_code == self.transient_code and attempt < max_retries:
            return Retry(delay=self.delay(attempt + 1))
        return GiveUp(succeeded=False)
