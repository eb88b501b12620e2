"""
Retry scheduling for webhook deliveries.

Pure functions: no I/O, no clock access. Callers pass ``now``.

Delays come from a fixed per-record backoff table rather than an exponential
formula. Once attempts run past the end of the table the last entry is
reused, so the worst-case delay is bounded by the table's final value.
"""
from dataclasses import dataclass
from datetime import datetime, timedelta

from app.models.webhook import WebhookStatus


@dataclass(frozen=True)
class RetryDecision:
    """Outcome of a failed attempt: either a rescheduled retry or terminal failure."""
    status: WebhookStatus
    next_attempt_at: datetime | None
    delay_minutes: int | None

    @property
    def is_terminal(self) -> bool:
        return self.status == WebhookStatus.FAILED


def next_delay_minutes(attempts: int, schedule: list[int]) -> int:
    """
    Delay before the next attempt, given the attempt count before increment.

    Indexes the schedule by ``attempts``; past the end, the last entry is reused.
    """
    if not schedule:
        raise ValueError("backoff schedule must not be empty")
    if attempts < 0:
        raise ValueError("attempts must be non-negative")
    index = min(attempts, len(schedule) - 1)
    return schedule[index]


def attempts_exhausted(attempts: int, max_attempts: int) -> bool:
    """True once ``attempts`` (after increment) has reached the ceiling."""
    return attempts >= max_attempts


def decide_after_failure(
    attempts_before: int,
    max_attempts: int,
    schedule: list[int],
    now: datetime,
) -> RetryDecision:
    """
    Decide what a failed attempt transitions to.

    Args:
        attempts_before: attempt count before this attempt was counted
        max_attempts: per-record ceiling
        schedule: per-record backoff table in minutes
        now: reference time for the next attempt

    Returns:
        FAILED with no next attempt when the ceiling is reached, otherwise
        RETRYING at ``now + delay``.
    """
    if attempts_exhausted(attempts_before + 1, max_attempts):
        return RetryDecision(status=WebhookStatus.FAILED, next_attempt_at=None, delay_minutes=None)

    delay = next_delay_minutes(attempts_before, schedule)
    return RetryDecision(
        status=WebhookStatus.RETRYING,
        next_attempt_at=now + timedelta(minutes=delay),
        delay_minutes=delay,
    )
