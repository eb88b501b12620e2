"""
Unit tests for the retry scheduler.

Tests cover:
1. next_delay_minutes - schedule indexing and reuse of the last entry
2. decide_after_failure - retry vs terminal failure
"""
from datetime import datetime, timedelta, timezone

import pytest

from app.models.webhook import WebhookStatus
from app.services.retry_scheduler import (
    attempts_exhausted,
    decide_after_failure,
    next_delay_minutes,
)

SCHEDULE = [1, 5, 15, 60, 360]
NOW = datetime(2026, 3, 1, 8, 30, tzinfo=timezone.utc)


class TestNextDelayMinutes:
    """Tests for next_delay_minutes."""

    @pytest.mark.parametrize("attempts, expected", [(0, 1), (1, 5), (2, 15), (3, 60), (4, 360)])
    def test_indexes_schedule_by_attempts(self, attempts, expected):
        assert next_delay_minutes(attempts, SCHEDULE) == expected

    @pytest.mark.parametrize("attempts", [5, 6, 9, 50])
    def test_reuses_last_entry_past_end(self, attempts):
        assert next_delay_minutes(attempts, SCHEDULE) == 360

    def test_single_entry_schedule(self):
        assert next_delay_minutes(0, [10]) == 10
        assert next_delay_minutes(3, [10]) == 10

    def test_empty_schedule_rejected(self):
        with pytest.raises(ValueError):
            next_delay_minutes(0, [])

    def test_negative_attempts_rejected(self):
        with pytest.raises(ValueError):
            next_delay_minutes(-1, SCHEDULE)


class TestDecideAfterFailure:
    """Tests for decide_after_failure."""

    def test_first_failure_retries_after_first_delay(self):
        decision = decide_after_failure(0, 6, SCHEDULE, NOW)

        assert decision.status == WebhookStatus.RETRYING
        assert decision.delay_minutes == 1
        assert decision.next_attempt_at == NOW + timedelta(minutes=1)
        assert not decision.is_terminal

    def test_fifth_failure_uses_last_entry(self):
        decision = decide_after_failure(4, 6, SCHEDULE, NOW)

        assert decision.status == WebhookStatus.RETRYING
        assert decision.next_attempt_at == NOW + timedelta(minutes=360)

    def test_failure_reaching_ceiling_is_terminal(self):
        decision = decide_after_failure(5, 6, SCHEDULE, NOW)

        assert decision.status == WebhookStatus.FAILED
        assert decision.next_attempt_at is None
        assert decision.delay_minutes is None
        assert decision.is_terminal

    def test_single_attempt_ceiling_fails_immediately(self):
        decision = decide_after_failure(0, 1, SCHEDULE, NOW)

        assert decision.is_terminal

    def test_terminal_even_with_schedule_entries_left(self):
        decision = decide_after_failure(1, 2, SCHEDULE, NOW)

        assert decision.status == WebhookStatus.FAILED

    def test_long_ceiling_keeps_reusing_last_delay(self):
        delays = [decide_after_failure(n, 10, SCHEDULE, NOW).delay_minutes for n in range(9)]

        assert delays == [1, 5, 15, 60, 360, 360, 360, 360, 360]
        assert decide_after_failure(9, 10, SCHEDULE, NOW).is_terminal


def test_attempts_exhausted():
    assert not attempts_exhausted(5, 6)
    assert attempts_exhausted(6, 6)
    assert attempts_exhausted(7, 6)
