"""
Delivery Processor

Runs one processing attempt for a webhook record: claims the record,
invokes the caller's handler under a timeout, and writes the resulting
state transition.

Every write is a compare-and-set against the record's version, so two
concurrent attempts (overlapping sweeps, a sweep racing process_now) cannot
both run: the loser of the claim gets a ConflictError and does nothing.
"""
import asyncio
import time
from datetime import datetime, timedelta
from typing import Callable

from app.config import settings
from app.exceptions import ConflictError, ProcessingError
from app.logging_config import get_logger
from app.models.base import utc_now
from app.models.webhook import ACTIVE_STATUSES, WebhookRecord, WebhookStatus
from app.routes.metrics import track_webhook_attempt
from app.sentry_config import capture_exception
from app.services.handlers import HandlerResult, WebhookHandler
from app.services.retry_scheduler import attempts_exhausted, decide_after_failure
from app.services.webhook_store import WebhookRecordStore

# Extra lease time on top of the handler timeout before a claim is considered abandoned
LEASE_GRACE = timedelta(seconds=30)

GENERIC_HANDLER_ERROR = "Webhook handler raised an unexpected error"
GENERIC_FAILURE = "Webhook processing failed"
ABANDONED_ATTEMPT = "Final attempt did not complete"

logger = get_logger(component="delivery_processor")


class DeliveryProcessor:
    """Performs single, non-overlapping processing attempts."""

    def __init__(
        self,
        store: WebhookRecordStore,
        handler_timeout: float | None = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.store = store
        if handler_timeout is None:
            handler_timeout = settings.WEBHOOK_HANDLER_TIMEOUT_SECONDS
        if handler_timeout <= 0:
            raise ValueError("handler_timeout must be positive")
        self.handler_timeout = handler_timeout
        self.clock = clock

    def check_eligible(self, record: WebhookRecord, now: datetime, force: bool = False) -> None:
        """
        Raise ConflictError unless ``record`` may be attempted now.

        ``force`` bypasses the retry schedule (not the state or the lease).
        """
        if record.status not in ACTIVE_STATUSES:
            raise ConflictError(
                f"Webhook record {record.id} is {WebhookStatus(record.status).value} and cannot be attempted"
            )
        if record.locked_until is not None and record.locked_until > now:
            raise ConflictError(f"Webhook record {record.id} already has an attempt in flight")
        if (
            not force
            and record.status == WebhookStatus.RETRYING
            and record.next_attempt_at is not None
            and record.next_attempt_at > now
        ):
            raise ConflictError(f"Webhook record {record.id} is not due until {record.next_attempt_at.isoformat()}")

    async def attempt(
        self,
        record: WebhookRecord,
        handler: WebhookHandler,
        force: bool = False,
    ) -> WebhookRecord:
        """
        Run one attempt and persist its outcome.

        Args:
            record: record snapshot, as loaded from the store
            handler: business-side processing callback
            force: ignore ``next_attempt_at`` (manual process_now)

        Returns:
            The record as stored after the attempt

        Raises:
            ConflictError: record not eligible, or another attempt won the claim
            ProcessingError: record disappeared during the attempt
        """
        log = logger.bind(
            record_id=record.id,
            tenant_id=record.tenant_id,
            source=record.source.value,
            event_type=record.event_type,
        )
        now = self.clock()
        self.check_eligible(record, now, force=force)

        if attempts_exhausted(record.attempts, record.max_attempts):
            # Final attempt was interrupted before it could record an outcome
            return await self._fail_abandoned(record, now, log)

        attempts_before = record.attempts
        claimed = await self.store.compare_and_set(
            record.id,
            record.version,
            expected_statuses=ACTIVE_STATUSES,
            attempts=attempts_before + 1,
            last_attempt_at=now,
            locked_until=now + timedelta(seconds=self.handler_timeout) + LEASE_GRACE,
            updated_at=now,
        )
        if not claimed:
            log.info("webhook_attempt_skipped", reason="stale_precondition")
            raise ConflictError(f"Webhook record {record.id} was modified by another attempt")

        claimed_record = await self._reload(record.id)
        log.info("webhook_attempt_started", attempt=claimed_record.attempts, max_attempts=claimed_record.max_attempts)

        started = time.perf_counter()
        result = await self._invoke(handler, claimed_record, log)
        duration = time.perf_counter() - started
        finished = self.clock()

        if result.success:
            outcome = WebhookStatus.SUCCESS
            values = dict(
                status=WebhookStatus.SUCCESS,
                response_code=result.response_code if result.response_code is not None else 200,
                response_body=result.response_body,
                error_message=None,
                processed_at=finished,
                processing_duration_ms=int(duration * 1000),
                next_attempt_at=None,
                locked_until=None,
                updated_at=finished,
            )
            log.info("webhook_attempt_succeeded", attempt=claimed_record.attempts, duration_ms=int(duration * 1000))
        else:
            decision = decide_after_failure(
                attempts_before,
                claimed_record.max_attempts,
                claimed_record.backoff_schedule_minutes,
                finished,
            )
            outcome = decision.status
            values = dict(
                status=decision.status,
                response_code=result.response_code,
                response_body=result.response_body,
                error_message=result.error_message or GENERIC_FAILURE,
                next_attempt_at=decision.next_attempt_at,
                locked_until=None,
                updated_at=finished,
            )
            log.warning(
                "webhook_attempt_failed",
                attempt=claimed_record.attempts,
                response_code=result.response_code,
                error=values["error_message"],
            )
            if decision.is_terminal:
                log.warning("webhook_failed_permanently", attempts=claimed_record.attempts)
            else:
                log.info(
                    "webhook_retry_scheduled",
                    delay_minutes=decision.delay_minutes,
                    next_attempt_at=decision.next_attempt_at.isoformat(),
                )

        written = await self.store.compare_and_set(record.id, claimed_record.version, **values)
        if not written:
            # Lease expired and another attempt took over; its outcome stands
            log.warning("webhook_attempt_result_discarded", outcome=outcome.value)

        track_webhook_attempt(record.source.value, outcome.value, duration)
        return await self._reload(record.id)

    async def _invoke(self, handler: WebhookHandler, record: WebhookRecord, log) -> HandlerResult:
        """Call the handler, converting timeouts and exceptions into failures."""
        try:
            result = await asyncio.wait_for(handler(record), timeout=self.handler_timeout)
        except asyncio.TimeoutError:
            log.warning("webhook_handler_timeout", timeout_seconds=self.handler_timeout)
            return HandlerResult.fail(f"Webhook handler timed out after {self.handler_timeout:g}s")
        except Exception as exc:
            log.exception("webhook_handler_error", error_type=type(exc).__name__)
            capture_exception(exc, record_id=record.id, tenant_id=record.tenant_id)
            return HandlerResult.fail(GENERIC_HANDLER_ERROR)

        if not isinstance(result, HandlerResult):
            log.error("webhook_handler_invalid_result", result_type=type(result).__name__)
            return HandlerResult.fail(GENERIC_FAILURE)
        return result

    async def _fail_abandoned(self, record: WebhookRecord, now: datetime, log) -> WebhookRecord:
        closed = await self.store.compare_and_set(
            record.id,
            record.version,
            expected_statuses=ACTIVE_STATUSES,
            status=WebhookStatus.FAILED,
            error_message=ABANDONED_ATTEMPT,
            next_attempt_at=None,
            locked_until=None,
            updated_at=now,
        )
        if not closed:
            raise ConflictError(f"Webhook record {record.id} was modified by another attempt")
        log.warning("webhook_failed_permanently", attempts=record.attempts, reason="abandoned_attempt")
        return await self._reload(record.id)

    async def _reload(self, record_id: str) -> WebhookRecord:
        record = await self.store.get(record_id)
        if record is None:
            raise ProcessingError(f"Webhook record {record_id} disappeared during processing")
        return record
