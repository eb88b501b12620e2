"""
Webhook delivery engine.

Boundary operations used by route handlers and the worker: record creation,
immediate processing, listing, replay, retention cleanup and sweeping.
The engine is an ordinary object built around an injected store; a shared
instance is a deployment choice (see app.dependencies.webhooks).

SECURITY: Tenant ownership is verified by callers via tenant_id arguments.
"""
import math
from datetime import datetime, timedelta
from typing import Any, Callable

from pydantic import ValidationError as PydanticValidationError

from app.config import settings
from app.exceptions import ConflictError, NotFoundError, ValidationError
from app.logging_config import get_logger
from app.models.base import utc_now
from app.models.webhook import (
    ACTIVE_STATUSES,
    TERMINAL_STATUSES,
    WebhookRecord,
    WebhookSource,
    WebhookStatus,
)
from app.routes.metrics import track_cleanup, track_webhook_created, track_webhook_replay
from app.schemas.webhook import WebhookRecordCreate
from app.services.delivery_processor import DeliveryProcessor
from app.services.handlers import WebhookHandler, handler_registry
from app.services.retry_sweeper import RetrySweeper
from app.services.webhook_store import WebhookRecordStore

logger = get_logger(component="webhook_engine")


class WebhookEngine:
    """Facade over store, processor and sweeper."""

    def __init__(
        self,
        store: WebhookRecordStore,
        handler: WebhookHandler | None = None,
        clock: Callable[[], datetime] = utc_now,
        handler_timeout: float | None = None,
        sweep_concurrency: int | None = None,
        pending_grace: timedelta | None = None,
    ):
        self.store = store
        self.handler = handler_registry if handler is None else handler
        self.clock = clock
        self.processor = DeliveryProcessor(store, handler_timeout=handler_timeout, clock=clock)
        self.sweeper = RetrySweeper(
            store,
            self.processor,
            self.handler,
            concurrency=sweep_concurrency,
            pending_grace=pending_grace,
            clock=clock,
        )

    async def create_record(
        self,
        tenant_id: str,
        event_type: str,
        source: WebhookSource | str,
        payload: Any,
        headers: dict[str, str] | None = None,
        signature: str | None = None,
        ip_address: str | None = None,
        transaction_id: str | None = None,
        customer_id: str | None = None,
        max_attempts: int | None = None,
        backoff_schedule_minutes: list[int] | None = None,
    ) -> WebhookRecord:
        """
        Log a webhook event as a fresh pending record.

        The retry ceiling and backoff table are copied onto the record, so
        later changes to the defaults never affect existing records.

        Raises:
            ValidationError: malformed input (missing event type, bad source, ...)
        """
        try:
            data = WebhookRecordCreate(
                tenant_id=tenant_id,
                event_type=event_type,
                source=source,
                payload=payload,
                headers=headers,
                signature=signature,
                ip_address=ip_address,
                transaction_id=transaction_id,
                customer_id=customer_id,
                max_attempts=max_attempts,
                backoff_schedule_minutes=backoff_schedule_minutes,
            )
        except PydanticValidationError as exc:
            errors = exc.errors(include_url=False, include_context=False, include_input=False)
            raise ValidationError("Invalid webhook record", errors=errors) from exc

        now = self.clock()
        record = await self.store.create(
            tenant_id=data.tenant_id,
            event_type=data.event_type,
            source=data.source,
            payload=data.payload,
            headers=data.headers,
            signature=data.signature,
            ip_address=data.ip_address,
            transaction_id=data.transaction_id,
            customer_id=data.customer_id,
            status=WebhookStatus.PENDING,
            attempts=0,
            version=0,
            max_attempts=data.max_attempts or settings.WEBHOOK_MAX_ATTEMPTS,
            backoff_schedule_minutes=list(
                data.backoff_schedule_minutes or settings.WEBHOOK_BACKOFF_SCHEDULE_MINUTES
            ),
            created_at=now,
            updated_at=now,
        )

        track_webhook_created(record.source.value)
        logger.info(
            "webhook_record_created",
            record_id=record.id,
            tenant_id=record.tenant_id,
            source=record.source.value,
            event_type=record.event_type,
        )
        return record

    async def get_record(self, record_id: str, tenant_id: str | None = None) -> WebhookRecord:
        """
        Load a record, optionally scoped to a tenant.

        Raises:
            NotFoundError: unknown id, or the record belongs to another tenant
        """
        if tenant_id is None:
            record = await self.store.get(record_id)
        else:
            record = await self.store.get_for_tenant(record_id, tenant_id)
        if record is None:
            raise NotFoundError(record_id)
        return record

    async def process_now(
        self,
        record_id: str,
        handler: WebhookHandler | None = None,
        tenant_id: str | None = None,
    ) -> WebhookRecord:
        """
        Attempt a record immediately, ignoring its retry schedule.

        Handler failures end up in the record state, not as exceptions.

        Raises:
            NotFoundError: unknown id
            ConflictError: record is terminal or already being attempted
        """
        record = await self.get_record(record_id, tenant_id=tenant_id)
        return await self.processor.attempt(record, handler or self.handler, force=True)

    async def list_records(
        self,
        tenant_id: str,
        source: WebhookSource | str | None = None,
        status: WebhookStatus | str | None = None,
        page: int = 1,
        limit: int = 50,
    ) -> tuple[list[WebhookRecord], int]:
        """
        Page through a tenant's records, newest first.

        ``limit`` is capped at WEBHOOK_LIST_MAX_LIMIT.

        Returns:
            (records, total)
        """
        try:
            source = WebhookSource(source) if source else None
            status = WebhookStatus(status) if status else None
        except ValueError as exc:
            raise ValidationError(str(exc)) from exc
        if page < 1 or limit < 1:
            raise ValidationError("page and limit must be positive")

        limit = min(limit, settings.WEBHOOK_LIST_MAX_LIMIT)
        return await self.store.list_by_tenant(
            tenant_id,
            source=source,
            status=status,
            limit=limit,
            offset=(page - 1) * limit,
        )

    @staticmethod
    def total_pages(total: int, limit: int) -> int:
        return math.ceil(total / limit) if limit else 0

    async def stats(self, tenant_id: str) -> dict[str, int]:
        """Record counts per status for a tenant."""
        return await self.store.count_by_status(tenant_id)

    async def replay(self, record_id: str, tenant_id: str | None = None) -> WebhookRecord:
        """
        Re-arm a terminal record as a fresh pending record.

        Attempts reset to 0 and the last result and schedule are cleared.
        Replay does not deliver: the next sweep (after the pending grace
        period) or an explicit process_now call does.

        Raises:
            NotFoundError: unknown id
            ConflictError: record is still pending or retrying
        """
        record = await self.get_record(record_id, tenant_id=tenant_id)
        if record.status in ACTIVE_STATUSES:
            raise ConflictError(
                f"Webhook record {record.id} is {WebhookStatus(record.status).value}; only finished records can be replayed"
            )

        replayed = await self.store.compare_and_set(
            record.id,
            record.version,
            expected_statuses=TERMINAL_STATUSES,
            status=WebhookStatus.PENDING,
            attempts=0,
            next_attempt_at=None,
            locked_until=None,
            response_code=None,
            response_body=None,
            error_message=None,
            processed_at=None,
            processing_duration_ms=None,
            updated_at=self.clock(),
        )
        if not replayed:
            raise ConflictError(f"Webhook record {record.id} changed while replaying")

        track_webhook_replay(record.source.value)
        logger.info(
            "webhook_replayed",
            record_id=record.id,
            tenant_id=record.tenant_id,
            previous_status=WebhookStatus(record.status).value,
            previous_attempts=record.attempts,
        )
        return await self.get_record(record.id)

    async def cleanup(self, retention_days: int | None = None) -> int:
        """
        Delete finished records older than the retention window.

        Pending and retrying records are never deleted, whatever their age.

        Returns:
            Number of records deleted
        """
        days = settings.WEBHOOK_RETENTION_DAYS if retention_days is None else retention_days
        if days < 0:
            raise ValidationError("retention_days must not be negative")

        cutoff = self.clock() - timedelta(days=days)
        deleted = await self.store.delete_terminal_before(cutoff, TERMINAL_STATUSES)

        track_cleanup(deleted)
        logger.info("webhook_cleanup_completed", retention_days=days, cutoff=cutoff.isoformat(), deleted=deleted)
        return deleted

    async def sweep_due(self, limit: int | None = None) -> int:
        """Attempt due retries; see RetrySweeper.sweep_due."""
        return await self.sweeper.sweep_due(limit)
