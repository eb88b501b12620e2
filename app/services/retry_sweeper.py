"""
Retry Sweeper

Periodic scan for due webhook records, re-invoking the Delivery Processor
for each. It never changes record state itself.

Sweeping is idempotent: the processor re-checks state, due-ness and the
lease before attempting, so a record already advanced by an overlapping
sweep is skipped.
"""
import asyncio
from datetime import datetime, timedelta
from typing import Callable

from app.config import settings
from app.exceptions import ConflictError, ValidationError
from app.logging_config import get_logger
from app.models.base import utc_now
from app.models.webhook import WebhookRecord
from app.routes.metrics import track_sweep
from app.services.delivery_processor import DeliveryProcessor
from app.services.handlers import WebhookHandler
from app.services.webhook_store import WebhookRecordStore

logger = get_logger(component="retry_sweeper")


class RetrySweeper:
    """Dispatches due retries with bounded parallelism."""

    def __init__(
        self,
        store: WebhookRecordStore,
        processor: DeliveryProcessor,
        handler: WebhookHandler,
        concurrency: int | None = None,
        pending_grace: timedelta | None = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.store = store
        self.processor = processor
        self.handler = handler
        if concurrency is None:
            concurrency = settings.WEBHOOK_SWEEP_CONCURRENCY
        if concurrency < 1:
            raise ValueError("sweep concurrency must be positive")
        self.concurrency = concurrency
        self.pending_grace = (
            pending_grace if pending_grace is not None
            else timedelta(seconds=settings.WEBHOOK_PENDING_GRACE_SECONDS)
        )
        self.clock = clock

    async def sweep_due(self, limit: int | None = None) -> int:
        """
        Attempt every due record, up to ``limit``.

        Store errors propagate so the caller can log and retry the batch on
        the next tick. Once an attempt fails that way, attempts not yet
        started are dropped and the ones in flight are awaited before the
        first error is re-raised.

        Returns:
            Number of records actually attempted
        """
        if limit is None:
            limit = settings.WEBHOOK_SWEEP_LIMIT
        if limit < 1:
            raise ValidationError("sweep limit must be positive")

        due = await self.store.find_due(self.clock(), limit, self.pending_grace)
        if not due:
            logger.debug("webhook_sweep_completed", due=0, processed=0)
            return 0

        semaphore = asyncio.Semaphore(self.concurrency)
        aborted = asyncio.Event()

        async def run(record: WebhookRecord) -> bool:
            async with semaphore:
                if aborted.is_set():
                    return False
                try:
                    await self.processor.attempt(record, self.handler)
                except ConflictError as exc:
                    logger.info("webhook_attempt_skipped", record_id=record.id, reason=exc.message)
                    return False
                except Exception:
                    aborted.set()
                    raise
                return True

        results = await asyncio.gather(*(run(record) for record in due), return_exceptions=True)
        errors = [result for result in results if isinstance(result, BaseException)]
        processed = sum(1 for result in results if result is True)
        track_sweep(processed)

        if errors:
            logger.error("webhook_sweep_aborted", due=len(due), processed=processed, errors=len(errors))
            raise errors[0]

        logger.info("webhook_sweep_completed", due=len(due), processed=processed, skipped=len(due) - processed)
        return processed
