"""
Webhook record store.

Durable create, point lookup, tenant-scoped listing and compare-and-set
updates over the webhook_records table. Each method runs in its own short
transaction opened from the injected session factory.

SECURITY: All tenant-facing queries MUST include tenant_id filter.
Failure to do so will result in data leakage between tenants.

Store errors (connectivity, constraint violations) are never caught here:
they propagate so the caller can retry the whole operation.
"""
from datetime import datetime, timedelta
from typing import Any, Iterable

from sqlalchemy import and_, delete, func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.models.webhook import WebhookRecord, WebhookSource, WebhookStatus


class WebhookRecordStore:
    """Persistence for webhook records."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def create(self, **values: Any) -> WebhookRecord:
        """
        Insert a new record.

        Args:
            **values: column values; status/attempts default to a fresh pending record

        Returns:
            The persisted WebhookRecord
        """
        record = WebhookRecord(**values)
        async with self.session_factory() as db:
            db.add(record)
            await db.commit()
            await db.refresh(record)
        return record

    async def get(self, record_id: str) -> WebhookRecord | None:
        """Get record by ID."""
        async with self.session_factory() as db:
            return await db.get(WebhookRecord, record_id)

    async def get_for_tenant(self, record_id: str, tenant_id: str) -> WebhookRecord | None:
        """Get record by ID within a tenant."""
        stmt = select(WebhookRecord).where(
            WebhookRecord.id == record_id,
            WebhookRecord.tenant_id == tenant_id
        )
        async with self.session_factory() as db:
            result = await db.execute(stmt)
            return result.scalar_one_or_none()

    async def list_by_tenant(
        self,
        tenant_id: str,
        source: WebhookSource | None = None,
        status: WebhookStatus | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> tuple[list[WebhookRecord], int]:
        """
        List records for a tenant, newest first.

        Args:
            tenant_id: owning tenant
            source: optional source filter
            status: optional status filter
            limit: page size
            offset: rows to skip

        Returns:
            (records, total matching count)
        """
        conditions = [WebhookRecord.tenant_id == tenant_id]
        if source is not None:
            conditions.append(WebhookRecord.source == source)
        if status is not None:
            conditions.append(WebhookRecord.status == status)

        stmt = (
            select(WebhookRecord)
            .where(*conditions)
            .order_by(WebhookRecord.created_at.desc(), WebhookRecord.id.desc())
            .limit(limit)
            .offset(offset)
        )
        count_stmt = select(func.count()).select_from(WebhookRecord).where(*conditions)

        async with self.session_factory() as db:
            result = await db.execute(stmt)
            records = list(result.scalars().all())
            total = (await db.execute(count_stmt)).scalar_one()
        return records, total

    async def count_by_status(self, tenant_id: str) -> dict[str, int]:
        """Record counts per status for a tenant."""
        stats = {status.value: 0 for status in WebhookStatus}
        stmt = (
            select(WebhookRecord.status, func.count())
            .where(WebhookRecord.tenant_id == tenant_id)
            .group_by(WebhookRecord.status)
        )
        async with self.session_factory() as db:
            result = await db.execute(stmt)
            for status, count in result.all():
                stats[WebhookStatus(status).value] = count
        return stats

    async def find_due(
        self,
        now: datetime,
        limit: int,
        pending_grace: timedelta,
    ) -> list[WebhookRecord]:
        """
        Records ready for a scheduled attempt.

        Retrying records whose next attempt is due, plus pending records that
        have sat untouched for longer than ``pending_grace`` (replayed, or
        stranded before their first attempt). Leased records are excluded.
        Oldest due first.
        """
        due_retry = and_(
            WebhookRecord.status == WebhookStatus.RETRYING,
            WebhookRecord.next_attempt_at <= now,
        )
        stale_pending = and_(
            WebhookRecord.status == WebhookStatus.PENDING,
            WebhookRecord.updated_at <= now - pending_grace,
        )
        unleased = or_(
            WebhookRecord.locked_until.is_(None),
            WebhookRecord.locked_until <= now,
        )
        stmt = (
            select(WebhookRecord)
            .where(or_(due_retry, stale_pending), unleased)
            .order_by(
                func.coalesce(WebhookRecord.next_attempt_at, WebhookRecord.updated_at).asc(),
                WebhookRecord.id.asc(),
            )
            .limit(limit)
        )
        async with self.session_factory() as db:
            result = await db.execute(stmt)
            return list(result.scalars().all())

    async def compare_and_set(
        self,
        record_id: str,
        expected_version: int,
        expected_statuses: Iterable[WebhookStatus] | None = None,
        **values: Any,
    ) -> bool:
        """
        Atomically update a record if it still matches the precondition.

        The update only applies when the stored ``version`` equals
        ``expected_version`` (and, if given, the status is one of
        ``expected_statuses``). ``version`` is incremented on success.

        Returns:
            True if this caller won, False on a stale precondition
        """
        conditions = [
            WebhookRecord.id == record_id,
            WebhookRecord.version == expected_version,
        ]
        if expected_statuses is not None:
            conditions.append(WebhookRecord.status.in_(list(expected_statuses)))

        stmt = (
            update(WebhookRecord)
            .where(*conditions)
            .values(version=WebhookRecord.version + 1, **values)
            .execution_options(synchronize_session=False)
        )
        async with self.session_factory() as db:
            result = await db.execute(stmt)
            await db.commit()
        return result.rowcount == 1

    async def delete_terminal_before(
        self,
        cutoff: datetime,
        statuses: Iterable[WebhookStatus],
    ) -> int:
        """
        Bulk delete records created before ``cutoff`` in one of ``statuses``.

        Returns:
            Number of rows deleted
        """
        stmt = (
            delete(WebhookRecord)
            .where(
                WebhookRecord.created_at < cutoff,
                WebhookRecord.status.in_(list(statuses)),
            )
            .execution_options(synchronize_session=False)
        )
        async with self.session_factory() as db:
            result = await db.execute(stmt)
            await db.commit()
        return result.rowcount or 0
