"""
Tests for WebhookRecordStore.

Tests cover:
1. create/get - persistence and timezone-aware timestamps
2. list_by_tenant - tenant isolation, filters, ordering, pagination
3. compare_and_set - version and status preconditions
4. find_due - due retries, stale pending records, leases
5. delete_terminal_before - bulk retention deletes
"""
from datetime import timedelta

import pytest
from sqlalchemy.exc import IntegrityError

from app.models.webhook import WebhookSource, WebhookStatus
from tests.conftest import START

GRACE = timedelta(seconds=60)


async def make_record(store, tenant_id="org-1", source=WebhookSource.PGPAY, created_at=START, **values):
    values.setdefault("event_type", "payment.completed")
    values.setdefault("payload", {"id": "evt"})
    values.setdefault("backoff_schedule_minutes", [1, 5, 15, 60, 360])
    values.setdefault("max_attempts", 6)
    values.setdefault("updated_at", created_at)
    return await store.create(tenant_id=tenant_id, source=source, created_at=created_at, **values)


class TestCreateAndGet:

    async def test_create_defaults_to_pending(self, store):
        record = await make_record(store)

        assert record.id
        assert record.status == WebhookStatus.PENDING
        assert record.attempts == 0
        assert record.version == 0
        assert record.next_attempt_at is None

    async def test_get_round_trips_payload_and_aware_timestamps(self, store):
        created = await make_record(store, payload={"nested": {"amount": 10}})

        loaded = await store.get(created.id)

        assert loaded.payload == {"nested": {"amount": 10}}
        assert loaded.created_at == START
        assert loaded.created_at.tzinfo is not None

    async def test_get_unknown_returns_none(self, store):
        assert await store.get("missing") is None

    async def test_get_for_tenant_hides_other_tenants(self, store):
        record = await make_record(store, tenant_id="org-1")

        assert await store.get_for_tenant(record.id, "org-2") is None
        assert (await store.get_for_tenant(record.id, "org-1")).id == record.id


class TestListByTenant:

    async def test_newest_first_and_tenant_scoped(self, store):
        first = await make_record(store, created_at=START)
        second = await make_record(store, created_at=START + timedelta(minutes=1))
        await make_record(store, tenant_id="org-2")

        records, total = await store.list_by_tenant("org-1")

        assert total == 2
        assert [r.id for r in records] == [second.id, first.id]

    async def test_filters_by_source_and_status(self, store):
        await make_record(store, source=WebhookSource.STRIPE)
        paypal = await make_record(store, source=WebhookSource.PAYPAL)
        await make_record(store, source=WebhookSource.PAYPAL, status=WebhookStatus.FAILED)

        records, total = await store.list_by_tenant(
            "org-1", source=WebhookSource.PAYPAL, status=WebhookStatus.PENDING
        )

        assert total == 1
        assert records[0].id == paypal.id

    async def test_pagination_reports_full_total(self, store):
        for minute in range(5):
            await make_record(store, created_at=START + timedelta(minutes=minute))

        page, total = await store.list_by_tenant("org-1", limit=2, offset=2)

        assert total == 5
        assert len(page) == 2
        assert page[0].created_at == START + timedelta(minutes=2)

    async def test_count_by_status(self, store):
        await make_record(store)
        await make_record(store, status=WebhookStatus.FAILED)
        await make_record(store, status=WebhookStatus.FAILED)
        await make_record(store, tenant_id="org-2", status=WebhookStatus.SUCCESS)

        stats = await store.count_by_status("org-1")

        assert stats == {"pending": 1, "retrying": 0, "success": 0, "failed": 2}


class TestCompareAndSet:

    async def test_applies_and_bumps_version(self, store):
        record = await make_record(store)

        won = await store.compare_and_set(record.id, 0, attempts=1, updated_at=START)

        assert won is True
        loaded = await store.get(record.id)
        assert loaded.attempts == 1
        assert loaded.version == 1

    async def test_stale_version_loses(self, store):
        record = await make_record(store)
        await store.compare_and_set(record.id, 0, attempts=1, updated_at=START)

        won = await store.compare_and_set(record.id, 0, attempts=2, updated_at=START)

        assert won is False
        assert (await store.get(record.id)).attempts == 1

    async def test_status_precondition(self, store):
        record = await make_record(store, status=WebhookStatus.SUCCESS)

        won = await store.compare_and_set(
            record.id, 0, expected_statuses=[WebhookStatus.PENDING], attempts=1, updated_at=START
        )

        assert won is False

    async def test_attempts_cannot_exceed_ceiling(self, store):
        record = await make_record(store, max_attempts=2)

        with pytest.raises(IntegrityError):
            await store.compare_and_set(record.id, 0, attempts=3, updated_at=START)

        assert (await store.get(record.id)).attempts == 0


class TestFindDue:

    async def test_returns_due_retries_only(self, store):
        due = await make_record(
            store, status=WebhookStatus.RETRYING, attempts=1, next_attempt_at=START - timedelta(seconds=1)
        )
        await make_record(
            store, status=WebhookStatus.RETRYING, attempts=1, next_attempt_at=START + timedelta(minutes=1)
        )
        await make_record(store, status=WebhookStatus.FAILED, attempts=6)

        records = await store.find_due(START, 100, GRACE)

        assert [r.id for r in records] == [due.id]

    async def test_includes_stale_pending_but_not_fresh_pending(self, store):
        stale = await make_record(store, created_at=START - timedelta(minutes=5))
        await make_record(store, created_at=START - timedelta(seconds=10))

        records = await store.find_due(START, 100, GRACE)

        assert [r.id for r in records] == [stale.id]

    async def test_excludes_leased_records(self, store):
        await make_record(
            store,
            status=WebhookStatus.RETRYING,
            attempts=1,
            next_attempt_at=START - timedelta(minutes=1),
            locked_until=START + timedelta(seconds=30),
        )
        expired = await make_record(
            store,
            status=WebhookStatus.RETRYING,
            attempts=1,
            next_attempt_at=START - timedelta(minutes=1),
            locked_until=START - timedelta(seconds=1),
        )

        records = await store.find_due(START, 100, GRACE)

        assert [r.id for r in records] == [expired.id]

    async def test_oldest_due_first_and_limit(self, store):
        later = await make_record(
            store, status=WebhookStatus.RETRYING, attempts=1, next_attempt_at=START - timedelta(minutes=1)
        )
        earlier = await make_record(
            store, status=WebhookStatus.RETRYING, attempts=1, next_attempt_at=START - timedelta(minutes=10)
        )

        records = await store.find_due(START, 1, GRACE)

        assert [r.id for r in records] == [earlier.id]
        assert later.id not in [r.id for r in records]


class TestDeleteTerminalBefore:

    async def test_deletes_only_old_terminal_records(self, store):
        old = START - timedelta(days=120)
        old_success = await make_record(store, created_at=old, status=WebhookStatus.SUCCESS)
        old_failed = await make_record(store, created_at=old, status=WebhookStatus.FAILED)
        old_pending = await make_record(store, created_at=old)
        recent_success = await make_record(store, status=WebhookStatus.SUCCESS)

        deleted = await store.delete_terminal_before(
            START - timedelta(days=90), [WebhookStatus.SUCCESS, WebhookStatus.FAILED]
        )

        assert deleted == 2
        assert await store.get(old_success.id) is None
        assert await store.get(old_failed.id) is None
        assert await store.get(old_pending.id) is not None
        assert await store.get(recent_success.id) is not None
