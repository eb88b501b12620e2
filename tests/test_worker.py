"""
Tests for the arq worker jobs.
"""
from datetime import timedelta

import pytest

from app.models.webhook import WebhookStatus
from app.worker import WorkerSettings, cleanup_webhook_records, sweep_due_webhooks, sweep_minutes
from tests.conftest import START


@pytest.mark.parametrize(
    "interval, expected",
    [
        (1, set(range(60))),
        (5, {0, 5, 10, 15, 20, 25, 30, 35, 40, 45, 50, 55}),
        (0, set(range(60))),
        (90, {0}),
    ],
)
def test_sweep_minutes(interval, expected):
    assert sweep_minutes(interval) == expected


def test_cron_jobs_are_unique():
    assert len(WorkerSettings.cron_jobs) == 2
    assert all(job.unique for job in WorkerSettings.cron_jobs)


async def test_sweep_job_attempts_due_records(make_engine, sample_event, failing_handler, ok_handler, clock):
    engine = make_engine(handler=ok_handler)
    record = await engine.create_record(**sample_event)
    await engine.process_now(record.id, handler=failing_handler)
    clock.advance(minutes=1)

    processed = await sweep_due_webhooks({"webhook_engine": engine})

    assert processed == 1
    assert (await engine.get_record(record.id)).status == WebhookStatus.SUCCESS


async def test_cleanup_job_uses_retention_setting(make_engine, sample_event, ok_handler, clock):
    engine = make_engine(handler=ok_handler)
    clock.set(START - timedelta(days=365))
    record = await engine.create_record(**sample_event)
    await engine.process_now(record.id)
    clock.set(START)

    assert await cleanup_webhook_records({"webhook_engine": engine}) == 1


async def test_sweep_job_reraises_failures(make_engine, store, monkeypatch):
    engine = make_engine()

    async def broken_find_due(*args, **kwargs):
        raise ConnectionError("database unavailable")

    monkeypatch.setattr(store, "find_due", broken_find_due)

    with pytest.raises(ConnectionError):
        await sweep_due_webhooks({"webhook_engine": engine})
