"""
ARQ Background Worker for Hookkeeper.

Runs the webhook retry sweep and retention cleanup as cron jobs. arq's
cron jobs are unique per tick across workers, so several worker instances
never sweep the same tick twice.

Run with: arq app.worker.WorkerSettings
"""
import asyncio

from arq import cron
from arq.connections import RedisSettings

from app.config import settings
from app.database import AsyncSessionLocal, engine
from app.logging_config import configure_logging, get_logger
from app.sentry_config import capture_exception, configure_sentry
from app.services.handlers import handler_registry
from app.services.webhook_engine import WebhookEngine
from app.services.webhook_store import WebhookRecordStore

logger = get_logger(component="worker")


async def startup(ctx: dict) -> None:
    """Build the webhook engine shared by all jobs in this worker."""
    configure_logging()
    configure_sentry()
    ctx["webhook_engine"] = WebhookEngine(
        WebhookRecordStore(AsyncSessionLocal),
        handler=handler_registry,
    )
    logger.info("worker_started", sweep_interval_minutes=settings.WEBHOOK_SWEEP_INTERVAL_MINUTES)


async def shutdown(ctx: dict) -> None:
    """Dispose of pooled database connections."""
    await engine.dispose()
    logger.info("worker_stopped")


async def sweep_due_webhooks(ctx: dict) -> int:
    """
    Attempt every due webhook retry.

    A failing sweep (e.g. database unavailable) is logged and re-raised;
    the records stay due and are picked up on the next tick.
    """
    webhook_engine: WebhookEngine = ctx["webhook_engine"]
    try:
        return await webhook_engine.sweep_due(settings.WEBHOOK_SWEEP_LIMIT)
    except Exception as exc:
        logger.exception("webhook_sweep_failed")
        capture_exception(exc, job="sweep_due_webhooks")
        raise


async def cleanup_webhook_records(ctx: dict) -> int:
    """Delete finished webhook records past the retention window."""
    webhook_engine: WebhookEngine = ctx["webhook_engine"]
    try:
        return await webhook_engine.cleanup(settings.WEBHOOK_RETENTION_DAYS)
    except Exception as exc:
        logger.exception("webhook_cleanup_failed")
        capture_exception(exc, job="cleanup_webhook_records")
        raise


def sweep_minutes(interval: int) -> set[int]:
    """Minutes of the hour on which the sweep runs for a given interval."""
    interval = min(max(interval, 1), 60)
    return set(range(0, 60, interval))


async def main():
    """Run the worker using arq cli."""
    print("Use: arq app.worker.WorkerSettings")
    print(f"Redis: {settings.REDIS_URL}")


class WorkerSettings:
    """Settings for ARQ worker - use with 'arq app.worker.WorkerSettings'"""
    redis_settings = RedisSettings.from_dsn(settings.REDIS_URL)
    on_startup = startup
    on_shutdown = shutdown
    job_timeout = 300
    max_tries = 1
    functions = [sweep_due_webhooks, cleanup_webhook_records]
    cron_jobs = [
        cron(
            sweep_due_webhooks,
            minute=sweep_minutes(settings.WEBHOOK_SWEEP_INTERVAL_MINUTES),
            second=0,
            run_at_startup=True,
            unique=True,
        ),
        cron(cleanup_webhook_records, hour=3, minute=0, second=0, unique=True),
    ]


if __name__ == "__main__":
    asyncio.run(main())
