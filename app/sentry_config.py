"""
Sentry configuration for error tracking.

Captures handler crashes and failed sweep cycles with webhook record context.
"""
import sentry_sdk
from sentry_sdk.integrations.fastapi import FastApiIntegration
from sentry_sdk.integrations.sqlalchemy import SqlalchemyIntegration

from app.config import settings
from app.logging_config import get_logger

logger = get_logger(component="sentry")


def configure_sentry() -> bool:
    """
    Initialize Sentry with FastAPI and SQLAlchemy integrations.

    Requires SENTRY_DSN environment variable to be set.
    """
    dsn = settings.SENTRY_DSN

    if not dsn:
        logger.info("sentry_disabled", reason="SENTRY_DSN not set")
        return False

    sentry_sdk.init(
        dsn=dsn,
        integrations=[
            FastApiIntegration(),
            SqlalchemyIntegration(),
        ],
        before_send=add_context,
        # Sample rate: capture 10% of transactions for performance monitoring
        traces_sample_rate=0.1,
        environment=settings.ENVIRONMENT,
        release=settings.APP_VERSION,
    )

    logger.info("sentry_enabled", environment=settings.ENVIRONMENT)
    return True


def add_context(event, hint):
    """Tag events with the service name so webhook errors group together."""
    event.setdefault("tags", {})["service"] = settings.APP_NAME
    return event


def capture_exception(exc: BaseException | None = None, **context):
    """
    Capture an exception to Sentry with webhook context as tags.

    Usage:
        try:
            await handler(record)
        except Exception as exc:
            capture_exception(exc, record_id=record.id, tenant_id=record.tenant_id)
    """
    if not sentry_sdk.get_client().is_active():
        return
    with sentry_sdk.new_scope() as scope:
        for key, value in context.items():
            scope.set_tag(key, str(value))
        sentry_sdk.capture_exception(exc)
