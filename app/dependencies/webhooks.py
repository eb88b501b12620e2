"""
Webhook engine dependency for FastAPI routes.

The engine is built once per application in the lifespan handler and kept
on app.state, where tests can replace it.
"""
from fastapi import Request

from app.database import AsyncSessionLocal
from app.services.webhook_engine import WebhookEngine
from app.services.webhook_store import WebhookRecordStore


def build_engine(session_factory=AsyncSessionLocal, **options) -> WebhookEngine:
    """Create an engine backed by the given session factory."""
    return WebhookEngine(WebhookRecordStore(session_factory), **options)


def get_webhook_engine(request: Request) -> WebhookEngine:
    """Return the application's webhook engine."""
    return request.app.state.webhook_engine
