"""
Test fixtures for webhook engine tests.

Provides an in-memory SQLite store, a controllable clock and scripted
webhook handlers.
"""
from datetime import datetime, timedelta, timezone

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from app.models.base import Base
from app.models.webhook import WebhookRecord
from app.services.handlers import HandlerResult
from app.services.webhook_engine import WebhookEngine
from app.services.webhook_store import WebhookRecordStore


# Use in-memory SQLite for unit tests (fast, isolated)
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

START = datetime(2026, 1, 15, 12, 0, tzinfo=timezone.utc)


class FakeClock:
    """Clock returning a fixed time until advanced."""

    def __init__(self, start: datetime = START):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **delta) -> datetime:
        self.now += timedelta(**delta)
        return self.now

    def set(self, moment: datetime) -> None:
        self.now = moment


class ScriptedHandler:
    """
    Handler returning scripted outcomes in order, then ``default``.

    An Exception instance in the script is raised instead of returned.
    """

    def __init__(self, *outcomes, default: HandlerResult | None = None):
        self.outcomes = list(outcomes)
        self.default = default or HandlerResult.ok()
        self.calls: list[WebhookRecord] = []

    async def __call__(self, record: WebhookRecord) -> HandlerResult:
        self.calls.append(record)
        outcome = self.outcomes.pop(0) if self.outcomes else self.default
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


@pytest_asyncio.fixture
async def test_engine():
    """Create a test database engine with in-memory SQLite."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest.fixture
def session_factory(test_engine):
    return async_sessionmaker(test_engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
def store(session_factory) -> WebhookRecordStore:
    return WebhookRecordStore(session_factory)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def ok_handler() -> ScriptedHandler:
    return ScriptedHandler(default=HandlerResult.ok(200, {"received": True}))


@pytest.fixture
def failing_handler() -> ScriptedHandler:
    return ScriptedHandler(default=HandlerResult.fail("upstream unavailable", 503))


@pytest.fixture
def make_engine(store, clock):
    """Factory for engines sharing the test store and clock."""
    def factory(handler=None, **options) -> WebhookEngine:
        options.setdefault("handler_timeout", 1.0)
        # A single SQLite connection backs the store; keep sweeps sequential
        options.setdefault("sweep_concurrency", 1)
        options.setdefault("pending_grace", timedelta(seconds=60))
        return WebhookEngine(store, handler=handler, clock=clock, **options)
    return factory


@pytest.fixture
def sample_event() -> dict:
    return {
        "tenant_id": "org-1",
        "event_type": "payment.completed",
        "source": "pgpay",
        "payload": {"transaction": "txn-123", "amount": 2500, "currency": "USD"},
        "headers": {"content-type": "application/json"},
        "signature": "sha256=abc",
        "ip_address": "203.0.113.7",
        "transaction_id": "txn-123",
        "customer_id": "cust-9",
    }
