"""
Webhook record model.

One row per received or emitted webhook event, carrying its delivery
lifecycle (status, attempts, schedule) alongside the verbatim payload.

SECURITY: All tenant-facing queries MUST include tenant_id filter.
"""
import enum
import uuid
from datetime import datetime
from typing import Any
from sqlalchemy import JSON, CheckConstraint, Index, Integer, String, Text, Enum as SQLEnum
from sqlalchemy.orm import Mapped, mapped_column
from app.models.base import Base, TimestampMixin, UTCDateTime


class WebhookStatus(str, enum.Enum):
    """Delivery lifecycle states."""
    PENDING = "pending"
    RETRYING = "retrying"
    SUCCESS = "success"
    FAILED = "failed"


TERMINAL_STATUSES = (WebhookStatus.SUCCESS, WebhookStatus.FAILED)
ACTIVE_STATUSES = (WebhookStatus.PENDING, WebhookStatus.RETRYING)


class WebhookSource(str, enum.Enum):
    """Origin system of a webhook."""
    PGPAY = "pgpay"
    STRIPE = "stripe"
    PAYPAL = "paypal"
    DINGCONNECT = "dingconnect"
    RELOADLY = "reloadly"
    OTHER = "other"


class WebhookRecord(Base, TimestampMixin):
    """
    Durable record of a webhook event and its delivery attempts.

    max_attempts and backoff_schedule_minutes are copied at creation and
    never change afterwards. Every mutation bumps ``version``; writers use it
    as the compare-and-set precondition.
    """
    __tablename__ = "webhook_records"
    __table_args__ = (
        Index("ix_webhook_records_tenant_created", "tenant_id", "created_at"),
        Index("ix_webhook_records_source_event_created", "source", "event_type", "created_at"),
        Index("ix_webhook_records_status_next_attempt", "status", "next_attempt_at"),
        CheckConstraint("attempts <= max_attempts", name="ck_webhook_records_attempts_ceiling"),
    )

    id: Mapped[str] = mapped_column(
        String(36),
        primary_key=True,
        default=lambda: str(uuid.uuid4())
    )
    tenant_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    event_type: Mapped[str] = mapped_column(String(255), nullable=False)
    source: Mapped[WebhookSource] = mapped_column(
        SQLEnum(WebhookSource, native_enum=False,
                values_callable=lambda e: [m.value for m in e]),
        nullable=False
    )
    payload: Mapped[Any] = mapped_column(JSON, nullable=False)

    # Request metadata (audit only)
    headers: Mapped[dict[str, str] | None] = mapped_column(JSON, nullable=True)
    signature: Mapped[str | None] = mapped_column(Text, nullable=True)
    ip_address: Mapped[str | None] = mapped_column(String(64), nullable=True)

    # Lifecycle
    status: Mapped[WebhookStatus] = mapped_column(
        SQLEnum(WebhookStatus, native_enum=False,
                values_callable=lambda e: [m.value for m in e]),
        nullable=False,
        default=WebhookStatus.PENDING
    )
    attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    max_attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=6)
    backoff_schedule_minutes: Mapped[list[int]] = mapped_column(JSON, nullable=False)
    next_attempt_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    last_attempt_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    locked_until: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    # Last result
    response_code: Mapped[int | None] = mapped_column(Integer, nullable=True)
    response_body: Mapped[Any] = mapped_column(JSON, nullable=True)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Completion
    processed_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    processing_duration_ms: Mapped[int | None] = mapped_column(Integer, nullable=True)

    # Correlation
    transaction_id: Mapped[str | None] = mapped_column(String(64), nullable=True, index=True)
    customer_id: Mapped[str | None] = mapped_column(String(64), nullable=True, index=True)

    def __repr__(self):
        return (
            f"<WebhookRecord(id={self.id}, source={self.source}, event={self.event_type}, "
            f"status={self.status}, attempts={self.attempts}/{self.max_attempts})>"
        )
