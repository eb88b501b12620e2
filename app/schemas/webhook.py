"""
Pydantic models for webhook records.

Input validation for record creation and the response shapes used by the
webhook log routes.
"""
from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from app.models.webhook import WebhookSource, WebhookStatus


class WebhookRecordCreate(BaseModel):
    """Input for creating a webhook record."""
    tenant_id: str = Field(min_length=1)
    event_type: str = Field(min_length=1, max_length=255)
    source: WebhookSource
    payload: Any
    headers: dict[str, str] | None = None
    signature: str | None = None
    ip_address: str | None = None
    transaction_id: str | None = None
    customer_id: str | None = None
    max_attempts: int | None = Field(default=None, ge=1)
    backoff_schedule_minutes: list[int] | None = None

    @field_validator("event_type", "tenant_id")
    @classmethod
    def not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("must not be blank")
        return value

    @field_validator("payload")
    @classmethod
    def payload_present(cls, value: Any) -> Any:
        if value is None:
            raise ValueError("payload is required")
        return value

    @field_validator("backoff_schedule_minutes")
    @classmethod
    def schedule_positive(cls, value: list[int] | None) -> list[int] | None:
        if value is None:
            return value
        if not value:
            raise ValueError("backoff schedule must not be empty")
        if any(minutes <= 0 for minutes in value):
            raise ValueError("backoff delays must be positive")
        return value


class WebhookRecordSummary(BaseModel):
    """List view of a webhook record."""
    model_config = ConfigDict(from_attributes=True)

    id: str
    event_type: str
    source: WebhookSource
    status: WebhookStatus
    attempts: int
    max_attempts: int
    next_attempt_at: datetime | None = None
    last_attempt_at: datetime | None = None
    transaction_id: str | None = None
    customer_id: str | None = None
    error_message: str | None = None
    response_code: int | None = None
    processing_duration_ms: int | None = None
    created_at: datetime


class WebhookRecordResponse(WebhookRecordSummary):
    """Full detail of a webhook record."""
    tenant_id: str
    payload: Any
    headers: dict[str, str] | None = None
    signature: str | None = None
    ip_address: str | None = None
    backoff_schedule_minutes: list[int]
    response_body: Any = None
    processed_at: datetime | None = None
    updated_at: datetime


class Pagination(BaseModel):
    page: int
    limit: int
    total: int
    total_pages: int


class WebhookRecordList(BaseModel):
    """Paginated list of webhook records."""
    logs: list[WebhookRecordSummary]
    pagination: Pagination
