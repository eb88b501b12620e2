"""
Webhook log API routes.

Lets an organisation inspect its webhook history, re-arm finished records
and force an immediate delivery attempt. Engine errors are mapped to HTTP
responses by the exception handlers in app.main.
"""
from fastapi import APIRouter, Depends, Query

from app.config import settings
from app.dependencies.auth import get_current_user, require_admin, TokenPayload
from app.dependencies.webhooks import get_webhook_engine
from app.models.webhook import WebhookSource, WebhookStatus
from app.schemas.webhook import (
    Pagination,
    WebhookRecordList,
    WebhookRecordResponse,
    WebhookRecordSummary,
)
from app.services.webhook_engine import WebhookEngine


router = APIRouter(prefix="/api/webhooks/logs", tags=["webhooks"])


@router.get("", response_model=WebhookRecordList)
async def list_webhook_logs(
    source: WebhookSource | None = None,
    status: WebhookStatus | None = None,
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1),
    token: TokenPayload = Depends(get_current_user),
    engine: WebhookEngine = Depends(get_webhook_engine)
):
    """List the organisation's webhook logs, newest first (max 100 per page)."""
    records, total = await engine.list_records(
        token.tenant_id,
        source=source,
        status=status,
        page=page,
        limit=limit,
    )
    page_size = min(limit, settings.WEBHOOK_LIST_MAX_LIMIT)

    return WebhookRecordList(
        logs=[WebhookRecordSummary.model_validate(record) for record in records],
        pagination=Pagination(
            page=page,
            limit=page_size,
            total=total,
            total_pages=engine.total_pages(total, page_size),
        ),
    )


@router.get("/stats", response_model=dict)
async def webhook_log_stats(
    token: TokenPayload = Depends(get_current_user),
    engine: WebhookEngine = Depends(get_webhook_engine)
):
    """Count of the organisation's webhook logs per status."""
    return {"stats": await engine.stats(token.tenant_id)}


@router.get("/{record_id}", response_model=WebhookRecordResponse)
async def get_webhook_log(
    record_id: str,
    token: TokenPayload = Depends(get_current_user),
    engine: WebhookEngine = Depends(get_webhook_engine)
):
    """Get a single webhook log including payload and last response."""
    record = await engine.get_record(record_id, tenant_id=token.tenant_id)
    return WebhookRecordResponse.model_validate(record)


@router.post("/{record_id}/replay", response_model=dict)
async def replay_webhook_log(
    record_id: str,
    token: TokenPayload = Depends(require_admin),
    engine: WebhookEngine = Depends(get_webhook_engine)
):
    """
    Re-arm a finished webhook for redelivery.

    The record goes back to pending with its attempts reset; delivery
    happens on the next sweep or via the process endpoint.
    """
    record = await engine.replay(record_id, tenant_id=token.tenant_id)
    return {
        "message": "Webhook replay initiated successfully",
        "log": WebhookRecordSummary.model_validate(record).model_dump(mode="json"),
    }


@router.post("/{record_id}/process", response_model=WebhookRecordResponse)
async def process_webhook_log(
    record_id: str,
    token: TokenPayload = Depends(require_admin),
    engine: WebhookEngine = Depends(get_webhook_engine)
):
    """Attempt delivery now, ignoring the retry schedule."""
    record = await engine.process_now(record_id, tenant_id=token.tenant_id)
    return WebhookRecordResponse.model_validate(record)
