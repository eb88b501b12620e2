"""
Prometheus metrics endpoint.

Exposes webhook delivery and HTTP metrics for monitoring.
"""
from fastapi import APIRouter, Response
from prometheus_client import Counter, Histogram, generate_latest, CONTENT_TYPE_LATEST

router = APIRouter()

# ============================================
# HTTP Request Metrics
# ============================================

http_requests_total = Counter(
    'http_requests_total',
    'Total HTTP requests',
    ['method', 'endpoint', 'status']
)

http_request_duration = Histogram(
    'http_request_duration_seconds',
    'HTTP request duration in seconds',
    ['method', 'endpoint'],
    buckets=[0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0]
)

# ============================================
# Webhook Delivery Metrics
# ============================================

webhook_records_created = Counter(
    'webhook_records_created_total',
    'Total webhook records created',
    ['source']
)

webhook_attempts = Counter(
    'webhook_attempts_total',
    'Total webhook processing attempts by outcome',
    ['source', 'outcome']
)

webhook_processing_duration = Histogram(
    'webhook_processing_duration_seconds',
    'Webhook handler duration in seconds',
    ['source'],
    buckets=[0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0]
)

webhook_replays = Counter(
    'webhook_replays_total',
    'Total webhook records re-armed by replay',
    ['source']
)

webhook_sweep_records = Counter(
    'webhook_sweep_records_total',
    'Total records attempted by the retry sweeper'
)

webhook_cleanup_deleted = Counter(
    'webhook_cleanup_deleted_total',
    'Total terminal webhook records deleted by retention cleanup'
)


# ============================================
# Metrics Helper Functions
# ============================================

def track_request(method: str, endpoint: str, status: int, duration_seconds: float):
    """
    Record HTTP request metrics.

    Call this after each request.
    """
    http_requests_total.labels(
        method=method,
        endpoint=endpoint,
        status=status
    ).inc()

    http_request_duration.labels(
        method=method,
        endpoint=endpoint
    ).observe(duration_seconds)


def track_webhook_created(source: str):
    """Record a webhook record being created."""
    webhook_records_created.labels(source=source).inc()


def track_webhook_attempt(source: str, outcome: str, duration_seconds: float):
    """Record the outcome (success, retrying, failed) and duration of an attempt."""
    webhook_attempts.labels(source=source, outcome=outcome).inc()
    webhook_processing_duration.labels(source=source).observe(duration_seconds)


def track_webhook_replay(source: str):
    """Record a replay."""
    webhook_replays.labels(source=source).inc()


def track_sweep(processed: int):
    """Record records attempted in one sweep."""
    webhook_sweep_records.inc(processed)


def track_cleanup(deleted: int):
    """Record records removed by retention cleanup."""
    webhook_cleanup_deleted.inc(deleted)


# ============================================
# Prometheus Endpoint
# ============================================

@router.get("/metrics")
async def metrics():
    """
    Prometheus metrics endpoint.

    Returns all registered metrics in Prometheus format.
    """
    return Response(generate_latest(), media_type=CONTENT_TYPE_LATEST)
