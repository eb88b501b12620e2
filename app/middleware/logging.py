"""
Logging middleware for request/response logging.

Logs all HTTP requests with timing and tenant context, and records the
request metrics.
"""
import time
import uuid

import structlog
from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware

from app.routes.metrics import track_request

logger = structlog.get_logger()


def route_template(request: Request) -> str:
    """Matched route path (e.g. /api/webhooks/logs/{record_id}) for metric labels."""
    route = request.scope.get("route")
    return getattr(route, "path", None) or "unmatched"


class LoggingMiddleware(BaseHTTPMiddleware):
    """
    Middleware to log all HTTP requests with timing and context.

    Adds: request_id, tenant_id, user_id, route, duration_ms, status to every log.
    """

    async def dispatch(self, request: Request, call_next):
        start_time = time.perf_counter()
        request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())

        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(request_id=request_id)

        try:
            response = await call_next(request)
        except Exception as e:
            duration = time.perf_counter() - start_time
            logger.error(
                "request_failed",
                route=request.url.path,
                method=request.method,
                status_code=500,
                duration_ms=round(duration * 1000, 2),
                error=str(e)
            )
            track_request(request.method, route_template(request), 500, duration)
            raise

        duration = time.perf_counter() - start_time

        # Set by the auth dependency once the token is verified
        tenant_id = getattr(request.state, "tenant_id", None)
        user_id = getattr(request.state, "user_id", None)

        logger.info(
            "request_completed",
            route=request.url.path,
            method=request.method,
            tenant_id=tenant_id,
            user_id=user_id,
            status_code=response.status_code,
            duration_ms=round(duration * 1000, 2)
        )
        track_request(request.method, route_template(request), response.status_code, duration)

        response.headers["X-Request-ID"] = request_id
        return response
