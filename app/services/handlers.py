"""
Webhook handler contract and registry.

A handler performs the business-side processing of a webhook (crediting a
wallet, activating a subscription, ...) and reports the outcome as a
HandlerResult. The delivery engine only records the outcome.
"""
from dataclasses import dataclass
from typing import Any, Awaitable, Callable

from app.models.webhook import WebhookRecord, WebhookSource


@dataclass(frozen=True)
class HandlerResult:
    """Outcome of one handler invocation."""
    success: bool
    response_code: int | None = None
    response_body: Any = None
    error_message: str | None = None

    @classmethod
    def ok(cls, response_code: int = 200, response_body: Any = None) -> "HandlerResult":
        return cls(success=True, response_code=response_code, response_body=response_body)

    @classmethod
    def fail(cls, error_message: str, response_code: int | None = None) -> "HandlerResult":
        return cls(success=False, response_code=response_code, error_message=error_message)


WebhookHandler = Callable[[WebhookRecord], Awaitable[HandlerResult]]

WILDCARD_EVENT = "*"


class HandlerRegistry:
    """
    Dispatches webhook records to handlers by (source, event type).

    A handler registered for event ``"*"`` catches every event of its source
    that has no exact registration. The registry is itself a WebhookHandler.

    Usage:
        registry = HandlerRegistry()

        @registry.register(WebhookSource.PGPAY, "payment.completed")
        async def credit_wallet(record):
            ...
            return HandlerResult.ok()
    """

    def __init__(self):
        self._handlers: dict[tuple[WebhookSource, str], WebhookHandler] = {}

    def register(self, source: WebhookSource, event_type: str = WILDCARD_EVENT):
        """Decorator registering a handler for a source and event type."""
        def decorator(handler: WebhookHandler) -> WebhookHandler:
            self.add(source, event_type, handler)
            return handler
        return decorator

    def add(self, source: WebhookSource, event_type: str, handler: WebhookHandler) -> None:
        self._handlers[(WebhookSource(source), event_type)] = handler

    def resolve(self, source: WebhookSource, event_type: str) -> WebhookHandler | None:
        source = WebhookSource(source)
        return self._handlers.get((source, event_type)) or self._handlers.get((source, WILDCARD_EVENT))

    async def __call__(self, record: WebhookRecord) -> HandlerResult:
        handler = self.resolve(record.source, record.event_type)
        if handler is None:
            source = WebhookSource(record.source).value
            return HandlerResult.fail(f"No handler registered for {source}/{record.event_type}")
        return await handler(record)


# Default registry used by the worker; application code registers into it
handler_registry = HandlerRegistry()
