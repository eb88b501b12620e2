"""
Error taxonomy for the webhook delivery engine.

Route handlers translate these into HTTP responses (see app.main).
"""


class WebhookEngineError(Exception):
    """Base class for all webhook engine errors."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class NotFoundError(WebhookEngineError):
    """Unknown webhook record id."""

    def __init__(self, record_id: str):
        super().__init__(f"Webhook record not found: {record_id}")
        self.record_id = record_id


class ConflictError(WebhookEngineError):
    """Illegal state transition or an attempt on a record that is not eligible."""


class ProcessingError(WebhookEngineError):
    """Unrecoverable condition while processing a record."""


class ValidationError(WebhookEngineError):
    """Malformed input when creating a record."""

    def __init__(self, message: str, errors: list | None = None):
        super().__init__(message)
        self.errors = errors or []
