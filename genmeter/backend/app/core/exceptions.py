"""
Domain errors raised by the service layer.

Every error carries a stable machine-readable ``code`` and the HTTP status
the API layer answers with. Handlers in ``app.main`` render them as
``{"error": code, "message": message}``.
"""
from typing import Any, Dict, Optional


class GenMeterError(Exception):
    code = "SERVER_ERROR"
    status_code = 500
    default_message = "Internal server error"

    def __init__(self, message: Optional[str] = None, details: Optional[Dict[str, Any]] = None):
        self.message = message or self.default_message
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {"error": self.code, "message": self.message}
        if self.details:
            body["details"] = self.details
        return body


class NotFoundError(GenMeterError):
    code = "NOT_FOUND"
    status_code = 404
    default_message = "Resource not found"


class ForbiddenError(GenMeterError):
    code = "FORBIDDEN"
    status_code = 403
    default_message = "You don't have permission to perform this action"


class ValidationError(GenMeterError):
    code = "VALIDATION_ERROR"
    status_code = 422
    default_message = "The request contains invalid data"


class InsufficientTokensError(GenMeterError):
    code = "INSUFFICIENT_TOKENS"
    status_code = 402
    default_message = "Insufficient tokens. Please purchase more tokens to continue."

    def __init__(self, required: int, available: int):
        super().__init__(
            f"Insufficient tokens. Required: {required}, Available: {available}",
            details={"required": required, "available": available},
        )
        self.required = required
        self.available = available


class InvalidStatusTransitionError(GenMeterError):
    code = "INVALID_STATUS_TRANSITION"
    status_code = 409
    default_message = "Status transition not allowed"

    def __init__(self, current: str, requested: str, entity: str = "generation"):
        super().__init__(
            f"Cannot move {entity} from {current} to {requested}",
            details={"current": current, "requested": requested},
        )
        self.current = current
        self.requested = requested


class MaxRetriesExceededError(GenMeterError):
    code = "MAX_RETRIES_EXCEEDED"
    status_code = 409
    default_message = "Maximum retry attempts exceeded"


class ConcurrentUpdateError(GenMeterError):
    code = "CONCURRENT_UPDATE"
    status_code = 409
    default_message = "Record was modified concurrently, please retry"


class WebhookSignatureMissingError(GenMeterError):
    code = "WEBHOOK_SIGNATURE_MISSING"
    status_code = 400
    default_message = "Missing webhook signature"


class WebhookSignatureInvalidError(GenMeterError):
    code = "WEBHOOK_SIGNATURE_INVALID"
    status_code = 401
    default_message = "Invalid signature"


class WebhookUnconfiguredError(GenMeterError):
    code = "WEBHOOK_UNCONFIGURED"
    status_code = 500
    default_message = "Webhook not configured"


class ProviderError(GenMeterError):
    code = "PROVIDER_ERROR"
    status_code = 502
    default_message = "Compute provider request failed"
