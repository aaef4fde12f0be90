"""Business-rule failures raised by the service layer.

Every error leaves entities unmodified; the app's error handler rolls the
session back and renders ``{"error": code, "message": message}``.
"""


class MarketError(Exception):
    status_code = 400
    default_code = "bad_request"

    def __init__(self, message: str, code: str | None = None):
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code

    def to_dict(self) -> dict:
        return {"error": self.code, "message": self.message}


class NotFound(MarketError):
    """Entity absent, or hidden from this actor."""

    status_code = 404
    default_code = "not_found"


class Forbidden(MarketError):
    status_code = 403
    default_code = "forbidden"


class InvalidState(MarketError):
    default_code = "invalid_state"


class Conflict(MarketError):
    default_code = "conflict"


class Precondition(MarketError):
    default_code = "precondition_failed"


class ValidationError(MarketError):
    default_code = "validation_error"


class InvalidOperation(MarketError):
    default_code = "invalid_operation"
