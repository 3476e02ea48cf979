"""
Domain errors raised by the capacity and order-lifecycle services.

Every error carries a stable ``kind`` and a human-readable message. The HTTP
layer maps kinds to status codes; services never raise HTTPException.
"""

from datetime import date
from typing import Any, Optional


class BoardingError(Exception):
    kind: str = "boarding_error"
    status_code: int = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def context(self) -> dict[str, Any]:
        """Extra fields exposed to API clients alongside kind and message."""
        return {}

    def to_dict(self) -> dict[str, Any]:
        return {"error": self.kind, "message": self.message, **self.context()}


class ValidationError(BoardingError):
    kind = "validation_error"
    status_code = 400


class NotFound(BoardingError):
    kind = "not_found"
    status_code = 404


class Forbidden(BoardingError):
    kind = "forbidden"
    status_code = 403


class CapacityExhausted(BoardingError):
    kind = "capacity_exhausted"
    status_code = 409

    def __init__(self, day: date, message: Optional[str] = None):
        super().__init__(message or f"No boarding slots left on {day.isoformat()}")
        self.date = day

    def context(self) -> dict[str, Any]:
        return {"date": self.date.isoformat()}


class InvalidTransition(BoardingError):
    kind = "invalid_transition"
    status_code = 409

    def __init__(self, current: str, requested: str):
        super().__init__(f"Cannot {requested} an order that is {current}")
        self.current = current
        self.requested = requested

    def context(self) -> dict[str, Any]:
        return {"current_status": self.current, "requested": self.requested}


class TransactionFailure(BoardingError):
    kind = "transaction_failure"
    status_code = 503

    def __init__(self, message: str = "The operation could not be completed, please retry"):
        super().__init__(message)
