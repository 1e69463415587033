"""Typed errors raised by the service layer and rendered once at the HTTP boundary."""
from __future__ import annotations

from typing import Any, Dict


class AssistantError(Exception):
    status_code = 500
    default_code = "internal_error"

    def __init__(self, message: str, /, *, code: str | None = None, **extra: Any) -> None:
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code
        self.extra: Dict[str, Any] = extra

    def to_payload(self) -> Dict[str, Any]:
        return {"error": self.message, "code": self.code, **self.extra}


class BadRequestError(AssistantError):
    status_code = 400
    default_code = "bad_request"


class ConflictError(BadRequestError):
    """Wrong current status for the requested transition.

    Rendered as 400 with a machine-readable ``code`` so callers can tell a stale
    request apart from a malformed one.
    """

    default_code = "invalid_status"


class UnauthorizedError(AssistantError):
    status_code = 401
    default_code = "unauthorized"


class ForbiddenError(AssistantError):
    status_code = 403
    default_code = "forbidden"


class NotFoundError(AssistantError):
    status_code = 404
    default_code = "not_found"


class DataIntegrityError(AssistantError):
    status_code = 500
    default_code = "data_integrity_error"
