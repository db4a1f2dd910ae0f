"""Service errors for the workbench backend.

Every service raises ``ServiceError`` with a machine readable ``code``, the HTTP
status it maps to and a ``safe`` flag telling the API layer whether the message
may be shown to the caller.
"""

from __future__ import annotations

from typing import Any, Dict, Optional


class ServiceError(Exception):
    """An HTTP-style error raised by the service layer."""

    def __init__(
        self,
        code: str,
        status: int,
        message: str,
        safe: bool = False,
        payload: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.code = code
        self.status = status
        self.message = message
        self.safe = safe
        self.payload = payload or {}

    def to_dict(self) -> Dict[str, Any]:
        """Render the error for an API response."""
        body: Dict[str, Any] = {
            "code": self.code,
            "message": self.message if self.safe else "Something went wrong",
        }
        if self.safe and self.payload:
            body.update(self.payload)
        return body

    def __repr__(self) -> str:
        return f"ServiceError(code={self.code!r}, status={self.status}, message={self.message!r})"


def bad_request(message: str, safe: bool = False, payload: Optional[Dict[str, Any]] = None) -> ServiceError:
    return ServiceError("bad_request", 400, message, safe, payload)


def unauthorized(message: str, safe: bool = False) -> ServiceError:
    return ServiceError("unauthorized", 401, message, safe)


def forbidden(message: str, safe: bool = False) -> ServiceError:
    return ServiceError("forbidden", 403, message, safe)


def not_found(message: str, safe: bool = False) -> ServiceError:
    return ServiceError("not_found", 404, message, safe)


def already_exists(message: str, safe: bool = False) -> ServiceError:
    return ServiceError("already_exists", 400, message, safe)


def outdated_update_attempt(message: str, safe: bool = False) -> ServiceError:
    return ServiceError("outdated_update_attempt", 409, message, safe)


def not_supported(message: str, safe: bool = False) -> ServiceError:
    return ServiceError("not_supported", 400, message, safe)


def internal_error(message: str, safe: bool = False) -> ServiceError:
    return ServiceError("internal_error", 500, message, safe)
