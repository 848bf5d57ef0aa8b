# client/errors.py
from __future__ import annotations

from typing import Any, Dict, Optional


class ApiError(Exception):
    """
    Remote call failed.
    message is the body's "message" field when the backend sent one, else None.
    """

    def __init__(
        self,
        message: Optional[str] = None,
        *,
        status_code: Optional[int] = None,
        payload: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message or f"api_error status={status_code}")
        self.message = message
        self.status_code = status_code
        self.payload = payload or {}


class AuthorizationError(ApiError):
    """401/403: expired or invalid credentials."""


class TransportError(ApiError):
    """Connection, timeout, or an unreadable response body."""


def user_message(exc: BaseException, fallback: str) -> str:
    """
    Message shown to the diner: backend message verbatim, else the per-operation fallback.
    """
    if isinstance(exc, ApiError) and isinstance(exc.message, str) and exc.message.strip():
        return exc.message
    return fallback


def error_info(exc: BaseException) -> Dict[str, Any]:
    out: Dict[str, Any] = {"error_type": type(exc).__name__, "error_message": str(exc)[:200]}
    if isinstance(exc, ApiError):
        out["status_code"] = exc.status_code
    return out
