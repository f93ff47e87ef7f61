"""Mapping of HTTP statuses and exceptions onto typed application errors."""

from __future__ import annotations

from typing import Any

import httpx

from ..core.models import AppError, ErrorKind

_STATUS_ERRORS: dict[int, tuple[ErrorKind, str, str]] = {
    401: (
        ErrorKind.AUTH,
        "UNAUTHORIZED",
        "Authentication required. Please log in again.",
    ),
    403: (
        ErrorKind.AUTH,
        "FORBIDDEN",
        "You do not have permission to perform this action.",
    ),
    404: (ErrorKind.API, "NOT_FOUND", "The requested resource was not found."),
    500: (
        ErrorKind.API,
        "INTERNAL_ERROR",
        "Internal server error. Please try again later.",
    ),
}

NETWORK_MESSAGE = "Network error. Please check your connection and try again."
DEFAULT_MESSAGE = "An unknown error occurred"


class AppException(RuntimeError):
    """Exception carrying the fields of an :class:`AppError`."""

    def __init__(
        self,
        message: str,
        kind: ErrorKind = ErrorKind.UNKNOWN,
        *,
        code: str | None = None,
        status: int | None = None,
        details: Any = None,
    ) -> None:
        super().__init__(message)
        self.kind = kind
        self.code = code
        self.status = status
        self.details = details

    def to_app_error(self, *, user_id: str | None = None) -> AppError:
        return AppError(
            kind=self.kind,
            message=str(self),
            code=self.code,
            details=self.details,
            user_id=user_id,
            status=self.status,
        )


def error_from_status(
    status: int, *, details: Any = None, user_id: str | None = None
) -> AppError:
    """Return the :class:`AppError` describing a non-success HTTP status."""
    known = _STATUS_ERRORS.get(status)
    if known is not None:
        kind, code, message = known
    else:
        kind, code = ErrorKind.API, f"HTTP_{status}"
        message = f"Request failed with status {status}."
    return AppError(
        kind=kind,
        message=message,
        code=code,
        details=details,
        user_id=user_id,
        status=status,
    )


def error_from_exception(
    exc: BaseException, *, user_id: str | None = None
) -> AppError:
    """Classify an exception raised while talking to the backend."""
    if isinstance(exc, AppException):
        return exc.to_app_error(user_id=user_id)
    if isinstance(exc, httpx.HTTPStatusError):
        return error_from_status(
            exc.response.status_code, details=str(exc), user_id=user_id
        )
    if isinstance(exc, httpx.TransportError):
        return AppError(
            kind=ErrorKind.NETWORK,
            message=NETWORK_MESSAGE,
            code="NETWORK_ERROR",
            details=str(exc),
            user_id=user_id,
        )
    return AppError(
        kind=ErrorKind.UNKNOWN,
        message=str(exc) or DEFAULT_MESSAGE,
        code="UNKNOWN_ERROR",
        user_id=user_id,
    )


__all__ = [
    "AppException",
    "DEFAULT_MESSAGE",
    "NETWORK_MESSAGE",
    "error_from_exception",
    "error_from_status",
]
