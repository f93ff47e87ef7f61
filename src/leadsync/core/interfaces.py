"""Protocol interfaces for decoupling components from their collaborators."""

from __future__ import annotations

from collections.abc import Awaitable, Callable, Mapping
from typing import Any, Protocol

from .models import ApiResponse, AppError

VisibilityListener = Callable[[bool], None]
ErrorHandler = Callable[[AppError], "Awaitable[None] | None"]


class RequestFunction(Protocol):
    """Asynchronous request returning a success/failure envelope."""

    async def __call__(
        self,
        endpoint: str,
        *,
        method: str = "GET",
        body: Any = None,
        headers: Mapping[str, str] | None = None,
    ) -> ApiResponse[Any]:
        """Issue a request against ``endpoint`` and wrap the outcome."""
        raise NotImplementedError


class IdentityProvider(Protocol):
    """Accessor yielding the identifier of the signed-in user."""

    def current_user_id(self) -> str | None:
        """Return the current user id, or ``None`` when signed out."""
        raise NotImplementedError


class VisibilitySource(Protocol):
    """Event source reporting whether the page is currently visible."""

    def subscribe(self, listener: VisibilityListener) -> Callable[[], None]:
        """Register ``listener`` and return a callable that removes it."""
        raise NotImplementedError


__all__ = [
    "ErrorHandler",
    "IdentityProvider",
    "RequestFunction",
    "VisibilityListener",
    "VisibilitySource",
]
