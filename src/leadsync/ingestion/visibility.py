"""In-process page visibility signal."""

from __future__ import annotations

import contextlib
import logging
from collections.abc import Callable

from ..core.interfaces import VisibilityListener

LOGGER = logging.getLogger(__name__)


class VisibilitySignal:
    """Visibility event source that notifies listeners on transitions only."""

    def __init__(self, visible: bool = True) -> None:
        self._visible = visible
        self._listeners: list[VisibilityListener] = []

    @property
    def visible(self) -> bool:
        return self._visible

    @property
    def listener_count(self) -> int:
        return len(self._listeners)

    def subscribe(self, listener: VisibilityListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            with contextlib.suppress(ValueError):
                self._listeners.remove(listener)

        return unsubscribe

    def set_visible(self, visible: bool) -> None:
        """Record the new visibility, notifying listeners when it changed."""
        if visible == self._visible:
            return
        self._visible = visible
        LOGGER.debug("Visibility changed: visible=%s", visible)
        for listener in list(self._listeners):
            try:
                listener(visible)
            except Exception:  # pylint: disable=broad-exception-caught
                LOGGER.error("Visibility listener failed", exc_info=True)


__all__ = ["VisibilitySignal"]
