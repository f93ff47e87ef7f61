"""Ordered, process-wide dispatch of application errors to handlers."""

from __future__ import annotations

import asyncio
import inspect
import logging
from collections import deque
from collections.abc import Callable
from functools import lru_cache

from ..core.interfaces import ErrorHandler
from ..core.models import AppError, ErrorKind

LOGGER = logging.getLogger(__name__)

Fallback = Callable[[AppError], None]


def log_unhandled_error(error: AppError) -> None:
    """Default fallback: record the error through the logging system."""
    LOGGER.error(
        "Unhandled %s error: %s (code=%s, status=%s, user=%s)",
        error.kind.value,
        error.message,
        error.code,
        error.status,
        error.user_id,
    )


class ErrorPipeline:
    """FIFO queue delivering each error to its kind's handler, one at a time.

    ``handle_error`` only enqueues; a single drain task takes errors off the
    queue and awaits each handler before moving on, so handler side effects
    never interleave and errors are observed in the order they were raised.
    Kinds without a handler, and errors whose handler fails, go to the
    fallback.
    """

    def __init__(self, fallback: Fallback = log_unhandled_error) -> None:
        self._handlers: dict[ErrorKind, ErrorHandler] = {}
        self._queue: deque[AppError] = deque()
        self._fallback = fallback
        self._processing = False
        self._drain_task: asyncio.Task[None] | None = None

    def register_handler(self, kind: ErrorKind | str, handler: ErrorHandler) -> None:
        """Route errors of ``kind`` to ``handler``, replacing any previous one."""
        self._handlers[ErrorKind(kind)] = handler

    def has_handler(self, kind: ErrorKind | str) -> bool:
        return ErrorKind(kind) in self._handlers

    def registered_kinds(self) -> list[ErrorKind]:
        return list(self._handlers)

    def clear_handlers(self) -> None:
        self._handlers.clear()

    @property
    def pending(self) -> int:
        """Number of errors waiting to be dispatched."""
        return len(self._queue)

    def handle_error(self, error: AppError) -> None:
        """Enqueue ``error`` and start draining unless a drain is running.

        Inside an event loop the drain runs as a background task. Without a
        running loop the queue is drained to completion before returning.
        """
        self._queue.append(error)
        if self._processing:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            asyncio.run(self._drain())
            return
        self._processing = True
        self._drain_task = loop.create_task(self._drain())

    async def join(self) -> None:
        """Wait until every queued error has been dispatched."""
        while self._drain_task is not None and not self._drain_task.done():
            await asyncio.shield(self._drain_task)

    async def _drain(self) -> None:
        self._processing = True
        try:
            while self._queue:
                error = self._queue.popleft()
                await self._dispatch(error)
        finally:
            self._processing = False

    async def _dispatch(self, error: AppError) -> None:
        handler = self._handlers.get(error.kind)
        if handler is None:
            self._run_fallback(error)
            return
        try:
            result = handler(error)
            if inspect.isawaitable(result):
                await result
        except Exception:  # pylint: disable=broad-exception-caught
            LOGGER.error(
                "Error handler for %s failed", error.kind.value, exc_info=True
            )
            self._run_fallback(error)

    def _run_fallback(self, error: AppError) -> None:
        try:
            self._fallback(error)
        except Exception:  # pylint: disable=broad-exception-caught
            LOGGER.error("Error fallback failed", exc_info=True)
            log_unhandled_error(error)


@lru_cache(maxsize=1)
def get_error_pipeline() -> ErrorPipeline:
    """Return the process-wide pipeline, constructing it on first use."""
    return ErrorPipeline()


__all__ = ["ErrorPipeline", "get_error_pipeline", "log_unhandled_error"]
