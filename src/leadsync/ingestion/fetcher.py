"""Reactive binding between a request function and observable fetch state."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Callable, Mapping
from dataclasses import dataclass, replace
from typing import Any, Generic, TypeVar

from ..core.interfaces import RequestFunction
from ..core.models import ApiResponse, FetchState

LOGGER = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_ERROR_MESSAGE = "An error occurred"

StateListener = Callable[[FetchState[Any]], None]
_UNSET: Any = object()


def _freeze(value: Any) -> Any:
    """Return a hashable, order-insensitive rendition of a request payload."""
    if isinstance(value, Mapping):
        return tuple(sorted((str(key), _freeze(item)) for key, item in value.items()))
    if isinstance(value, (list, tuple)):
        return tuple(_freeze(item) for item in value)
    if isinstance(value, (set, frozenset)):
        return frozenset(_freeze(item) for item in value)
    return value


def _is_retryable(response: ApiResponse[Any]) -> bool:
    """Transport failures, throttling and server errors are worth retrying."""
    if response.success:
        return False
    status = response.status
    return status is None or status == 429 or status >= 500


# pylint: disable=too-many-instance-attributes
@dataclass(slots=True, frozen=True)
class FetchOptions:
    """Request and scheduling options for a :class:`DataFetcher`.

    ``retries`` bounds how often a retryable failure is re-attempted within
    one fetch; the n-th retry waits ``retry_delay * 2 ** n`` seconds.
    """

    enabled: bool = True
    refetch_interval: float | None = None
    method: str = "GET"
    body: Any = None
    headers: Mapping[str, str] | None = None
    on_success: Callable[[Any], None] | None = None
    on_error: Callable[[str], None] | None = None
    retries: int = 0
    retry_delay: float = 1.0

    def request_key(self) -> tuple[Any, ...]:
        """Identity of the request these options describe; callbacks excluded."""
        return (self.method.upper(), _freeze(self.body), _freeze(self.headers))

    def retry_backoff(self, attempt: int) -> float:
        """Seconds to wait before retry number ``attempt`` (zero-based)."""
        return self.retry_delay * 2**attempt


class DataFetcher(Generic[T]):
    """Keep a :class:`FetchState` in step with a remote endpoint.

    The fetcher is active while it is enabled and has an endpoint. Activation
    and request changes trigger a fetch; ``refetch_interval`` adds a polling
    task that is cancelled whenever the enablement, endpoint or interval
    change. A failed attempt sets ``error`` and keeps the last good ``data``.

    Each attempt carries a sequence number. A response that completes after a
    newer one has already been applied is dropped instead of overwriting
    fresher data; its callback still runs because the attempt did complete.
    """

    def __init__(
        self,
        request: RequestFunction,
        endpoint: str | None,
        options: FetchOptions | None = None,
        *,
        select: Callable[[Any], T] | None = None,
    ) -> None:
        self._request = request
        self._endpoint = endpoint
        self._options = options or FetchOptions()
        self._select = select
        self._state: FetchState[T] = FetchState()
        self._listeners: list[StateListener] = []
        self._poll_task: asyncio.Task[None] | None = None
        self._sequence = 0
        self._applied_sequence = 0
        self._in_flight = 0
        self._started = False
        self._closed = False

    # State accessors ----------------------------------------------------------
    @property
    def state(self) -> FetchState[T]:
        """Snapshot of the current state."""
        return replace(self._state)

    @property
    def data(self) -> T | None:
        return self._state.data

    @property
    def loading(self) -> bool:
        return self._state.loading

    @property
    def error(self) -> str | None:
        return self._state.error

    @property
    def endpoint(self) -> str | None:
        return self._endpoint

    @property
    def options(self) -> FetchOptions:
        return self._options

    @property
    def active(self) -> bool:
        return self._options.enabled and bool(self._endpoint)

    @property
    def polling(self) -> bool:
        return self._poll_task is not None and not self._poll_task.done()

    def subscribe(self, listener: StateListener) -> Callable[[], None]:
        """Call ``listener`` with a state snapshot after every change."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            with contextlib.suppress(ValueError):
                self._listeners.remove(listener)

        return unsubscribe

    # Lifecycle ----------------------------------------------------------------
    async def start(self) -> None:
        """Run the initial fetch and begin polling when active."""
        if self._started or self._closed:
            return
        self._started = True
        if self.active:
            await self._fetch()
        self._restart_polling()

    async def configure(self, endpoint: str | None = _UNSET, **changes: Any) -> None:
        """Apply new endpoint and/or option values.

        A fetch runs when the fetcher becomes active, or when it stays active
        and its endpoint or request identity changed. Polling is rebuilt when
        enablement, endpoint or interval changed.
        """
        previous_options = self._options
        previous_endpoint = self._endpoint
        was_active = self.active

        if endpoint is not _UNSET:
            self._endpoint = endpoint
        if changes:
            self._options = replace(self._options, **changes)

        if not self._started or self._closed:
            return

        endpoint_changed = self._endpoint != previous_endpoint
        request_changed = (
            endpoint_changed
            or self._options.request_key() != previous_options.request_key()
        )
        schedule_changed = (
            endpoint_changed
            or self._options.enabled != previous_options.enabled
            or self._options.refetch_interval != previous_options.refetch_interval
        )

        if schedule_changed:
            await self._stop_polling()
        if self.active and (not was_active or request_changed):
            await self._fetch()
        if schedule_changed:
            self._restart_polling()

    async def close(self) -> None:
        """Tear down polling; later responses are no longer applied."""
        self._closed = True
        await self._stop_polling()
        self._listeners.clear()

    # Operations ---------------------------------------------------------------
    async def refetch(self) -> None:
        """Fetch immediately, regardless of enablement."""
        await self._fetch()

    def mutate(self, data: T) -> None:
        """Replace ``data`` locally without a round trip."""
        self._state.data = data
        self._notify()

    # Internals ----------------------------------------------------------------
    async def _fetch(self) -> None:
        endpoint = self._endpoint
        if not endpoint or self._closed:
            return
        options = self._options
        self._sequence += 1
        sequence = self._sequence
        self._in_flight += 1
        self._state.loading = True
        self._state.error = None
        self._notify()

        try:
            attempt = 0
            while True:
                data, message, retryable = await self._attempt(endpoint, options)
                if message is None or not retryable or attempt >= options.retries:
                    break
                if self._closed or sequence < self._applied_sequence:
                    break
                delay = options.retry_backoff(attempt)
                attempt += 1
                LOGGER.info(
                    "Retrying %s in %.2fs (%d/%d): %s",
                    endpoint,
                    delay,
                    attempt,
                    options.retries,
                    message,
                )
                await asyncio.sleep(delay)
        except asyncio.CancelledError:
            self._in_flight -= 1
            self._state.loading = self._in_flight > 0
            self._notify()
            raise
        self._in_flight -= 1

        if self._closed:
            LOGGER.debug("Discarding response for %s after close", endpoint)
            return

        if sequence < self._applied_sequence:
            LOGGER.debug(
                "Discarding stale response #%s for %s (applied #%s)",
                sequence,
                endpoint,
                self._applied_sequence,
            )
        else:
            self._applied_sequence = sequence
            if message is None:
                self._state.data = data
            else:
                self._state.error = message
        self._state.loading = self._in_flight > 0
        self._notify()

        self._run_callback(options, data, message)

    async def _attempt(
        self, endpoint: str, options: FetchOptions
    ) -> tuple[T | None, str | None, bool]:
        """Run one request; return ``(data, error message, retryable)``."""
        try:
            response = await self._request(
                endpoint,
                method=options.method,
                body=options.body,
                headers=options.headers,
            )
            if response.success and response.data is not None:
                data = self._select(response.data) if self._select else response.data
                return data, None, False
        except Exception as exc:  # pylint: disable=broad-exception-caught
            LOGGER.warning("Fetch of %s raised: %s", endpoint, exc, exc_info=True)
            return None, str(exc) or DEFAULT_ERROR_MESSAGE, True
        return None, response.error or DEFAULT_ERROR_MESSAGE, _is_retryable(response)

    def _run_callback(
        self, options: FetchOptions, data: T | None, message: str | None
    ) -> None:
        try:
            if message is None:
                if options.on_success is not None:
                    options.on_success(data)
            elif options.on_error is not None:
                options.on_error(message)
        except Exception:  # pylint: disable=broad-exception-caught
            LOGGER.error("Fetch callback failed for %s", self._endpoint, exc_info=True)

    def _restart_polling(self) -> None:
        interval = self._options.refetch_interval
        if not self.active or not interval or self._closed or self.polling:
            return
        LOGGER.debug("Polling %s every %ss", self._endpoint, interval)
        self._poll_task = asyncio.get_running_loop().create_task(
            self._poll(interval)
        )

    async def _poll(self, interval: float) -> None:
        while True:
            await asyncio.sleep(interval)
            await self._fetch()

    async def _stop_polling(self) -> None:
        task, self._poll_task = self._poll_task, None
        if task is None or task.done():
            return
        task.cancel()
        if task is asyncio.current_task():
            return
        with contextlib.suppress(asyncio.CancelledError):
            await task

    def _notify(self) -> None:
        snapshot = self.state
        for listener in list(self._listeners):
            try:
                listener(snapshot)
            except Exception:  # pylint: disable=broad-exception-caught
                LOGGER.error("State listener failed", exc_info=True)


__all__ = ["DataFetcher", "FetchOptions"]
