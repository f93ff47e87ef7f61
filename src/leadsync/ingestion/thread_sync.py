"""Synchronisation of the signed-in user's conversation threads."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Callable, Mapping, Sequence
from dataclasses import replace
from typing import Any

from ..core.interfaces import IdentityProvider, RequestFunction, VisibilitySource
from ..core.models import Conversation, FetchState
from .fetcher import DataFetcher, FetchOptions
from .normalizer import normalize_threads

LOGGER = logging.getLogger(__name__)

THREADS_ENDPOINT = "lcp/get_all_threads"
SELECT_ENDPOINT = "db/select"
UPDATE_ENDPOINT = "db/update"
DELETE_THREAD_ENDPOINT = "lcp/delete_thread"
MARK_NOT_SPAM_ENDPOINT = "lcp/mark_not_spam"

_NO_CONVERSATIONS: tuple[Conversation, ...] = ()


def _user_record_query(user_id: str) -> dict[str, Any]:
    return {
        "table_name": "Users",
        "index_name": "id-index",
        "key_name": "id",
        "key_value": user_id,
        "account_id": user_id,
    }


def _has_new_items(payload: Any) -> bool:
    if not isinstance(payload, Mapping):
        return False
    items = payload.get("items")
    if not isinstance(items, Sequence) or not items:
        return False
    first = items[0]
    return isinstance(first, Mapping) and first.get("new_email") is True


class ThreadSync:
    """Keep the current user's normalised conversations up to date.

    The thread list is fetched through a :class:`DataFetcher` that is enabled
    only while a user is signed in. With polling on, two producers feed one
    consumer task through a queue: the visibility listener (page became
    visible) and a slow interval timer. The consumer coalesces whatever is
    queued and runs a single :meth:`check_for_new_items`, which refetches the
    full list only when the backend flags new mail for the user.

    Thread edits (read, spam, LCP, delete) are optimistic: the local list
    changes first and is restored if the backend rejects the edit.
    """

    # pylint: disable=too-many-instance-attributes
    def __init__(
        self,
        request: RequestFunction,
        identity: IdentityProvider,
        visibility: VisibilitySource | None = None,
        *,
        enabled: bool = True,
        polling: bool = False,
        refetch_interval: float | None = None,
        check_interval: float = 300.0,
        retries: int = 3,
        retry_delay: float = 1.0,
        on_success: Callable[[Any], None] | None = None,
        on_error: Callable[[str], None] | None = None,
    ) -> None:
        # pylint: disable=too-many-arguments
        if check_interval <= 0:
            raise ValueError("check_interval must be positive")
        self._request = request
        self._identity = identity
        self._visibility = visibility
        self._enabled = enabled
        self._polling = polling
        self._check_interval = check_interval
        self._user_id = identity.current_user_id()
        self._fetcher: DataFetcher[list[Conversation]] = DataFetcher(
            request,
            THREADS_ENDPOINT,
            FetchOptions(
                enabled=self._fetch_enabled(),
                refetch_interval=refetch_interval,
                method="POST",
                body={"userId": self._user_id},
                on_success=on_success,
                on_error=on_error,
                retries=retries,
                retry_delay=retry_delay,
            ),
            select=normalize_threads,
        )
        self._triggers: asyncio.Queue[str] | None = None
        self._watch_tasks: list[asyncio.Task[None]] = []
        self._unsubscribe_visibility: Callable[[], None] | None = None
        self._closed = False

    # State accessors ----------------------------------------------------------
    @property
    def data(self) -> Sequence[Conversation]:
        """Normalised conversations; empty until the first successful load."""
        data = self._fetcher.data
        return _NO_CONVERSATIONS if data is None else data

    @property
    def loaded(self) -> bool:
        return self._fetcher.data is not None

    @property
    def loading(self) -> bool:
        return self._fetcher.loading

    @property
    def error(self) -> str | None:
        return self._fetcher.error

    @property
    def user_id(self) -> str | None:
        return self._user_id

    @property
    def polling(self) -> bool:
        return self._polling

    @property
    def watching(self) -> bool:
        """Whether the visibility listener and interval timer are attached."""
        return bool(self._watch_tasks)

    def subscribe(self, listener: Callable[[FetchState[Any]], None]) -> Callable[[], None]:
        return self._fetcher.subscribe(listener)

    def find_conversation(self, conversation_id: str) -> Conversation | None:
        """Return the loaded conversation with ``conversation_id``, if any."""
        if not conversation_id or self._fetcher.data is None:
            return None
        for conversation in self._fetcher.data:
            if conversation.thread.conversation_id == conversation_id:
                return conversation
        return None

    # Lifecycle ----------------------------------------------------------------
    async def start(self) -> None:
        """Load the threads and attach the refresh triggers."""
        await self._fetcher.start()
        self._start_watchers()

    async def refresh_identity(self) -> None:
        """Re-read the identity and rebind fetch and triggers when it changed."""
        user_id = self._identity.current_user_id()
        if user_id == self._user_id:
            return
        LOGGER.info("Identity changed, rebinding thread sync")
        await self._stop_watchers()
        self._user_id = user_id
        await self._fetcher.configure(
            enabled=self._fetch_enabled(), body={"userId": user_id}
        )
        self._start_watchers()

    async def set_enabled(self, enabled: bool) -> None:
        self._enabled = enabled
        await self._fetcher.configure(enabled=self._fetch_enabled())

    async def set_polling(self, polling: bool) -> None:
        """Attach or detach the visibility and interval triggers."""
        if polling == self._polling:
            return
        self._polling = polling
        if polling:
            self._start_watchers()
        else:
            await self._stop_watchers()

    async def close(self) -> None:
        self._closed = True
        await self._stop_watchers()
        await self._fetcher.close()

    # Operations ---------------------------------------------------------------
    async def refetch(self) -> None:
        await self._fetcher.refetch()

    def mutate(self, conversations: Sequence[Conversation]) -> None:
        """Replace the local conversations without a round trip."""
        self._fetcher.mutate(list(conversations))

    async def check_for_new_items(self) -> bool:
        """Refetch when the backend reports new mail; return whether it did."""
        user_id = self._user_id
        if not user_id:
            return False
        try:
            response = await self._request(
                SELECT_ENDPOINT, method="POST", body=_user_record_query(user_id)
            )
            if not response.success:
                LOGGER.warning("New-item check failed: %s", response.error)
                return False
            if not _has_new_items(response.data):
                LOGGER.debug("No new threads for user %s", user_id)
                return False

            LOGGER.info("New email detected, refreshing conversations")
            await self.refetch()
            reset = await self._request(
                UPDATE_ENDPOINT,
                method="POST",
                body={
                    **_user_record_query(user_id),
                    "update_data": {"new_email": False},
                },
            )
            if not reset.success:
                LOGGER.warning("Failed to reset new-item flag: %s", reset.error)
            return True
        except Exception as exc:  # pylint: disable=broad-exception-caught
            LOGGER.error("Error checking for new threads: %s", exc, exc_info=True)
            return False

    async def update_thread(self, conversation_id: str, **changes: Any) -> bool:
        """Apply ``changes`` to a thread locally, then persist them.

        The local change is rolled back when the backend rejects it.
        """
        if self.find_conversation(conversation_id) is None:
            return False

        def apply(conversations: list[Conversation]) -> list[Conversation]:
            return [
                replace(item, thread=replace(item.thread, **changes))
                if item.thread.conversation_id == conversation_id
                else item
                for item in conversations
            ]

        body = {
            "table_name": "Threads",
            "key_name": "conversation_id",
            "key_value": conversation_id,
            "update_data": changes,
        }
        return await self._optimistic(
            apply, UPDATE_ENDPOINT, body, f"update thread {conversation_id}"
        )

    async def mark_as_read(self, conversation_id: str) -> bool:
        return await self.update_thread(conversation_id, read=True)

    async def mark_as_spam(self, conversation_id: str, spam: bool = True) -> bool:
        """Flag a thread as spam, or release it through the not-spam endpoint."""
        if spam:
            return await self.update_thread(conversation_id, spam=True)

        conversation = self.find_conversation(conversation_id)
        if conversation is None:
            return False
        message_id = next(
            (m.response_id for m in reversed(conversation.messages) if m.response_id),
            None,
        )
        if message_id is None:
            LOGGER.warning("No message with a response id in %s", conversation_id)
            return False

        def apply(conversations: list[Conversation]) -> list[Conversation]:
            return [
                replace(item, thread=replace(item.thread, spam=False))
                if item.thread.conversation_id == conversation_id
                else item
                for item in conversations
            ]

        body = {
            "conversation_id": conversation_id,
            "message_id": message_id,
            "account_id": conversation.thread.associated_account,
        }
        return await self._optimistic(
            apply, MARK_NOT_SPAM_ENDPOINT, body, f"release {conversation_id} from spam"
        )

    async def toggle_lcp(self, conversation_id: str) -> bool:
        conversation = self.find_conversation(conversation_id)
        if conversation is None:
            return False
        return await self.update_thread(
            conversation_id, lcp_enabled=not conversation.thread.lcp_enabled
        )

    async def delete_conversation(self, conversation_id: str) -> bool:
        """Remove a thread locally and on the backend."""
        if self.find_conversation(conversation_id) is None:
            return False

        def apply(conversations: list[Conversation]) -> list[Conversation]:
            return [
                item
                for item in conversations
                if item.thread.conversation_id != conversation_id
            ]

        return await self._optimistic(
            apply,
            DELETE_THREAD_ENDPOINT,
            {"conversation_id": conversation_id},
            f"delete thread {conversation_id}",
        )

    # Internals ----------------------------------------------------------------
    async def _optimistic(
        self,
        apply: Callable[[list[Conversation]], list[Conversation]],
        endpoint: str,
        body: dict[str, Any],
        action: str,
    ) -> bool:
        """Show ``apply``'s result at once and undo it if ``endpoint`` fails.

        When the conversations changed while the request was in flight, the
        snapshot is no longer safe to restore and the list is refetched.
        """
        snapshot = self._fetcher.data
        if snapshot is None:
            return False
        optimistic = apply(list(snapshot))
        self._fetcher.mutate(optimistic)

        try:
            response = await self._request(endpoint, method="POST", body=body)
        except Exception as exc:  # pylint: disable=broad-exception-caught
            LOGGER.error("Failed to %s: %s", action, exc, exc_info=True)
        else:
            if response.success:
                return True
            LOGGER.warning("Failed to %s: %s", action, response.error)

        if self._fetcher.data is optimistic:
            self._fetcher.mutate(snapshot)
        else:
            LOGGER.info("Conversations changed during %s, refetching", action)
            await self.refetch()
        return False

    def _fetch_enabled(self) -> bool:
        return self._enabled and bool(self._user_id)

    def _start_watchers(self) -> None:
        if self._closed or not self._polling or not self._user_id or self._watch_tasks:
            return
        loop = asyncio.get_running_loop()
        queue: asyncio.Queue[str] = asyncio.Queue()
        self._triggers = queue
        if self._visibility is not None:
            self._unsubscribe_visibility = self._visibility.subscribe(
                self._on_visibility_change
            )
        self._watch_tasks = [
            loop.create_task(self._consume_triggers(queue)),
            loop.create_task(self._tick(queue)),
        ]
        LOGGER.debug("Thread refresh triggers attached for user %s", self._user_id)

    async def _stop_watchers(self) -> None:
        if self._unsubscribe_visibility is not None:
            self._unsubscribe_visibility()
            self._unsubscribe_visibility = None
        self._triggers = None
        tasks, self._watch_tasks = self._watch_tasks, []
        current = asyncio.current_task()
        for task in tasks:
            task.cancel()
        for task in tasks:
            if task is current:
                continue
            with contextlib.suppress(asyncio.CancelledError):
                await task

    def _on_visibility_change(self, visible: bool) -> None:
        if visible and self._triggers is not None:
            LOGGER.info("Page became visible, checking for new emails")
            self._triggers.put_nowait("visibility")

    async def _tick(self, queue: asyncio.Queue[str]) -> None:
        while True:
            await asyncio.sleep(self._check_interval)
            queue.put_nowait("interval")

    async def _consume_triggers(self, queue: asyncio.Queue[str]) -> None:
        while True:
            reasons = {await queue.get()}
            while not queue.empty():
                reasons.add(queue.get_nowait())
            LOGGER.debug("Running new-item check (triggers: %s)", sorted(reasons))
            await self.check_for_new_items()


__all__ = [
    "DELETE_THREAD_ENDPOINT",
    "MARK_NOT_SPAM_ENDPOINT",
    "SELECT_ENDPOINT",
    "THREADS_ENDPOINT",
    "ThreadSync",
    "UPDATE_ENDPOINT",
]
