"""Filtered, sorted and status-classified projection of conversations."""

from __future__ import annotations

import logging
import math
from collections.abc import Iterable, Sequence
from dataclasses import replace
from typing import Any

from ..core.models import (
    Conversation,
    Filters,
    LeadStatus,
    SortDirection,
    SortField,
)

LOGGER = logging.getLogger(__name__)

HOT_THRESHOLD = 80
WARM_THRESHOLD = 60


def classify_status(score: float | None) -> LeadStatus:
    """Return the engagement tier for an AI score."""
    if score is None or math.isnan(score):
        return LeadStatus.COLD
    if score >= HOT_THRESHOLD:
        return LeadStatus.HOT
    if score >= WARM_THRESHOLD:
        return LeadStatus.WARM
    return LeadStatus.COLD


def _matches_search(conversation: Conversation, query: str) -> bool:
    needle = query.lower()
    thread = conversation.thread
    if (
        needle in thread.conversation_id.lower()
        or needle in thread.lead_name.lower()
        or needle in thread.client_email.lower()
    ):
        return True
    return any(needle in message.body.lower() for message in conversation.messages)


def matches_filters(conversation: Conversation, filters: Filters) -> bool:
    """Apply search, status and score-range filters in that order."""
    if filters.search_query and not _matches_search(
        conversation, filters.search_query
    ):
        return False

    score = conversation.thread.ai_score
    if classify_status(score) not in filters.status:
        return False

    # Unscored threads are governed by the status filter alone.
    low, high = filters.ai_score_range
    if score is not None and (score < low or score > high):
        return False
    return True


def _date_key(conversation: Conversation) -> Any:
    return conversation.thread.last_message_at


def _score_key(conversation: Conversation) -> float:
    score = conversation.thread.ai_score
    return -1 if score is None else score


def project_conversations(
    conversations: Iterable[Conversation],
    filters: Filters,
    sort_field: SortField = SortField.DATE,
    sort_direction: SortDirection = SortDirection.DESC,
) -> tuple[Conversation, ...]:
    """Return the filtered conversations in display order.

    Sorting is stable in both directions; ``SortField.NONE`` keeps the
    incoming order.
    """
    filtered = [item for item in conversations if matches_filters(item, filters)]
    if sort_field is SortField.NONE:
        return tuple(filtered)
    key = _score_key if sort_field is SortField.AI_SCORE else _date_key
    return tuple(
        sorted(filtered, key=key, reverse=sort_direction is SortDirection.DESC)
    )


def summarize_statuses(conversations: Iterable[Conversation]) -> dict[str, int]:
    """Count conversations per status, plus the overall total."""
    counts = {status.value: 0 for status in LeadStatus}
    total = 0
    for conversation in conversations:
        counts[classify_status(conversation.thread.ai_score).value] += 1
        total += 1
    counts["total"] = total
    return counts


class ViewEngine:
    """Memoised projection over a conversation collection.

    The projection is recomputed only when the collection object, the
    filters, the sort field or the sort direction changed since the last
    read; otherwise the previously returned tuple is handed out again.
    """

    def __init__(
        self,
        conversations: Sequence[Conversation] = (),
        *,
        filters: Filters | None = None,
        sort_field: SortField = SortField.DATE,
        sort_direction: SortDirection = SortDirection.DESC,
    ) -> None:
        self._conversations = conversations
        self._filters = filters or Filters()
        self._sort_field = sort_field
        self._sort_direction = sort_direction
        self._memo_inputs: tuple[Any, ...] | None = None
        self._projection: tuple[Conversation, ...] = ()

    @property
    def filters(self) -> Filters:
        return self._filters

    @property
    def sort_field(self) -> SortField:
        return self._sort_field

    @property
    def sort_direction(self) -> SortDirection:
        return self._sort_direction

    @property
    def projection(self) -> tuple[Conversation, ...]:
        """Filtered and sorted conversations for display."""
        memo = self._memo_inputs
        if (
            memo is not None
            and memo[0] is self._conversations
            and memo[1] == self._filters
            and memo[2] is self._sort_field
            and memo[3] is self._sort_direction
        ):
            return self._projection

        self._projection = project_conversations(
            self._conversations, self._filters, self._sort_field, self._sort_direction
        )
        self._memo_inputs = (
            self._conversations,
            self._filters,
            self._sort_field,
            self._sort_direction,
        )
        LOGGER.debug(
            "Recomputed projection: %d of %d conversations",
            len(self._projection),
            len(self._conversations),
        )
        return self._projection

    def set_conversations(self, conversations: Sequence[Conversation]) -> None:
        self._conversations = conversations

    def set_filters(self, filters: Filters) -> None:
        self._filters = filters

    def update_filters(self, **changes: Any) -> Filters:
        """Replace selected filter fields and return the new filters."""
        if "status" in changes:
            changes["status"] = frozenset(LeadStatus(s) for s in changes["status"])
        if "ai_score_range" in changes:
            low, high = changes["ai_score_range"]
            changes["ai_score_range"] = (low, high)
        self._filters = replace(self._filters, **changes)
        return self._filters

    def set_sort(
        self, field: SortField | str, direction: SortDirection | str | None = None
    ) -> None:
        self._sort_field = SortField(field)
        if direction is not None:
            self._sort_direction = SortDirection(direction)

    def toggle_sort(self, field: SortField | str) -> None:
        """Flip direction for the current field; a new field starts descending."""
        field = SortField(field)
        if field is self._sort_field:
            self._sort_direction = (
                SortDirection.ASC
                if self._sort_direction is SortDirection.DESC
                else SortDirection.DESC
            )
        else:
            self._sort_field = field
            self._sort_direction = SortDirection.DESC

    def status_counts(self) -> dict[str, int]:
        return summarize_statuses(self._conversations)


__all__ = [
    "ViewEngine",
    "classify_status",
    "matches_filters",
    "project_conversations",
    "summarize_statuses",
]
