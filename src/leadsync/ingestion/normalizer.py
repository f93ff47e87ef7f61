"""Normalisation of raw thread payloads into :class:`Conversation` values."""

from __future__ import annotations

import logging
import math
from collections.abc import Mapping, Sequence
from typing import Any

from ..core.datetime_utils import parse_timestamp
from ..core.models import Conversation, Message, Thread

LOGGER = logging.getLogger(__name__)

_LEAD_NAME_KEYS = ("lead_name", "source_name", "name", "client_name", "sender_name")
_CLIENT_EMAIL_KEYS = ("client_email", "source", "email", "sender_email", "lead_email")


def _first(record: Mapping[str, Any], keys: Sequence[str], default: str = "") -> str:
    """Return the first truthy value among ``keys`` as a string."""
    for key in keys:
        value = record.get(key)
        if value:
            return str(value)
    return default


def _flag(value: Any) -> bool:
    return value is True or (isinstance(value, str) and value.lower() == "true")


def _score(value: Any) -> float | None:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return None if math.isnan(value) else float(value)
    if isinstance(value, str):
        try:
            parsed = float(value)
        except ValueError:
            return None
        return None if math.isnan(parsed) else parsed
    return None


def normalize_message(raw: Mapping[str, Any], conversation_id: str, index: int) -> Message:
    """Convert one raw message record; ``index`` seeds the fallback id."""
    sender = _first(raw, ("sender", "sender_email", "from"))
    recipient = _first(raw, ("recipient", "receiver", "to", "receiver_email"))
    sender_name = _first(raw, ("sender_name", "from_name")) or (
        sender.split("@")[0] if sender else ""
    )
    metadata = raw.get("metadata")
    return Message(
        id=_first(raw, ("id", "response_id"), f"{conversation_id}-msg-{index}"),
        conversation_id=str(raw.get("conversation_id") or conversation_id),
        sender_name=sender_name or "Unknown",
        sender_email=sender,
        recipient=recipient,
        body=_first(raw, ("body", "content")),
        subject=_first(raw, ("subject",)),
        timestamp=parse_timestamp(raw.get("timestamp")),
        type=str(raw.get("type") or "inbound-email"),
        read=_flag(raw.get("read")),
        response_id=raw.get("response_id") or None,
        ev_score=_score(raw.get("ev_score")),
        in_reply_to=raw.get("in_reply_to") or None,
        is_first_email=_flag(raw.get("is_first_email")),
        metadata=dict(metadata) if isinstance(metadata, Mapping) else {},
    )


def latest_ai_score(messages: Sequence[Message]) -> float | None:
    """Return the score of the most recent message that carries one."""
    for message in reversed(messages):
        if message.ev_score is not None:
            return message.ev_score
    return None


def normalize_conversation(item: Any) -> Conversation | None:
    """Convert one raw thread record, or return ``None`` when malformed."""
    if not isinstance(item, Mapping):
        LOGGER.warning("Invalid thread item: %r", item)
        return None
    raw_thread = item.get("thread") or item
    if not isinstance(raw_thread, Mapping):
        LOGGER.warning("Invalid thread data: %r", raw_thread)
        return None

    conversation_id = _first(raw_thread, ("conversation_id", "id"))
    raw_messages = item.get("messages") or []
    if not isinstance(raw_messages, Sequence) or isinstance(raw_messages, str):
        raw_messages = []
    messages = [
        normalize_message(raw, conversation_id, index)
        for index, raw in enumerate(raw_messages)
        if isinstance(raw, Mapping)
    ]
    messages.sort(key=lambda message: message.timestamp)

    if messages:
        last_message_at = messages[-1].timestamp
    else:
        last_message_at = parse_timestamp(
            raw_thread.get("lastMessageAt") or raw_thread.get("last_updated")
        )

    thread = Thread(
        conversation_id=conversation_id,
        associated_account=_first(raw_thread, ("associated_account",)),
        lead_name=_first(raw_thread, _LEAD_NAME_KEYS, "Unknown Lead"),
        client_email=_first(raw_thread, _CLIENT_EMAIL_KEYS),
        source_name=_first(raw_thread, ("source_name", "source", "channel")),
        ai_summary=_first(raw_thread, ("ai_summary", "summary")),
        created_at=parse_timestamp(
            raw_thread.get("createdAt") or raw_thread.get("created_at")
        ),
        updated_at=parse_timestamp(
            raw_thread.get("updatedAt") or raw_thread.get("updated_at")
        ),
        last_message_at=last_message_at,
        ai_score=latest_ai_score(messages),
        lcp_enabled=_flag(raw_thread.get("lcp_enabled")),
        spam=_flag(raw_thread.get("spam")),
        read=_flag(raw_thread.get("read")),
        busy=_flag(raw_thread.get("busy")),
        flag_for_review=_flag(raw_thread.get("flag_for_review")),
        completed=_flag(raw_thread.get("completed")),
        budget_range=_first(raw_thread, ("budget_range", "budget")),
        timeline=_first(raw_thread, ("timeline", "timeframe")),
        priority=_first(raw_thread, ("priority",), "normal"),
        subject=_first(raw_thread, ("subject",)),
    )
    return Conversation(thread=thread, messages=tuple(messages))


def normalize_threads(payload: Any) -> list[Conversation]:
    """Normalise a thread listing into conversations, newest activity first.

    ``payload`` may be the bare list of records or the gateway envelope
    ``{"data": [...]}``. The result depends only on ``payload``: missing or
    invalid timestamps map to the Unix epoch and missing message ids are
    derived from the conversation id and position.
    """
    records = payload.get("data") if isinstance(payload, Mapping) else payload
    if records is None:
        return []
    if not isinstance(records, list):
        LOGGER.warning("Thread payload is not a list: %r", type(records).__name__)
        return []

    conversations = [
        conversation
        for conversation in (normalize_conversation(item) for item in records)
        if conversation is not None
    ]
    conversations.sort(key=lambda conv: conv.thread.last_message_at, reverse=True)
    LOGGER.debug("Normalised %d of %d thread records", len(conversations), len(records))
    return conversations


__all__ = [
    "latest_ai_score",
    "normalize_conversation",
    "normalize_message",
    "normalize_threads",
]
