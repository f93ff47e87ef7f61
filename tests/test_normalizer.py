"""Tests for thread payload normalisation."""

from __future__ import annotations

from datetime import UTC, datetime

from leadsync.core.datetime_utils import EPOCH
from leadsync.ingestion import normalize_conversation, normalize_threads


def _record(conversation_id: str, *messages: dict, **thread: object) -> dict:
    return {
        "thread": {"conversation_id": conversation_id, **thread},
        "messages": list(messages),
    }


def test_messages_are_sorted_and_latest_score_wins() -> None:
    record = _record(
        "c-1",
        {"id": "m2", "timestamp": "2024-03-02T10:00:00Z", "ev_score": "72"},
        {"id": "m1", "timestamp": "2024-03-01T10:00:00Z", "ev_score": 91},
        {"id": "m3", "timestamp": "2024-03-03T10:00:00Z"},
        lead_name="Ada",
        client_email="ada@example.com",
    )

    conversation = normalize_conversation(record)

    assert conversation is not None
    assert [message.id for message in conversation.messages] == ["m1", "m2", "m3"]
    assert conversation.thread.ai_score == 72.0
    assert conversation.thread.last_message_at == datetime(2024, 3, 3, 10, tzinfo=UTC)
    assert conversation.thread.lead_name == "Ada"


def test_missing_fields_fall_back_deterministically() -> None:
    record = _record("c-2", {"body": "hello", "timestamp": "not a date"})

    first = normalize_conversation(record)
    second = normalize_conversation(record)

    assert first == second
    assert first is not None
    assert first.thread.lead_name == "Unknown Lead"
    assert first.thread.ai_score is None
    assert first.messages[0].id == "c-2-msg-0"
    assert first.messages[0].timestamp == EPOCH
    assert first.thread.created_at == EPOCH


def test_string_flags_and_nan_scores() -> None:
    record = _record(
        "c-3",
        {"id": "m1", "timestamp": "2024-01-01T00:00:00Z", "ev_score": "NaN"},
        spam="true",
        busy=False,
        read="no",
    )

    conversation = normalize_conversation(record)

    assert conversation is not None
    assert conversation.thread.spam is True
    assert conversation.thread.busy is False
    assert conversation.thread.read is False
    assert conversation.thread.ai_score is None


def test_thread_without_messages_uses_last_updated() -> None:
    record = _record("c-4", last_updated="2024-05-01T12:00:00+00:00")

    conversation = normalize_conversation(record)

    assert conversation is not None
    assert conversation.messages == ()
    assert conversation.thread.last_message_at == datetime(2024, 5, 1, 12, tzinfo=UTC)


def test_threads_sorted_by_latest_activity_and_bad_records_skipped() -> None:
    payload = {
        "data": [
            _record("old", {"id": "a", "timestamp": "2024-01-01T00:00:00Z"}),
            "garbage",
            _record("new", {"id": "b", "timestamp": "2024-06-01T00:00:00Z"}),
            {"thread": "not a mapping"},
        ]
    }

    conversations = normalize_threads(payload)

    assert [c.thread.conversation_id for c in conversations] == ["new", "old"]


def test_non_list_payloads_normalise_to_empty() -> None:
    assert normalize_threads(None) == []
    assert normalize_threads({"data": None}) == []
    assert normalize_threads({"data": "oops"}) == []
