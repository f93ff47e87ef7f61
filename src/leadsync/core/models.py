"""Core domain models used across the application."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any, Generic, TypeVar

T = TypeVar("T")


class ErrorKind(str, Enum):
    """Coarse category of an application error."""

    API = "API"
    AUTH = "AUTH"
    VALIDATION = "VALIDATION"
    NETWORK = "NETWORK"
    UNKNOWN = "UNKNOWN"


class LeadStatus(str, Enum):
    """Engagement tier derived from a thread's AI score."""

    HOT = "hot"
    WARM = "warm"
    COLD = "cold"


class SortField(str, Enum):
    """Field used to order the conversation projection."""

    AI_SCORE = "aiScore"
    DATE = "date"
    NONE = "none"


class SortDirection(str, Enum):
    """Direction applied to the selected sort field."""

    ASC = "asc"
    DESC = "desc"


@dataclass(slots=True)
class CacheEntry:
    """Cached value paired with its expiry instant."""

    value: Any
    expires_at: datetime

    def is_expired(self, now: datetime) -> bool:
        """Return ``True`` once ``now`` has reached the expiry instant."""
        return now >= self.expires_at


@dataclass(slots=True, frozen=True)
class CacheStats:
    """Occupancy snapshot of a bounded cache."""

    size: int
    max_size: int
    utilization: float


@dataclass(slots=True, frozen=True)
class AppError:
    """Typed error event routed through the error pipeline."""

    kind: ErrorKind
    message: str
    code: str | None = None
    details: Any = None
    timestamp: datetime = field(default_factory=lambda: datetime.now(tz=UTC))
    user_id: str | None = None
    status: int | None = None


@dataclass(slots=True)
class ApiResponse(Generic[T]):
    """Success/failure envelope returned by request functions."""

    success: bool
    data: T | None = None
    error: str | None = None
    status: int | None = None


@dataclass(slots=True)
class FetchState(Generic[T]):
    """Observable state of a data fetcher."""

    data: T | None = None
    loading: bool = False
    error: str | None = None


# pylint: disable=too-many-instance-attributes
@dataclass(slots=True, frozen=True)
class Message:
    """Single message within a conversation."""

    id: str
    conversation_id: str
    sender_name: str
    sender_email: str
    recipient: str
    body: str
    subject: str
    timestamp: datetime
    type: str = "inbound-email"
    read: bool = False
    response_id: str | None = None
    ev_score: float | None = None
    in_reply_to: str | None = None
    is_first_email: bool = False
    metadata: dict[str, Any] = field(default_factory=dict, compare=False)


# pylint: disable=too-many-instance-attributes
@dataclass(slots=True, frozen=True)
class Thread:
    """Conversation thread metadata with its derived AI score."""

    conversation_id: str
    associated_account: str
    lead_name: str
    client_email: str
    source_name: str
    ai_summary: str
    created_at: datetime
    updated_at: datetime
    last_message_at: datetime
    ai_score: float | None
    lcp_enabled: bool = False
    spam: bool = False
    read: bool = False
    busy: bool = False
    flag_for_review: bool = False
    completed: bool = False
    budget_range: str = ""
    timeline: str = ""
    priority: str = "normal"
    subject: str = ""


@dataclass(slots=True, frozen=True)
class Conversation:
    """Thread together with its chronologically ordered messages."""

    thread: Thread
    messages: tuple[Message, ...]


def _all_statuses() -> frozenset[LeadStatus]:
    return frozenset(LeadStatus)


@dataclass(slots=True, frozen=True)
class Filters:
    """User-controlled filters applied to the conversation projection."""

    status: frozenset[LeadStatus] = field(default_factory=_all_statuses)
    ai_score_range: tuple[float, float] = (0, 100)
    search_query: str = ""


__all__ = [
    "ApiResponse",
    "AppError",
    "CacheEntry",
    "CacheStats",
    "Conversation",
    "ErrorKind",
    "FetchState",
    "Filters",
    "LeadStatus",
    "Message",
    "SortDirection",
    "SortField",
    "Thread",
]
