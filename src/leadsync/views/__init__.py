"""Derived views over the synchronised conversations."""

from .engine import (
    ViewEngine,
    classify_status,
    matches_filters,
    project_conversations,
    summarize_statuses,
)

__all__ = [
    "ViewEngine",
    "classify_status",
    "matches_filters",
    "project_conversations",
    "summarize_statuses",
]
