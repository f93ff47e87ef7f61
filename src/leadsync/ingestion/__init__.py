"""Fetch orchestration and thread synchronisation."""

from .fetcher import DataFetcher, FetchOptions
from .normalizer import normalize_conversation, normalize_threads
from .thread_sync import ThreadSync
from .visibility import VisibilitySignal

__all__ = [
    "DataFetcher",
    "FetchOptions",
    "ThreadSync",
    "VisibilitySignal",
    "normalize_conversation",
    "normalize_threads",
]
