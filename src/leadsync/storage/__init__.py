"""In-memory storage primitives."""

from .cache import BoundedCache, get_cache

__all__ = ["BoundedCache", "get_cache"]
