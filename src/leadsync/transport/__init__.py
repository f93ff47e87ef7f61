"""Transport adapters for the backend gateway."""

from .api_client import ApiClient

__all__ = ["ApiClient"]
