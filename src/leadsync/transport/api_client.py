"""HTTP request function for the backend gateway."""

from __future__ import annotations

import json
import logging
from collections.abc import Mapping
from types import TracebackType
from typing import Any

import httpx

from ..core.config import ApiSettings
from ..core.interfaces import IdentityProvider
from ..core.models import ApiResponse, AppError
from ..errors.classify import error_from_exception, error_from_status
from ..errors.pipeline import ErrorPipeline
from ..storage.cache import BoundedCache

LOGGER = logging.getLogger(__name__)

_DEFAULT_HEADERS = {"Content-Type": "application/json"}
_MISSING: Any = object()


def _cache_prefix(user_id: str | None) -> str:
    return f"api|{user_id or '-'}|"


class ApiClient:
    """Async gateway client returning :class:`ApiResponse` envelopes.

    Failures never raise: they come back as ``success=False`` envelopes and,
    when a pipeline is attached, are reported to it as :class:`AppError`
    events. Successful GET responses are cached per user for
    ``cache_ttl_seconds``; a previous user's entries are dropped as soon as
    the identity changes.
    """

    def __init__(
        self,
        settings: ApiSettings,
        *,
        cache: BoundedCache | None = None,
        error_pipeline: ErrorPipeline | None = None,
        identity: IdentityProvider | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._settings = settings
        self._cache = cache
        self._error_pipeline = error_pipeline
        self._identity = identity
        self._cache_owner = self._user_id()
        self._client = httpx.AsyncClient(
            base_url=settings.base_url.rstrip("/") + "/",
            timeout=settings.timeout_seconds,
            headers=_DEFAULT_HEADERS,
            transport=transport,
        )

    async def __aenter__(self) -> ApiClient:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def __call__(
        self,
        endpoint: str,
        *,
        method: str = "GET",
        body: Any = None,
        headers: Mapping[str, str] | None = None,
    ) -> ApiResponse[Any]:
        return await self.request(endpoint, method=method, body=body, headers=headers)

    async def request(
        self,
        endpoint: str,
        *,
        method: str = "GET",
        body: Any = None,
        headers: Mapping[str, str] | None = None,
    ) -> ApiResponse[Any]:
        """Send ``method`` to ``endpoint`` and wrap the outcome."""
        method = method.upper()
        path = endpoint.lstrip("/")
        user_id = self._user_id()
        self._forget_previous_user(user_id)
        cache_key = self._cache_key(user_id, method, path, body, headers)
        if cache_key is not None and self._cache is not None:
            cached = self._cache.get(cache_key, _MISSING)
            if cached is not _MISSING:
                LOGGER.debug("Serving %s %s from cache", method, path)
                return cached

        try:
            response = await self._client.request(
                method,
                path,
                json=body,
                headers=dict(headers) if headers else None,
            )
        except httpx.HTTPError as exc:
            LOGGER.warning("Request error for %s %s: %s", method, path, exc)
            return self._failure(error_from_exception(exc, user_id=self._user_id()))

        data = _decode_json(response, path)
        if response.is_error:
            LOGGER.warning(
                "Request %s %s failed with status %s",
                method,
                path,
                response.status_code,
            )
            return self._failure(
                error_from_status(
                    response.status_code, details=data, user_id=self._user_id()
                )
            )

        result: ApiResponse[Any] = ApiResponse(
            success=True, data=data, status=response.status_code
        )
        if cache_key is not None and self._cache is not None:
            self._cache.set(
                cache_key, result, ttl_seconds=self._settings.cache_ttl_seconds
            )
        return result

    def _failure(self, error: AppError) -> ApiResponse[Any]:
        if self._error_pipeline is not None:
            self._error_pipeline.handle_error(error)
        return ApiResponse(
            success=False, error=error.message, status=error.status or 500
        )

    def _cache_key(
        self,
        user_id: str | None,
        method: str,
        path: str,
        body: Any,
        headers: Mapping[str, str] | None,
    ) -> str | None:
        """Readable per-user prefix plus a digest of the request payload."""
        if method != "GET" or self._settings.cache_ttl_seconds <= 0:
            return None
        digest = BoundedCache.make_key(
            json.dumps(body, sort_keys=True, default=str),
            json.dumps(
                {key.lower(): value for key, value in (headers or {}).items()},
                sort_keys=True,
            ),
        )
        return f"{_cache_prefix(user_id)}{method}:{path}|{digest}"

    def _forget_previous_user(self, user_id: str | None) -> None:
        if user_id == self._cache_owner:
            return
        if self._cache is not None:
            dropped = self._cache.invalidate(_cache_prefix(self._cache_owner))
            LOGGER.info("Identity changed, dropped %d cached responses", dropped)
        self._cache_owner = user_id

    def _user_id(self) -> str | None:
        return self._identity.current_user_id() if self._identity else None


def _decode_json(response: httpx.Response, path: str) -> Any:
    content_type = response.headers.get("content-type", "")
    if "application/json" not in content_type:
        if response.content:
            LOGGER.warning(
                "Non-JSON response for %s (content-type %r)", path, content_type
            )
        return None
    if not response.content.strip():
        LOGGER.warning("Empty response body for %s", path)
        return None
    try:
        return response.json()
    except ValueError:
        LOGGER.error(
            "JSON parsing error for %s (status %s)", path, response.status_code
        )
        return None


__all__ = ["ApiClient"]
