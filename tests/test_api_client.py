"""Tests for the gateway HTTP client."""

from __future__ import annotations

import json

import httpx
import pytest

from leadsync.core.config import ApiSettings
from leadsync.core.models import AppError, ErrorKind
from leadsync.core.session import SessionIdentity
from leadsync.errors import ErrorPipeline
from leadsync.storage import BoundedCache
from leadsync.transport import ApiClient


class RecordingFallback:
    def __init__(self) -> None:
        self.errors: list[AppError] = []

    def __call__(self, error: AppError) -> None:
        self.errors.append(error)


def _settings(**overrides: object) -> ApiSettings:
    return ApiSettings(base_url="http://gateway.test/api", **overrides)


@pytest.mark.asyncio
async def test_post_sends_json_body_and_wraps_success() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"data": [{"conversation_id": "c1"}]})

    async with ApiClient(_settings(), transport=httpx.MockTransport(handler)) as client:
        response = await client(
            "lcp/get_all_threads", method="POST", body={"userId": "u1"}
        )

    assert response.success is True
    assert response.status == 200
    assert response.data == {"data": [{"conversation_id": "c1"}]}
    assert str(seen[0].url) == "http://gateway.test/api/lcp/get_all_threads"
    assert json.loads(seen[0].content) == {"userId": "u1"}
    assert seen[0].headers["content-type"] == "application/json"


@pytest.mark.asyncio
async def test_error_status_becomes_failure_and_reaches_pipeline() -> None:
    fallback = RecordingFallback()
    pipeline = ErrorPipeline(fallback=fallback)

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(401, json={"error": "expired"})

    client = ApiClient(
        _settings(),
        error_pipeline=pipeline,
        identity=SessionIdentity("u1"),
        transport=httpx.MockTransport(handler),
    )
    try:
        response = await client.request("db/select", method="POST", body={})
    finally:
        await client.aclose()
    await pipeline.join()

    assert response.success is False
    assert response.status == 401
    assert response.error == "Authentication required. Please log in again."
    assert [error.kind for error in fallback.errors] == [ErrorKind.AUTH]
    assert fallback.errors[0].user_id == "u1"
    assert fallback.errors[0].details == {"error": "expired"}


@pytest.mark.asyncio
async def test_transport_failure_becomes_network_failure() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    async with ApiClient(_settings(), transport=httpx.MockTransport(handler)) as client:
        response = await client.request("lcp/get_all_threads")

    assert response.success is False
    assert response.status == 500
    assert response.error is not None and "Network error" in response.error


@pytest.mark.asyncio
async def test_get_responses_are_cached() -> None:
    calls = 0

    def handler(request: httpx.Request) -> httpx.Response:
        nonlocal calls
        calls += 1
        return httpx.Response(200, json={"value": calls})

    cache = BoundedCache(max_size=10)
    async with ApiClient(
        _settings(), cache=cache, transport=httpx.MockTransport(handler)
    ) as client:
        first = await client.request("usage/stats")
        second = await client.request("usage/stats")
        posted = await client.request("usage/stats", method="POST", body={})

    assert first.data == {"value": 1}
    assert second is first
    assert posted.data == {"value": 2}
    assert calls == 2


@pytest.mark.asyncio
async def test_non_json_body_is_treated_as_empty_payload() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, text="<html></html>")

    async with ApiClient(_settings(), transport=httpx.MockTransport(handler)) as client:
        response = await client.request("lcp/get_all_threads")

    assert response.success is True
    assert response.data is None


@pytest.mark.asyncio
async def test_cached_gets_are_keyed_by_headers() -> None:
    seen: list[str | None] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request.headers.get("authorization"))
        return httpx.Response(200, json={"auth": seen[-1]})

    async with ApiClient(
        _settings(),
        cache=BoundedCache(max_size=10),
        transport=httpx.MockTransport(handler),
    ) as client:
        alice = await client.request("profile", headers={"Authorization": "Bearer a"})
        bob = await client.request("profile", headers={"Authorization": "Bearer b"})
        again = await client.request("profile", headers={"Authorization": "Bearer a"})

    assert alice.data == {"auth": "Bearer a"}
    assert bob.data == {"auth": "Bearer b"}
    assert again is alice
    assert seen == ["Bearer a", "Bearer b"]


@pytest.mark.asyncio
async def test_identity_change_drops_previous_users_cached_gets() -> None:
    calls = 0

    def handler(request: httpx.Request) -> httpx.Response:
        nonlocal calls
        calls += 1
        return httpx.Response(200, json={"value": calls})

    cache = BoundedCache(max_size=10)
    cache.set("unrelated", "kept")
    identity = SessionIdentity("u-1")
    async with ApiClient(
        _settings(),
        cache=cache,
        identity=identity,
        transport=httpx.MockTransport(handler),
    ) as client:
        await client.request("usage/stats")
        assert cache.size() == 2

        identity.sign_in("u-2")
        fresh = await client.request("usage/stats")

    assert fresh.data == {"value": 2}
    assert cache.get("unrelated") == "kept"
    assert not any(key.startswith("api|u-1|") for key in cache.keys())
    assert any(key.startswith("api|u-2|") for key in cache.keys())


@pytest.mark.asyncio
async def test_cached_null_payload_is_still_a_hit() -> None:
    calls = 0

    def handler(request: httpx.Request) -> httpx.Response:
        nonlocal calls
        calls += 1
        return httpx.Response(204)

    async with ApiClient(
        _settings(),
        cache=BoundedCache(max_size=10),
        transport=httpx.MockTransport(handler),
    ) as client:
        first = await client.request("ping")
        second = await client.request("ping")

    assert first.data is None
    assert second is first
    assert calls == 1
