from __future__ import annotations

import asyncio

import httpx
from httpx_retries import Retry

from fieldpatch.adapters.http_resilience import ResilientClient, build_verify
from fieldpatch.config import RateLimit, ResilienceConfig, RetryPolicy


def test_retry_policy_builds_httpx_retry() -> None:
    retry = RetryPolicy().build()

    assert isinstance(retry, Retry)
    assert retry.total == 5



def test_excluding_methods_keeps_the_rest_of_the_policy() -> None:
    policy = RetryPolicy(total=2)

    single_shot = policy.excluding("PATCH")

    assert single_shot.allowed_methods == frozenset({"GET", "HEAD", "OPTIONS"})
    assert single_shot.total == 2
    assert "PATCH" in policy.allowed_methods


def test_build_verify_passes_booleans_through() -> None:
    assert build_verify(True) is True
    assert build_verify(False) is False


def test_client_sends_through_limiter() -> None:
    seen: list[str] = []

    async def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request.method)
        return httpx.Response(200, json={"ok": True})

    config = ResilienceConfig(
        name="test",
        base_url="https://k8s.test",
        ratelimit=RateLimit(max_calls=10, per_seconds=1.0),
    )

    async def run() -> list[int]:
        async with ResilientClient(config) as client:
            client._client = httpx.AsyncClient(  # noqa: SLF001  # type: ignore[reportPrivateUsage]
                base_url="https://k8s.test", transport=httpx.MockTransport(handler)
            )
            responses = [
                await client.get("/api/v1"),
                await client.patch("/api/v1/x", content=b"{}"),
                await client.request("GET", "/api/v1"),
            ]
            return [response.status_code for response in responses]

    assert asyncio.run(run()) == [200, 200, 200]
    assert seen == ["GET", "PATCH", "GET"]
