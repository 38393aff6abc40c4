"""In-process stand-in for the Kubernetes API server used with ``httpx.MockTransport``."""

from __future__ import annotations

import json
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

import httpx
from httpx_retries import RetryTransport

from fieldpatch.adapters.http_resilience import ResilientClient

if TYPE_CHECKING:
    from aiolimiter import AsyncLimiter

    from fieldpatch.adapters.http_resilience import ClientFactory
    from fieldpatch.config import ResilienceConfig

API_SERVER = "https://k8s.test"

CORE_RESOURCES = {
    "kind": "APIResourceList",
    "groupVersion": "v1",
    "resources": [
        {"name": "configmaps", "namespaced": True, "kind": "ConfigMap"},
        {"name": "namespaces", "namespaced": False, "kind": "Namespace"},
        {"name": "namespaces/status", "namespaced": False, "kind": "Namespace"},
    ],
}

type Route = Callable[[httpx.Request], httpx.Response]


def config_map_payload(**data: str) -> dict[str, object]:
    return {
        "apiVersion": "v1",
        "kind": "ConfigMap",
        "metadata": {
            "name": "settings",
            "namespace": "apps",
            "resourceVersion": "7",
            "managedFields": [
                {
                    "manager": "kubectl",
                    "operation": "Update",
                    "apiVersion": "v1",
                    "fieldsType": "FieldsV1",
                    "fieldsV1": {"f:data": {f"f:{key}": {} for key in data}},
                }
            ],
        },
        "data": data,
    }


def status_payload(code: int, message: str, **details: object) -> dict[str, object]:
    payload: dict[str, object] = {
        "kind": "Status",
        "status": "Failure",
        "message": message,
        "code": code,
    }
    if details:
        payload["details"] = details
    return payload


def json_body(request: httpx.Request) -> object:
    return json.loads(request.content)


@dataclass
class FakeApiServer:
    """Answers core-group discovery and delegates object paths to ``routes``."""

    routes: dict[tuple[str, str], Route] = field(default_factory=dict)
    requests: list[httpx.Request] = field(default_factory=list)

    def handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if request.method == "GET" and request.url.path == "/api/v1":
            return httpx.Response(200, json=CORE_RESOURCES)
        route = self.routes.get((request.method, request.url.path))
        if route is None:
            return httpx.Response(404, json=status_payload(404, "the server could not find it"))
        return route(request)

    def object_requests(self) -> list[httpx.Request]:
        return [request for request in self.requests if request.url.path != "/api/v1"]


def make_client_factory(
    handler: Callable[[httpx.Request], httpx.Response],
    *,
    retry: bool = False,
) -> ClientFactory:
    """Clients that answer from ``handler``; with ``retry`` the configured retry policy applies."""

    async def async_handler(request: httpx.Request) -> httpx.Response:
        return handler(request)

    def factory(
        resilience: ResilienceConfig,
        *,
        limiter: AsyncLimiter | None = None,
    ) -> ResilientClient:
        client = ResilientClient(resilience, limiter=limiter)
        transport: httpx.AsyncBaseTransport = httpx.MockTransport(async_handler)
        if retry:
            transport = RetryTransport(transport=transport, retry=resilience.retry.build())
        client._client = httpx.AsyncClient(  # noqa: SLF001  # type: ignore[reportPrivateUsage]
            base_url=resilience.base_url or "",
            transport=transport,
        )
        return client

    return factory
