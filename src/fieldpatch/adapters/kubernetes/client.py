"""Kubernetes API server resource store."""

from __future__ import annotations

import asyncio
import json
import re
from collections.abc import Mapping
from dataclasses import replace
from logging import getLogger
from typing import TYPE_CHECKING, Unpack

import httpx
from pydantic import ValidationError

from fieldpatch.adapters.http_resilience import ResilientClient, build_limiter
from fieldpatch.domain.errors import ObjectNotFoundError, ResourceTypeNotFoundError, StoreError
from fieldpatch.domain.objects import TargetRef
from fieldpatch.domain.patches import APPLY_CONTENT_TYPE

from .errors import decode_store_error
from .schema import APIResourceListModel, APIResourceModel
from .translator import to_store_object

if TYPE_CHECKING:
    from collections.abc import Coroutine
    from types import TracebackType

    from fieldpatch.adapters.http_resilience import ClientFactory, RequestOptions
    from fieldpatch.config.http_resilience import ResilienceConfig
    from fieldpatch.config.kubernetes import KubernetesConfig
    from fieldpatch.domain.objects import StoreObject

log = getLogger(__name__)

_WARNING_PATTERN = re.compile(r'^\d{3}\s+\S+\s+"((?:[^"\\]|\\.)*)"')


def parse_warning_header(value: str) -> str:
    """Extract the text of an RFC 7234 ``Warning`` header value."""

    match = _WARNING_PATTERN.match(value.strip())
    if match is None:
        return value.strip()
    return re.sub(r"\\(.)", r"\1", match.group(1))


class KubernetesResourceStore:
    """``ResourceStore`` backed by the Kubernetes REST API.

    All calls of one store run on a single event loop and share one client-side rate
    limit; close the store (or use it as a context manager) to release them. Responses
    are never reused. Only resource discovery is remembered per instance.

    JSON patches and merge patches go through a client that never retries PATCH;
    server-side apply requests are retried.
    """

    def __init__(
        self,
        *,
        config: KubernetesConfig,
        client_factory: ClientFactory | None = None,
    ) -> None:
        self._config = config
        self._resilience = config.resilience
        self._single_shot = replace(
            config.resilience, retry=config.resilience.retry.excluding("PATCH")
        )
        self._client_factory: ClientFactory = client_factory or ResilientClient
        self._limiter = build_limiter(config.resilience)
        self._runner: asyncio.Runner | None = None
        self._clients: dict[bool, ResilientClient] = {}
        self._resources: dict[tuple[str, str], APIResourceModel] = {}
        self._warnings: list[str] = []

    def __enter__(self) -> KubernetesResourceStore:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.close()

    def close(self) -> None:
        runner, self._runner = self._runner, None
        if runner is None:
            return
        clients = list(self._clients.values())
        self._clients.clear()
        # A limiter is bound to the loop it first waited on.
        self._limiter = build_limiter(self._resilience)
        try:
            for client in clients:
                runner.run(client.aclose())
        finally:
            runner.close()

    def get(self, target: TargetRef) -> StoreObject:
        return self._run(self._get_async(target))

    def dry_run_apply(
        self,
        obj: Mapping[str, object],
        *,
        manager: str,
        force: bool = True,
    ) -> StoreObject:
        return self._run(self._apply_async(obj, manager=manager, force=force, dry_run=True))

    def apply(
        self,
        obj: Mapping[str, object],
        *,
        manager: str,
        force: bool = True,
    ) -> StoreObject:
        return self._run(self._apply_async(obj, manager=manager, force=force, dry_run=False))

    def patch(
        self,
        target: TargetRef,
        *,
        body: str,
        content_type: str,
        manager: str,
        dry_run: bool = False,
    ) -> StoreObject:
        return self._run(
            self._patch_async(
                target,
                body=body,
                content_type=content_type,
                params=self._write_params(manager=manager, force=False, dry_run=dry_run),
                retry=False,
            )
        )

    def drain_warnings(self) -> list[str]:
        warnings = list(self._warnings)
        self._warnings.clear()
        return warnings

    def _run[T](self, operation: Coroutine[object, object, T]) -> T:
        if self._runner is None:
            self._runner = asyncio.Runner()
        return self._runner.run(operation)

    def _client(self, *, retry: bool = True) -> ResilientClient:
        client = self._clients.get(retry)
        if client is None:
            config = self._resilience if retry else self._single_shot
            client = self._client_factory(config, limiter=self._limiter)
            self._clients[retry] = client
        return client

    async def _get_async(self, target: TargetRef) -> StoreObject:
        url = await self._object_url(target)
        response = await self._send(self._client(), "GET", url)
        return to_store_object(self._payload(response))

    async def _apply_async(
        self,
        obj: Mapping[str, object],
        *,
        manager: str,
        force: bool,
        dry_run: bool,
    ) -> StoreObject:
        return await self._patch_async(
            _target_of(obj),
            body=json.dumps(obj, ensure_ascii=False),
            content_type=APPLY_CONTENT_TYPE,
            params=self._write_params(manager=manager, force=force, dry_run=dry_run),
        )

    async def _patch_async(
        self,
        target: TargetRef,
        *,
        body: str,
        content_type: str,
        params: dict[str, str],
        retry: bool = True,
    ) -> StoreObject:
        url = await self._object_url(target)
        log.debug("PATCH %s (%s, %s)", url, content_type, params)
        response = await self._send(
            self._client(retry=retry),
            "PATCH",
            url,
            content=body.encode("utf-8"),
            params=params,
            headers={"Content-Type": content_type},
        )
        return to_store_object(self._payload(response))

    @staticmethod
    def _write_params(*, manager: str, force: bool, dry_run: bool) -> dict[str, str]:
        params = {"fieldManager": manager, "fieldValidation": "Strict"}
        if force:
            params["force"] = "true"
        if dry_run:
            params["dryRun"] = "All"
        return params

    async def _object_url(self, target: TargetRef) -> str:
        resource = await self._resource(target)
        base = _group_version_path(target.api_version)
        if not resource.namespaced:
            if target.namespace:
                log.debug(
                    "Ignoring namespace %s for cluster-scoped %s", target.namespace, target.kind
                )
            return f"{base}/{resource.name}/{target.name}"
        namespace = target.namespace or self._config.default_namespace
        return f"{base}/namespaces/{namespace}/{resource.name}/{target.name}"

    async def _resource(self, target: TargetRef) -> APIResourceModel:
        key = (target.api_version, target.kind)
        cached = self._resources.get(key)
        if cached is not None:
            return cached

        path = _group_version_path(target.api_version)
        try:
            response = await self._send(self._client(), "GET", path)
        except ObjectNotFoundError as exc:
            raise ResourceTypeNotFoundError(
                f"no matches for kind {target.kind} in version {target.api_version}",
                status_code=404,
            ) from exc
        try:
            resources = APIResourceListModel.model_validate(self._payload(response))
        except ValidationError as exc:
            raise StoreError(f"Malformed discovery response for {path}: {exc}") from exc

        for resource in resources.resources:
            if resource.is_subresource:
                continue
            self._resources.setdefault((target.api_version, resource.kind), resource)
        found = self._resources.get(key)
        if found is None:
            raise ResourceTypeNotFoundError(
                f"no matches for kind {target.kind} in version {target.api_version}",
                status_code=404,
            )
        return found

    async def _send(
        self,
        client: ResilientClient,
        method: str,
        url: str,
        **kwargs: Unpack[RequestOptions],
    ) -> httpx.Response:
        try:
            response = await client.request(method, url, **kwargs)
        except httpx.HTTPError as exc:
            raise StoreError(f"{method} {url} failed: {exc}") from exc
        self._collect_warnings(response)
        if response.is_error:
            raise decode_store_error(response.status_code, response.text)
        return response

    def _collect_warnings(self, response: httpx.Response) -> None:
        for value in response.headers.get_list("warning"):
            text = parse_warning_header(value)
            if text and text not in self._warnings:
                log.warning("Kubernetes API warning: %s", text)
                self._warnings.append(text)

    @staticmethod
    def _payload(response: httpx.Response) -> object:
        try:
            return response.json()
        except ValueError as exc:
            raise StoreError(f"Kubernetes API returned invalid JSON: {exc}") from exc


def _group_version_path(api_version: str) -> str:
    if "/" not in api_version:
        return f"/api/{api_version}"
    return f"/apis/{api_version}"


def _target_of(obj: Mapping[str, object]) -> TargetRef:
    metadata = obj.get("metadata")
    if not isinstance(metadata, Mapping):
        raise StoreError("Object to apply has no metadata")
    namespace = metadata.get("namespace")
    return TargetRef(
        api_version=str(obj.get("apiVersion") or ""),
        kind=str(obj.get("kind") or ""),
        name=str(metadata.get("name") or ""),
        namespace=str(namespace) if namespace else None,
    )
