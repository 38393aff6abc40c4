"""Shared fixtures for Kubernetes adapter tests."""

from __future__ import annotations

from typing import TYPE_CHECKING

import pytest

from fieldpatch.adapters.kubernetes import KubernetesResourceStore
from fieldpatch.config import KubernetesConfig, ResilienceConfig, RetryPolicy
from tests.helpers.kube_api import API_SERVER, FakeApiServer, make_client_factory

if TYPE_CHECKING:
    from collections.abc import Iterator


@pytest.fixture
def api_server() -> FakeApiServer:
    return FakeApiServer()


@pytest.fixture
def kubernetes_config() -> KubernetesConfig:
    return KubernetesConfig(
        api_server=API_SERVER,
        default_namespace="default",
        resilience=ResilienceConfig(
            name="kubernetes", base_url=API_SERVER, retry=RetryPolicy(total=0)
        ),
    )


@pytest.fixture
def kube_store(
    api_server: FakeApiServer, kubernetes_config: KubernetesConfig
) -> Iterator[KubernetesResourceStore]:
    with KubernetesResourceStore(
        config=kubernetes_config,
        client_factory=make_client_factory(api_server.handle),
    ) as store:
        yield store
