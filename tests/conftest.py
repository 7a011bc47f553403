from __future__ import annotations

from types import SimpleNamespace
from typing import Any

import pytest

from e2etests.infra.k8s import CustomResource
from e2etests.poll import Backoff

FAST = Backoff(interval=0.01, max_wait=0.3)


def make_node(name: str, *, ready: bool = True) -> SimpleNamespace:
    condition = SimpleNamespace(type="Ready", status="True" if ready else "False")
    return SimpleNamespace(metadata=SimpleNamespace(name=name), status=SimpleNamespace(conditions=[condition]))


def make_pod(name: str) -> SimpleNamespace:
    return SimpleNamespace(metadata=SimpleNamespace(name=name))


class FakeKube:
    """In-memory stand-in for ``KubeClient``."""

    def __init__(self, kubeconfig: str | None = None) -> None:
        self.kubeconfig = kubeconfig
        self.closed = False
        self.objects: dict[tuple[str, str], dict[str, Any]] = {}
        self.pods: dict[tuple[str, str], list[Any]] = {}
        self.nodes: list[Any] = []
        self.api_up = True
        self.patches: list[tuple[CustomResource, list[dict[str, Any]]]] = []
        self.deleted_pods: list[tuple[str, str]] = []
        self.deployments: dict[tuple[str, str], list[Any]] = {}
        self.config_map_patches: list[tuple[str, str, dict[str, str]]] = []

    async def get_custom_object(self, ref: CustomResource) -> dict[str, Any]:
        return self.objects[(ref.plural, ref.name)]

    async def patch_custom_object(self, ref: CustomResource, patches: list[dict[str, Any]]) -> dict[str, Any]:
        self.patches.append((ref, patches))
        return self.objects.get((ref.plural, ref.name), {})

    async def list_pods(self, namespace: str, label_selector: str) -> list[Any]:
        return list(self.pods.get((namespace, label_selector), []))

    async def delete_pod(self, namespace: str, name: str) -> None:
        self.deleted_pods.append((namespace, name))

    async def list_nodes(self) -> list[Any]:
        if not self.api_up:
            raise ConnectionError("connection refused")
        return list(self.nodes)

    async def server_version(self) -> str:
        if not self.api_up:
            raise ConnectionError("connection refused")
        return "v1.29.3"

    async def get_deployment(self, namespace: str, name: str) -> Any:
        raise NotImplementedError

    async def list_deployments(self, namespace: str, label_selector: str) -> list[Any]:
        return list(self.deployments.get((namespace, label_selector), []))

    async def patch_config_map(self, namespace: str, name: str, data: dict[str, str]) -> None:
        self.config_map_patches.append((namespace, name, data))

    def close(self) -> None:
        self.closed = True


@pytest.fixture
def kube() -> FakeKube:
    return FakeKube()
