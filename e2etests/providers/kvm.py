"""KVM provider: guest nodes are pods in the host cluster.

There is no restart-versus-recreate distinction for a pod, so both master
mutations delete the master pod and rely on its controller to recreate it.
"""

from __future__ import annotations

from e2etests.errors import NotFoundError, TooManyResultsError
from e2etests.infra.k8s import KubeClient
from e2etests.versions import VersionRegistry

from .base import CustomResourceProvider
from .config import KVM
from .provider import MutationAction, Waiter


class KVMProvider(CustomResourceProvider):
    component = "kvm-operator"

    def __init__(self, config: KVM, host: KubeClient, registry: VersionRegistry, waiter: Waiter) -> None:
        super().__init__(config, host, registry, waiter)
        self._selector = config.master_selector

    async def reboot_master(self) -> None:
        await self._delete_master_pod(MutationAction.REBOOT_MASTER)

    async def replace_master(self) -> None:
        await self._delete_master_pod(MutationAction.REPLACE_MASTER)

    async def _delete_master_pod(self, action: MutationAction) -> None:
        namespace = self.cluster_id
        pods = await self._host.list_pods(namespace, self._selector)
        if not pods:
            raise NotFoundError(f"master pod not found in namespace {namespace}")
        if len(pods) > 1:
            raise TooManyResultsError(f"expected 1 master pod found {len(pods)}")

        name = pods[0].metadata.name
        self._log.info("Issuing {action}: deleting pod {name}", action=action, name=name)
        await self._host.delete_pod(namespace, name)
