"""Azure provider.

Masters run in the VM scale set ``<cluster_id>-master`` inside the resource
group named after the cluster. Rebooting restarts scale set instance "0";
replacing patches the master VM size in the cluster's custom resource.
"""

from __future__ import annotations

from collections.abc import AsyncIterator, Callable
from contextlib import AbstractAsyncContextManager, asynccontextmanager
from typing import Any

from azure.core.exceptions import ResourceNotFoundError

from e2etests.errors import NotFoundError
from e2etests.infra.k8s import KubeClient
from e2etests.versions import VersionRegistry

from .base import CustomResourceProvider
from .config import Azure
from .provider import MutationAction, Patch, Waiter

type ComputeClient = Callable[[], AbstractAsyncContextManager[Any]]

MASTER_INSTANCE_ID = "0"


def compute_client_factory(subscription_id: str) -> ComputeClient:
    from azure.identity.aio import DefaultAzureCredential
    from azure.mgmt.compute.aio import ComputeManagementClient

    @asynccontextmanager
    async def factory() -> AsyncIterator[Any]:
        async with DefaultAzureCredential() as credential, ComputeManagementClient(
            credential, subscription_id,
        ) as compute:
            yield compute

    return factory


class AzureProvider(CustomResourceProvider):
    component = "azure-operator"

    def __init__(
        self,
        config: Azure,
        host: KubeClient,
        registry: VersionRegistry,
        waiter: Waiter,
        compute: ComputeClient | None = None,
    ) -> None:
        super().__init__(config, host, registry, waiter)
        self._compute = compute or compute_client_factory(config.subscription_id)
        self._vm_size = config.master_vm_size

    @property
    def resource_group(self) -> str:
        return self.cluster_id

    @property
    def scale_set(self) -> str:
        return f"{self.cluster_id}-master"

    async def reboot_master(self) -> None:
        from azure.mgmt.compute.models import VirtualMachineScaleSetVMInstanceIDs

        self._log.info(
            "Issuing {action}: restarting {scale_set}/{instance}",
            action=MutationAction.REBOOT_MASTER, scale_set=self.scale_set, instance=MASTER_INSTANCE_ID,
        )
        async with self._compute() as compute:
            try:
                await compute.virtual_machine_scale_sets.get(self.resource_group, self.scale_set)
            except ResourceNotFoundError as e:
                raise NotFoundError(f"master scale set {self.scale_set} not found") from e

            # Returns once the restart is accepted; completion is observed via the guest API.
            await compute.virtual_machine_scale_sets.begin_restart(
                self.resource_group,
                self.scale_set,
                vm_instance_i_ds=VirtualMachineScaleSetVMInstanceIDs(instance_ids=[MASTER_INSTANCE_ID]),
            )

    async def replace_master(self) -> None:
        await self._patch(
            MutationAction.REPLACE_MASTER,
            Patch("replace", "/spec/azure/masters/0/vmSize", self._vm_size),
        )
