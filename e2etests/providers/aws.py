"""AWS provider.

The master is the running EC2 instance tagged with the cluster ID and the
master instance role. Rebooting it goes through the EC2 API; replacing it
patches the master instance type in the cluster's custom resource, which
the operator rolls out by recreating the instance.
"""

from __future__ import annotations

from collections.abc import AsyncIterator, Callable
from contextlib import AbstractAsyncContextManager, asynccontextmanager
from typing import Any

from e2etests.errors import NotFoundError, TooManyResultsError
from e2etests.infra.k8s import KubeClient
from e2etests.versions import VersionRegistry

from .base import CustomResourceProvider
from .config import AWS
from .provider import MutationAction, Patch, Waiter

type EC2Client = Callable[[], AbstractAsyncContextManager[Any]]
"""Factory that returns an async context manager for an EC2 client."""

CLUSTER_TAG = "giantswarm.io/cluster"
INSTANCE_TAG = "giantswarm.io/instance"


def ec2_client_factory(region: str) -> EC2Client:
    import aioboto3

    session = aioboto3.Session(region_name=region)

    @asynccontextmanager
    async def factory() -> AsyncIterator[Any]:
        async with session.client("ec2", region_name=region) as ec2:  # type: ignore[reportGeneralTypeIssues]
            yield ec2

    return factory


class AWSProvider(CustomResourceProvider):
    component = "aws-operator"

    def __init__(
        self,
        config: AWS,
        host: KubeClient,
        registry: VersionRegistry,
        waiter: Waiter,
        ec2: EC2Client | None = None,
    ) -> None:
        super().__init__(config, host, registry, waiter)
        self._ec2 = ec2 or ec2_client_factory(config.region)
        self._instance_type = config.master_instance_type

    async def _master_instance_id(self) -> str:
        filters = [
            {"Name": f"tag:{CLUSTER_TAG}", "Values": [self.cluster_id]},
            {"Name": f"tag:{INSTANCE_TAG}", "Values": ["master"]},
            {"Name": "instance-state-name", "Values": ["running"]},
        ]
        async with self._ec2() as ec2:
            resp = await ec2.describe_instances(Filters=filters)

        ids = [
            inst["InstanceId"]
            for reservation in resp.get("Reservations", [])
            for inst in reservation.get("Instances", [])
        ]
        if not ids:
            raise NotFoundError(f"master instance not found for cluster {self.cluster_id}")
        if len(ids) > 1:
            raise TooManyResultsError(f"expected 1 master instance found {len(ids)}")
        return ids[0]

    async def reboot_master(self) -> None:
        instance_id = await self._master_instance_id()
        self._log.info(
            "Issuing {action}: rebooting instance {instance_id}",
            action=MutationAction.REBOOT_MASTER, instance_id=instance_id,
        )
        async with self._ec2() as ec2:
            await ec2.reboot_instances(InstanceIds=[instance_id])

    async def replace_master(self) -> None:
        await self._patch(
            MutationAction.REPLACE_MASTER,
            Patch("replace", "/spec/aws/masters/0/instanceType", self._instance_type),
        )
