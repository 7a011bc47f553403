"""Subnet allocation checks across guest clusters.

Clusters get their network CIDR from the operator's IPAM. While clusters
come and go, no two live clusters may hold overlapping subnets, where
overlap means one CIDR contains the other (equal CIDRs included).

The sequence:

    create cluster0..2 -> wait ready -> check each subnet against the others
    delete cluster1, create cluster3 -> wait cluster1 API down -> wait cluster3 ready
    check cluster3's subnet against cluster0 and cluster2
"""

from __future__ import annotations

import asyncio
import ipaddress
from collections.abc import Iterator
from typing import Any, Protocol, runtime_checkable

from loguru import logger

from e2etests.errors import InvalidConfigError, NotFoundError, OverlapViolationError
from e2etests.guest import GuestCluster
from e2etests.infra.k8s import CustomResource, KubeClient
from e2etests.lifecycle import SequenceResult, cleanup_scope, step
from e2etests.probe import ChartInstaller
from e2etests.providers.base import CR_GROUP, CR_NAMESPACE, CR_VERSION

type Network = ipaddress.IPv4Network | ipaddress.IPv6Network

log = logger.bind(component="ipam")


def parse_cidr(cidr: str) -> Network:
    try:
        return ipaddress.ip_network(cidr, strict=False)
    except ValueError as e:
        raise InvalidConfigError(f"invalid CIDR {cidr!r}") from e


def overlaps(a: str, b: str) -> bool:
    """True when either CIDR contains the other. Symmetric."""
    net_a, net_b = parse_cidr(a), parse_cidr(b)
    if net_a.version != net_b.version:
        return False
    return net_a.subnet_of(net_b) or net_b.subnet_of(net_a)  # type: ignore[arg-type]


class SubnetAllocations:
    """ClusterID -> subnet map that never holds two overlapping subnets."""

    def __init__(self) -> None:
        self._subnets: dict[str, str] = {}

    def add(self, cluster: str, subnet: str) -> None:
        """Record ``subnet`` for ``cluster`` after checking it against every other allocation.

        Raises:
            OverlapViolationError: On the first overlapping pair; nothing is recorded.
        """
        for other, other_subnet in self._subnets.items():
            if other != cluster and overlaps(subnet, other_subnet):
                raise OverlapViolationError(cluster, subnet, other, other_subnet)
        self._subnets[cluster] = subnet

    def remove(self, cluster: str) -> str | None:
        return self._subnets.pop(cluster, None)

    def __contains__(self, cluster: object) -> bool:
        return cluster in self._subnets

    def __len__(self) -> int:
        return len(self._subnets)

    def __iter__(self) -> Iterator[str]:
        return iter(self._subnets)

    def items(self) -> list[tuple[str, str]]:
        return list(self._subnets.items())


@runtime_checkable
class ClusterFactory(Protocol):
    async def create_cluster(self, cluster_id: str) -> None: ...

    async def delete_cluster(self, cluster_id: str) -> None: ...

    async def subnet(self, cluster_id: str) -> str: ...

    async def guest(self, cluster_id: str) -> GuestCluster:
        """An API client for ``cluster_id``. The caller closes it."""
        ...


class ChartClusterFactory:
    """Creates guest clusters by installing a cluster chart on the host.

    The chart renders the provider's ``<type>configs`` custom resource; the
    allocated CIDR is read back from ``status.cluster.network.cidr``.
    """

    def __init__(
        self,
        installer: ChartInstaller,
        host: KubeClient,
        *,
        common_domain: str,
        provider_type: str = "aws",
        chart: str = "apiextensions-aws-config-e2e",
        values: dict[str, Any] | None = None,
    ) -> None:
        if not common_domain:
            raise InvalidConfigError("ChartClusterFactory.common_domain must not be empty")
        self._installer = installer
        self._host = host
        self._common_domain = common_domain
        self._provider_type = provider_type
        self._chart = chart
        self._values = values or {}

    def _resource(self, cluster_id: str) -> CustomResource:
        return CustomResource(
            group=CR_GROUP,
            version=CR_VERSION,
            plural=f"{self._provider_type}configs",
            name=cluster_id,
            namespace=CR_NAMESPACE,
        )

    async def create_cluster(self, cluster_id: str) -> None:
        values = {**self._values, "clusterName": cluster_id, "commonDomain": self._common_domain}
        await self._installer.install_chart(self._chart, cluster_id, values, release=cluster_id)

    async def delete_cluster(self, cluster_id: str) -> None:
        await self._installer.delete_release(cluster_id, cluster_id)

    async def subnet(self, cluster_id: str) -> str:
        obj = await self._host.get_custom_object(self._resource(cluster_id))
        cidr = (((obj.get("status") or {}).get("cluster") or {}).get("network") or {}).get("cidr")
        if not cidr:
            raise NotFoundError(f"no subnet allocated for cluster {cluster_id}")
        return str(cidr)

    async def guest(self, cluster_id: str) -> GuestCluster:
        client = await asyncio.to_thread(KubeClient.for_guest, self._host, cluster_id, self._common_domain)
        return GuestCluster(cluster_id, client)


class IPAM:
    def __init__(self, factory: ClusterFactory, host_cluster_name: str) -> None:
        if factory is None:
            raise InvalidConfigError("IPAM.factory must not be empty")
        if not host_cluster_name:
            raise InvalidConfigError("IPAM.host_cluster_name must not be empty")

        self._factory = factory
        self._clusters = [f"{host_cluster_name}-cluster{i}" for i in range(4)]
        self._log = logger.bind(sequence="ipam")

    @property
    def clusters(self) -> list[str]:
        return list(self._clusters)

    async def _check(self, allocations: SubnetAllocations, cluster: str) -> None:
        subnet = await self._factory.subnet(cluster)
        allocations.add(cluster, subnet)
        self._log.debug("Cluster {cluster} holds {subnet}", cluster=cluster, subnet=subnet)

    async def _open(self, guests: dict[str, GuestCluster], opened: list[GuestCluster], cluster: str) -> GuestCluster:
        guest = await self._factory.guest(cluster)
        opened.append(guest)
        guests[cluster] = guest
        return guest

    async def run(self) -> SequenceResult:
        first, second, third, fourth = self._clusters
        allocations = SubnetAllocations()
        guests: dict[str, GuestCluster] = {}
        opened: list[GuestCluster] = []

        try:
            async with cleanup_scope("ipam") as scope:
                async with step(self._log, "create three guest clusters"):
                    for cluster in (first, second, third):
                        scope.register(cluster, lambda c=cluster: self._factory.delete_cluster(c))
                        await self._factory.create_cluster(cluster)

                async with step(self._log, "wait for three guest clusters"):
                    for cluster in (first, second, third):
                        guest = await self._open(guests, opened, cluster)
                        await guest.wait_for_guest_ready()

                async with step(self._log, "verify subnet allocations"):
                    for cluster in (first, second, third):
                        await self._check(allocations, cluster)

                async with step(self._log, f"replace {second} with {fourth}"):
                    await scope.release_now(second)
                    allocations.remove(second)
                    scope.register(fourth, lambda: self._factory.delete_cluster(fourth))
                    await self._factory.create_cluster(fourth)

                async with step(self._log, f"wait for {second} shutdown"):
                    await guests.pop(second).wait_for_api_down()

                async with step(self._log, f"wait for {fourth}"):
                    guest = await self._open(guests, opened, fourth)
                    await guest.wait_for_guest_ready()

                async with step(self._log, f"verify {fourth} subnet allocation"):
                    await self._check(allocations, fourth)
        finally:
            for guest in opened:
                guest.close()

        self._log.info("IPAM sequence passed: {allocations}", allocations=allocations.items())
        return SequenceResult.PASSED
