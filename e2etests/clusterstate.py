"""Cluster-state sequence.

Installs the probe workload, then reboots and replaces the master, checking
after each disruption that the API went down, came back, and the probe
workload is healthy again:

    install probe -> verify probe
    reboot master  -> API down -> guest ready -> verify probe
    replace master -> API down -> guest ready -> verify probe
"""

from __future__ import annotations

from loguru import logger

from e2etests.errors import InvalidConfigError
from e2etests.guest import GuestCluster
from e2etests.lifecycle import SequenceResult, step
from e2etests.probe import ProbeWorkload
from e2etests.providers import MutationAction, Provider


class ClusterState:
    def __init__(self, provider: Provider, guest: GuestCluster, probe: ProbeWorkload) -> None:
        if provider is None:
            raise InvalidConfigError("ClusterState.provider must not be empty")
        if guest is None:
            raise InvalidConfigError("ClusterState.guest must not be empty")
        if probe is None:
            raise InvalidConfigError("ClusterState.probe must not be empty")

        self._provider = provider
        self._guest = guest
        self._probe = probe
        self._log = logger.bind(sequence="clusterstate", cluster_id=provider.cluster_id)

    async def run(self) -> SequenceResult:
        async with step(self._log, "install probe workload"):
            await self._probe.install()

        await self._verify_probe()

        async with step(self._log, MutationAction.REBOOT_MASTER):
            await self._provider.reboot_master()

        await self._wait_for_restart()
        await self._verify_probe()

        async with step(self._log, MutationAction.REPLACE_MASTER):
            await self._provider.replace_master()

        await self._wait_for_restart()
        await self._verify_probe()

        self._log.info("Cluster state sequence passed")
        return SequenceResult.PASSED

    async def _verify_probe(self) -> None:
        async with step(self._log, "verify probe workload"):
            await self._probe.verify_healthy()

    async def _wait_for_restart(self) -> None:
        async with step(self._log, "wait for API down"):
            await self._guest.wait_for_api_down()

        async with step(self._log, "wait for guest ready"):
            await self._guest.wait_for_guest_ready()
