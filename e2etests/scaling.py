"""Scaling sequence.

Scales the guest cluster up by one worker, waits for the new node, scales
back down and waits for the node to go away. The declared worker count must
end where it started.
"""

from __future__ import annotations

from loguru import logger

from e2etests.errors import InvalidConfigError, ScalingError
from e2etests.lifecycle import SequenceResult, step
from e2etests.providers import MutationAction, Provider


class Scaling:
    def __init__(self, provider: Provider) -> None:
        if provider is None:
            raise InvalidConfigError("Scaling.provider must not be empty")

        self._provider = provider
        self._log = logger.bind(sequence="scaling", cluster_id=provider.cluster_id)

    async def run(self) -> SequenceResult:
        async with step(self._log, "record baseline"):
            masters = await self._provider.num_masters()
            baseline = await self._provider.num_workers()
        self._log.info("Baseline: {masters} masters, {workers} workers", masters=masters, workers=baseline)

        async with step(self._log, MutationAction.ADD_WORKER):
            await self._provider.add_worker()

        async with step(self._log, "wait for scale up"):
            await self._provider.wait_for_nodes(masters + baseline + 1)

        async with step(self._log, MutationAction.REMOVE_WORKER):
            await self._provider.remove_worker()

        async with step(self._log, "wait for scale down"):
            await self._provider.wait_for_nodes(masters + baseline)

        async with step(self._log, "read worker count"):
            workers = await self._provider.num_workers()
        if workers != baseline:
            raise ScalingError(f"expected {baseline} workers after scaling round trip, found {workers}")

        self._log.info("Scaling sequence passed")
        return SequenceResult.PASSED
