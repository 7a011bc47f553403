"""Update sequence.

Waits for the guest cluster to be created, moves it from the current to the
next version bundle and waits for the update to complete. A provider without
a current or next version bundle has nothing to update: the sequence is
skipped, not failed.
"""

from __future__ import annotations

from loguru import logger

from e2etests.errors import InvalidConfigError, is_version_not_found
from e2etests.lifecycle import SequenceResult, step
from e2etests.poll import UPDATE, Backoff, Check, PermanentSuccess, Retry, wait_until
from e2etests.providers import MutationAction, Provider


class Update:
    def __init__(self, provider: Provider, *, backoff: Backoff = UPDATE) -> None:
        if provider is None:
            raise InvalidConfigError("Update.provider must not be empty")

        self._provider = provider
        self._backoff = backoff
        self._log = logger.bind(sequence="update", cluster_id=provider.cluster_id)

    async def _created(self) -> Check:
        try:
            created = await self._provider.is_created()
        except Exception as e:
            return Retry(f"reading cluster status failed: {e}")
        if created:
            return PermanentSuccess("already created")
        return Retry("guest cluster not created yet")

    async def _updated(self) -> Check:
        try:
            updated = await self._provider.is_updated()
        except Exception as e:
            return Retry(f"reading cluster status failed: {e}")
        if updated:
            return PermanentSuccess("already updated")
        return Retry("guest cluster not updated yet")

    async def run(self) -> SequenceResult:
        # The harness does not wait on the CR status before handing over the
        # cluster, so creation is confirmed here first.
        async with step(self._log, "wait for created"):
            await wait_until(self._created, self._backoff, description="guest cluster created")

        try:
            current = await self._provider.current_version()
        except Exception as e:
            if is_version_not_found(e):
                self._log.info("No current version bundle, skipping update sequence")
                return SequenceResult.SKIPPED
            raise
        self._log.info("Current version bundle is {version}", version=current)

        try:
            nxt = await self._provider.next_version()
        except Exception as e:
            if is_version_not_found(e):
                self._log.info("No next version bundle, skipping update sequence")
                return SequenceResult.SKIPPED
            raise
        self._log.info("Next version bundle is {version}", version=nxt)

        async with step(self._log, MutationAction.UPDATE_VERSION):
            await self._provider.update_version(nxt)

        async with step(self._log, "wait for updated"):
            await wait_until(self._updated, self._backoff, description="guest cluster updated")

        self._log.info("Update sequence passed: {current} -> {next}", current=current, next=nxt)
        return SequenceResult.PASSED
