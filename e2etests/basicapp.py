"""Basic app sequence.

Installs a chart in the guest cluster, waits until helm reports the release
as deployed and runs the chart's own release tests:

    install chart -> wait for deployed -> release tests
"""

from __future__ import annotations

from typing import Any, Protocol, runtime_checkable

from loguru import logger

from e2etests.errors import InvalidConfigError
from e2etests.lifecycle import SequenceResult, step
from e2etests.poll import SHORT, Backoff, Check, Done, Retry, wait_until
from e2etests.probe import ChartInstaller

DEPLOYED = "deployed"


@runtime_checkable
class ReleaseTester(ChartInstaller, Protocol):
    async def release_status(self, release: str, namespace: str | None = None) -> str: ...

    async def run_release_test(self, release: str, namespace: str | None = None) -> None: ...


class BasicApp:
    def __init__(
        self,
        installer: ReleaseTester,
        chart: str,
        *,
        namespace: str = "default",
        release: str | None = None,
        values: dict[str, Any] | None = None,
        backoff: Backoff = SHORT,
    ) -> None:
        if installer is None:
            raise InvalidConfigError("BasicApp.installer must not be empty")
        if not chart:
            raise InvalidConfigError("BasicApp.chart must not be empty")

        self._installer = installer
        self._chart = chart
        self._namespace = namespace
        self._release = release or chart
        self._values = values
        self._backoff = backoff
        self._log = logger.bind(sequence="basicapp", release=self._release)

    async def _deployed(self) -> Check:
        try:
            status = await self._installer.release_status(self._release, self._namespace)
        except Exception as e:
            return Retry(f"reading release status failed: {e}")
        # helm 2 reported DEPLOYED, helm 3 reports deployed
        if status.lower() != DEPLOYED:
            return Retry(f"release {self._release} is {status or 'unknown'}")
        return Done()

    async def run(self) -> SequenceResult:
        async with step(self._log, f"install {self._chart}"):
            await self._installer.install_chart(self._chart, self._namespace, self._values, release=self._release)

        async with step(self._log, "wait for deployed"):
            await wait_until(self._deployed, self._backoff, description=f"release {self._release} deployed")

        async with step(self._log, "release tests"):
            await self._installer.run_release_test(self._release, self._namespace)

        self._log.info("Basic app sequence passed")
        return SequenceResult.PASSED
