"""Probe workload: a small app installed in the guest cluster whose pod count
serves as the converged-state oracle for disruptive sequences.
"""

from __future__ import annotations

from typing import Any, Protocol, runtime_checkable

from loguru import logger

from e2etests.infra.k8s import KubeClient
from e2etests.poll import SHORT, Backoff, Check, Done, Retry, wait_until

CHART_NAME = "e2e-app-chart"
CHART_NAMESPACE = "e2e-app"
LABEL_SELECTOR = "app=e2e-app"
POD_COUNT = 2

log = logger.bind(component="probe")


@runtime_checkable
class ChartInstaller(Protocol):
    """Installs Helm releases. Returns once the request is accepted, not
    once pods are ready."""

    async def install_chart(
        self,
        chart: str,
        namespace: str,
        values: dict[str, Any] | None = None,
        *,
        release: str | None = None,
    ) -> None: ...

    async def delete_release(self, release: str, namespace: str | None = None) -> None: ...


class ProbeWorkload:
    def __init__(
        self,
        installer: ChartInstaller,
        client: KubeClient,
        *,
        chart: str = CHART_NAME,
        namespace: str = CHART_NAMESPACE,
        label_selector: str = LABEL_SELECTOR,
        pod_count: int = POD_COUNT,
        deployment: str | None = None,
        backoff: Backoff = SHORT,
    ) -> None:
        self._installer = installer
        self._client = client
        self._chart = chart
        self._namespace = namespace
        self._selector = label_selector
        self._pod_count = pod_count
        self._deployment = deployment
        self._backoff = backoff

    async def install(self, values: dict[str, Any] | None = None) -> None:
        log.debug("Installing {chart} in {namespace}", chart=self._chart, namespace=self._namespace)
        await self._installer.install_chart(self._chart, self._namespace, values)

    async def _pods(self) -> Check:
        try:
            pods = await self._client.list_pods(self._namespace, self._selector)
        except Exception as e:
            return Retry(f"listing pods failed: {e}")
        if len(pods) != self._pod_count:
            return Retry(f"want {self._pod_count} pods found {len(pods)}")
        return Done()

    async def _deployment_ready(self) -> Check:
        assert self._deployment is not None
        try:
            d = await self._client.get_deployment(self._namespace, self._deployment)
        except Exception as e:
            return Retry(f"reading deployment failed: {e}")
        want = d.spec.replicas or 0
        ready = (d.status.ready_replicas if d.status else None) or 0
        if ready != want:
            return Retry(f"deployment {self._deployment} has {ready}/{want} ready replicas")
        return Done()

    async def verify_healthy(self) -> None:
        """Wait for exactly the expected number of probe pods.

        More pods than expected is as much a mismatch as fewer.
        """
        log.debug("Waiting for {n} pods of {selector}", n=self._pod_count, selector=self._selector)
        await wait_until(self._pods, self._backoff, description=f"{self._pod_count} pods of {self._selector}")

        if self._deployment is not None:
            await wait_until(
                self._deployment_ready, self._backoff,
                description=f"deployment {self._deployment} ready",
            )

        log.debug("Found {n} pods of {selector}", n=self._pod_count, selector=self._selector)
