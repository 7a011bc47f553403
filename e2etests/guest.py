"""Convergence waits against a guest cluster's Kubernetes API."""

from __future__ import annotations

from loguru import logger

from e2etests.infra.k8s import KubeClient, node_is_ready
from e2etests.poll import LONG, SHORT, Backoff, Check, Done, Retry, wait_until


class GuestCluster:
    """Observes a guest cluster: API reachability and node readiness.

    Implements the ``Waiter`` capability used by providers for
    ``wait_for_nodes``. Client errors while the API is restarting are
    expected and reported as ``Retry``.
    """

    def __init__(
        self,
        cluster_id: str,
        client: KubeClient,
        *,
        min_nodes: int = 1,
        api_backoff: Backoff = LONG,
        nodes_backoff: Backoff = LONG,
        probe_backoff: Backoff = SHORT,
    ) -> None:
        self.cluster_id = cluster_id
        self.client = client
        self._min_nodes = min_nodes
        self._api_backoff = api_backoff
        self._nodes_backoff = nodes_backoff
        self.probe_backoff = probe_backoff
        self._log = logger.bind(component="guest", cluster_id=cluster_id)

    async def _api_down(self) -> Check:
        try:
            version = await self.client.server_version()
        except Exception as e:
            self._log.debug("API unreachable: {e}", e=e)
            return Done()
        return Retry(f"API still serving {version}")

    async def _ready(self) -> Check:
        try:
            nodes = await self.client.list_nodes()
        except Exception as e:
            return Retry(f"API not reachable: {e}")
        ready = sum(1 for n in nodes if node_is_ready(n))
        if ready < self._min_nodes or ready != len(nodes):
            return Retry(f"want at least {self._min_nodes} nodes all ready, found {ready}/{len(nodes)} ready")
        return Done()

    async def wait_for_api_down(self) -> None:
        await wait_until(self._api_down, self._api_backoff, description=f"{self.cluster_id} API down")
        self._log.debug("API is down")

    async def wait_for_guest_ready(self) -> None:
        await wait_until(self._ready, self._api_backoff, description=f"{self.cluster_id} guest ready")
        self._log.debug("Guest cluster is ready")

    async def wait_for_nodes_ready(self, expected: int) -> None:
        """Wait until exactly ``expected`` nodes are present and Ready."""

        async def check() -> Check:
            try:
                nodes = await self.client.list_nodes()
            except Exception as e:
                return Retry(f"API not reachable: {e}")
            ready = sum(1 for n in nodes if node_is_ready(n))
            if ready != expected or len(nodes) != expected:
                return Retry(f"want {expected} ready nodes found {ready}/{len(nodes)}")
            return Done()

        await wait_until(check, self._nodes_backoff, description=f"{expected} ready nodes in {self.cluster_id}")
        self._log.debug("{n} nodes are ready", n=expected)

    def close(self) -> None:
        self.client.close()
