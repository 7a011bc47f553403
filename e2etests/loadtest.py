"""Load-test sequence.

Prepares a guest cluster for load: turns on autoscaling for the ingress
controller, installs the load-test app behind an ingress host derived from
the cluster ID and waits for its deployment to become ready.

    guest ready -> enable ingress controller HPA -> install app -> app ready

Autoscaling is switched on in the ingress controller's user config map. The
chart operator only re-reads that config map when the chart config changes,
so the chart config gets a fresh annotation to trigger a reconcile.
"""

from __future__ import annotations

import time

from loguru import logger

from e2etests.errors import InvalidConfigError
from e2etests.guest import GuestCluster
from e2etests.infra.k8s import CustomResource
from e2etests.lifecycle import SequenceResult, step
from e2etests.poll import Backoff, Check, Done, Retry, wait_until
from e2etests.probe import ChartInstaller
from e2etests.providers.provider import Patch

USER_CONFIG_MAP = "nginx-ingress-controller-user-values"
USER_CONFIG_MAP_NAMESPACE = "kube-system"
INGRESS_CHART_CONFIG = CustomResource(
    group="core.giantswarm.io",
    version="v1alpha1",
    plural="chartconfigs",
    name="kubernetes-nginx-ingress-controller-chart",
    namespace="giantswarm",
)
RECONCILE_ANNOTATION = "e2etests.giantswarm.io/reconcile"

APP_CHART = "loadtest-app-chart"
APP_CHART_NAMESPACE = "e2e-app"
APP_DEPLOYMENT_NAMESPACE = "default"
APP_SELECTOR = "app.kubernetes.io/name=loadtest-app"

APP_READY = Backoff(interval=15.0, max_wait=2 * 60.0)


def _pointer(key: str) -> str:
    """Escape ``key`` as one JSON Pointer segment."""
    return key.replace("~", "~0").replace("/", "~1")


class LoadTest:
    def __init__(
        self,
        guest: GuestCluster,
        installer: ChartInstaller,
        common_domain: str,
        *,
        backoff: Backoff = APP_READY,
    ) -> None:
        if guest is None:
            raise InvalidConfigError("LoadTest.guest must not be empty")
        if installer is None:
            raise InvalidConfigError("LoadTest.installer must not be empty")
        if not common_domain:
            raise InvalidConfigError("LoadTest.common_domain must not be empty")

        self._guest = guest
        self._installer = installer
        self._backoff = backoff
        self.endpoint = f"loadtest-app.{guest.cluster_id}.{common_domain}"
        self._log = logger.bind(sequence="loadtest", cluster_id=guest.cluster_id)

    async def enable_ingress_hpa(self) -> None:
        client = self._guest.client
        await client.patch_config_map(USER_CONFIG_MAP_NAMESPACE, USER_CONFIG_MAP, {"autoscaling-enabled": "true"})

        chart_config = await client.get_custom_object(INGRESS_CHART_CONFIG)
        stamp = str(int(time.time()))
        if (chart_config.get("metadata") or {}).get("annotations"):
            patch = Patch("add", f"/metadata/annotations/{_pointer(RECONCILE_ANNOTATION)}", stamp)
        else:
            patch = Patch("add", "/metadata/annotations", {RECONCILE_ANNOTATION: stamp})
        await client.patch_custom_object(INGRESS_CHART_CONFIG, [patch.to_dict()])

    async def _app_ready(self) -> Check:
        try:
            deployments = await self._guest.client.list_deployments(APP_DEPLOYMENT_NAMESPACE, APP_SELECTOR)
        except Exception as e:
            return Retry(f"listing deployments failed: {e}")
        if len(deployments) != 1:
            return Retry(f"want 1 deployment found {len(deployments)}")

        d = deployments[0]
        want = d.spec.replicas or 0
        ready = (d.status.ready_replicas if d.status else None) or 0
        if ready != want:
            return Retry(f"want {want} ready pods found {ready}")
        return Done()

    async def run(self) -> SequenceResult:
        self._log.debug("Load-test endpoint is {endpoint}", endpoint=self.endpoint)

        async with step(self._log, "wait for guest ready"):
            await self._guest.wait_for_guest_ready()

        async with step(self._log, "enable ingress controller HPA"):
            await self.enable_ingress_hpa()

        async with step(self._log, "install loadtest app"):
            values = {"ingress": {"hosts": [self.endpoint]}}
            await self._installer.install_chart(APP_CHART, APP_CHART_NAMESPACE, values)

        async with step(self._log, "wait for loadtest app"):
            await wait_until(self._app_ready, self._backoff, description="loadtest-app deployment ready")

        self._log.info("Load-test sequence passed")
        return SequenceResult.PASSED
