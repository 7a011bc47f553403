"""Behaviour shared by every provider variant.

All variants declare their guest cluster in a ``<provider>configs`` custom
resource on the host cluster. Worker scaling, version updates and status
reads are JSON Patches and reads against that resource; only the master
mutations differ per variant.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from loguru import logger

from e2etests.errors import InvalidConfigError
from e2etests.infra.k8s import CustomResource, KubeClient
from e2etests.versions import VersionRegistry

from .config import ProviderConfig
from .provider import MutationAction, Patch, Waiter

CR_GROUP = "provider.giantswarm.io"
CR_VERSION = "v1alpha1"
CR_NAMESPACE = "default"

# Fixed index removed by remove_worker. Not the last worker added.
REMOVED_WORKER_INDEX = 1


def _condition_time(condition: dict[str, Any]) -> datetime | None:
    raw = condition.get("lastTransitionTime")
    if not raw:
        return None
    try:
        return datetime.fromisoformat(str(raw).replace("Z", "+00:00"))
    except ValueError:
        return None


def latest_condition(conditions: list[dict[str, Any]]) -> dict[str, Any] | None:
    """Newest condition by lastTransitionTime, falling back to list order."""
    if not conditions:
        return None
    timed = [(t, i, c) for i, c in enumerate(conditions) if (t := _condition_time(c)) is not None]
    if len(timed) == len(conditions):
        return max(timed, key=lambda x: (x[0], x[1]))[2]
    return conditions[-1]


class CustomResourceProvider:
    """Base for the AWS, Azure and KVM providers."""

    component: str = ""

    def __init__(
        self,
        config: ProviderConfig,
        host: KubeClient,
        registry: VersionRegistry,
        waiter: Waiter,
    ) -> None:
        owner = type(self).__name__
        if host is None:
            raise InvalidConfigError(f"{owner}.host must not be empty")
        if registry is None:
            raise InvalidConfigError(f"{owner}.registry must not be empty")
        if waiter is None:
            raise InvalidConfigError(f"{owner}.waiter must not be empty")
        config.validate()

        self._config = config
        self._host = host
        self._registry = registry
        self._waiter = waiter
        self._log = logger.bind(provider=config.type, cluster_id=config.cluster_id)

    @property
    def cluster_id(self) -> str:
        return self._config.cluster_id

    @property
    def resource(self) -> CustomResource:
        return CustomResource(
            group=CR_GROUP,
            version=CR_VERSION,
            plural=f"{self._config.type}configs",
            name=self._config.cluster_id,
            namespace=CR_NAMESPACE,
        )

    async def _spec(self) -> dict[str, Any]:
        obj = await self._host.get_custom_object(self.resource)
        return obj.get("spec", {}).get(self._config.type, {})

    async def _patch(self, action: MutationAction, *patches: Patch) -> None:
        self._log.info("Issuing {action}", action=action)
        await self._host.patch_custom_object(self.resource, [p.to_dict() for p in patches])

    # ─── Workers ─────────────────────────────────────────────────────

    async def add_worker(self) -> None:
        workers = (await self._spec()).get("workers") or []
        if not workers:
            raise InvalidConfigError(f"{self.resource.plural}/{self.cluster_id} declares no workers to copy")
        await self._patch(
            MutationAction.ADD_WORKER,
            Patch("add", f"/spec/{self._config.type}/workers/-", workers[0]),
        )

    async def remove_worker(self) -> None:
        await self._patch(
            MutationAction.REMOVE_WORKER,
            Patch("remove", f"/spec/{self._config.type}/workers/{REMOVED_WORKER_INDEX}"),
        )

    async def num_masters(self) -> int:
        return len((await self._spec()).get("masters") or [])

    async def num_workers(self) -> int:
        return len((await self._spec()).get("workers") or [])

    async def wait_for_nodes(self, expected: int) -> None:
        await self._waiter.wait_for_nodes_ready(expected)

    # ─── Versions ────────────────────────────────────────────────────

    async def current_version(self) -> str:
        return await self._registry.lookup(self.component, self._config.type, "current")

    async def next_version(self) -> str:
        return await self._registry.lookup(self.component, self._config.type, "wip")

    async def update_version(self, next_version: str) -> None:
        await self._patch(
            MutationAction.UPDATE_VERSION,
            Patch("replace", "/spec/versionBundle/version", next_version),
        )

    # ─── Status ──────────────────────────────────────────────────────

    async def _conditions(self) -> list[dict[str, Any]]:
        obj = await self._host.get_custom_object(self.resource)
        return ((obj.get("status") or {}).get("cluster") or {}).get("conditions") or []

    async def is_created(self) -> bool:
        return any(
            c.get("type") == "Created" and c.get("status") == "True"
            for c in await self._conditions()
        )

    async def is_updated(self) -> bool:
        latest = latest_condition(await self._conditions())
        return latest is not None and latest.get("type") == "Updated" and latest.get("status") == "True"
