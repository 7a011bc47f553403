from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum
from typing import Any, Literal, Protocol, runtime_checkable


class MutationAction(StrEnum):
    REBOOT_MASTER = "reboot-master"
    REPLACE_MASTER = "replace-master"
    ADD_WORKER = "add-worker"
    REMOVE_WORKER = "remove-worker"
    UPDATE_VERSION = "update-version"


@dataclass(frozen=True, slots=True)
class Patch:
    """One JSON Patch (RFC 6902) operation."""

    op: Literal["add", "remove", "replace"]
    path: str
    value: Any = None

    def to_dict(self) -> dict[str, Any]:
        if self.op == "remove":
            return {"op": self.op, "path": self.path}
        return {"op": self.op, "path": self.path, "value": self.value}


@runtime_checkable
class Waiter(Protocol):
    async def wait_for_nodes_ready(self, expected: int) -> None:
        """Wait for the given number of guest cluster nodes to be ready."""
        ...


@runtime_checkable
class Provider(Protocol):
    """Mutations and state reads against one guest cluster.

    Every mutating call issues a single request and returns as soon as it is
    accepted. Callers observe completion separately, with a wait step.
    """

    @property
    def cluster_id(self) -> str: ...

    async def reboot_master(self) -> None:
        """Restart the master in place.

        Raises:
            NotFoundError: No master resource exists.
            TooManyResultsError: More than one master resource matched.
        """
        ...

    async def replace_master(self) -> None:
        """Force the master to be recreated, not just restarted."""
        ...

    async def add_worker(self) -> None:
        """Append one worker to the declared worker list."""
        ...

    async def remove_worker(self) -> None:
        """Remove the worker at a fixed index (1), not the last one added."""
        ...

    async def num_masters(self) -> int: ...

    async def num_workers(self) -> int: ...

    async def wait_for_nodes(self, expected: int) -> None: ...

    async def current_version(self) -> str:
        """Raises VersionNotFoundError when no released bundle exists."""
        ...

    async def next_version(self) -> str:
        """Raises VersionNotFoundError when no wip bundle exists."""
        ...

    async def update_version(self, next_version: str) -> None: ...

    async def is_created(self) -> bool: ...

    async def is_updated(self) -> bool: ...
