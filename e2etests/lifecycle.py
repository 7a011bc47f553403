"""Sequence lifecycle: step boundaries, results and guaranteed cleanup."""

from __future__ import annotations

from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager
from enum import Enum
from typing import Any

from loguru import logger

from e2etests.errors import StepError

type CleanupAction = Callable[[], Awaitable[None]]


class SequenceResult(Enum):
    PASSED = "passed"
    SKIPPED = "skipped"


@asynccontextmanager
async def step(log: Any, name: str) -> AsyncIterator[None]:
    """Log the start and end of a step; wrap its failure in ``StepError``.

    The underlying error stays the ``__cause__`` so ``classify()`` still sees it.
    """
    log.debug("{step}: started", step=name)
    try:
        yield
    except Exception as e:
        log.error("{step}: failed: {e}", step=name, e=e)
        raise StepError(name, e) from e
    log.debug("{step}: done", step=name)


class CleanupScope:
    """Release actions registered while a sequence acquires resources.

    Each action runs at most once: either explicitly through ``release_now``
    or when the scope exits. Failures at exit are logged, never raised, so
    they cannot mask the sequence's own result.
    """

    def __init__(self, description: str) -> None:
        self._description = description
        self._actions: dict[str, CleanupAction] = {}
        self._log = logger.bind(component="cleanup")

    def register(self, key: str, action: CleanupAction) -> None:
        self._actions[key] = action

    def __contains__(self, key: str) -> bool:
        return key in self._actions

    async def release_now(self, key: str) -> None:
        """Run one action now, as part of the sequence. Errors propagate."""
        action = self._actions.pop(key)
        await action()

    async def release_all(self) -> None:
        actions = list(self._actions.items())
        self._actions.clear()
        for key, action in actions:
            try:
                await action()
                self._log.debug("{description}: released {key}", description=self._description, key=key)
            except Exception as e:
                self._log.error(
                    "{description}: releasing {key} failed: {e}",
                    description=self._description, key=key, e=e,
                )


@asynccontextmanager
async def cleanup_scope(description: str) -> AsyncIterator[CleanupScope]:
    """Run registered release actions on every exit path.

    Example:
        async with cleanup_scope("ipam") as scope:
            scope.register("c1", lambda: factory.delete_cluster("c1"))
            await factory.create_cluster("c1")
            ...
    """
    scope = CleanupScope(description)
    try:
        yield scope
    finally:
        await scope.release_all()
