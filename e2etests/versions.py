"""Version registry client.

The registry lists the version bundles an operator ships, per provider.
A bundle flagged ``wip`` is the next, not yet released version; the newest
released, non-deprecated bundle is the current one.

    GET {base_url}/versionbundles/{component}?provider={provider}

    [
        {"version": "4.1.0", "wip": false, "deprecated": true},
        {"version": "4.2.0", "wip": false, "deprecated": false},
        {"version": "4.3.0", "wip": true,  "deprecated": false}
    ]
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, Literal

from loguru import logger

from e2etests.errors import VersionNotFoundError
from e2etests.infra.http import JsonClient

log = logger.bind(component="versions")

type VersionType = Literal["current", "wip"]


@dataclass(frozen=True, slots=True)
class VersionPair:
    current: str
    next: str | None = None


def _version_key(version: str) -> tuple[int, ...]:
    return tuple(int(p) for p in re.findall(r"\d+", version))


def select_version(bundles: list[dict[str, Any]], vtype: VersionType) -> str:
    """Pick the newest bundle of the given type, or "" when there is none."""
    wanted = vtype == "wip"
    candidates = [
        str(b["version"])
        for b in bundles
        if b.get("version") and bool(b.get("wip", False)) is wanted and not b.get("deprecated", False)
    ]
    if not candidates:
        return ""
    return max(candidates, key=_version_key)


class VersionRegistry:
    def __init__(self, client: JsonClient) -> None:
        self._client = client

    async def lookup(self, component: str, provider: str, vtype: VersionType) -> str:
        """Return the version string for (component, provider, type).

        Raises:
            VersionNotFoundError: No bundle of that type exists.
        """
        bundles = await self._client.get_json(f"/versionbundles/{component}", {"provider": provider})
        version = select_version(bundles or [], vtype)
        if not version:
            raise VersionNotFoundError(f"no {vtype} version bundle for {component} on {provider}")

        log.debug(
            "Found {vtype} version {version} for {component}",
            vtype=vtype, version=version, component=component,
        )
        return version

    async def pair(self, component: str, provider: str) -> VersionPair:
        current = await self.lookup(component, provider, "current")
        try:
            nxt: str | None = await self.lookup(component, provider, "wip")
        except VersionNotFoundError:
            nxt = None
        return VersionPair(current=current, next=nxt)

    async def close(self) -> None:
        await self._client.close()
