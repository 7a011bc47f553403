"""Chart installer backed by the ``helm`` CLI."""

from __future__ import annotations

import asyncio
import json
from typing import Any

from loguru import logger

log = logger.bind(component="helm")


class HelmError(Exception):
    def __init__(self, args: list[str], returncode: int, stderr: str) -> None:
        self.returncode = returncode
        self.stderr = stderr
        super().__init__(f"helm {' '.join(args)} exited with {returncode}: {stderr.strip()}")


class HelmInstaller:
    """``ChartInstaller`` running ``helm upgrade --install`` against one cluster.

    Values are passed as JSON on stdin. Installs return once helm accepted
    the release, without ``--wait``.
    """

    def __init__(self, kubeconfig: str | None = None, *, repository: str | None = None, binary: str = "helm") -> None:
        self._kubeconfig = kubeconfig
        self._repository = repository
        self._binary = binary

    async def _helm(self, *args: str, stdin: str | None = None) -> str:
        argv = list(args)
        if self._kubeconfig:
            argv += ["--kubeconfig", self._kubeconfig]
        log.debug("helm {args}", args=" ".join(argv))

        proc = await asyncio.create_subprocess_exec(
            self._binary, *argv,
            stdin=asyncio.subprocess.PIPE,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
        stdout, stderr = await proc.communicate(stdin.encode() if stdin is not None else None)
        if proc.returncode != 0:
            raise HelmError(argv, proc.returncode or -1, stderr.decode(errors="replace"))
        return stdout.decode(errors="replace")

    async def install_chart(
        self,
        chart: str,
        namespace: str,
        values: dict[str, Any] | None = None,
        *,
        release: str | None = None,
    ) -> None:
        """Install or upgrade ``chart`` as ``release`` (default: the chart name)."""
        args = [
            "upgrade", "--install", release or chart, chart,
            "--namespace", namespace, "--create-namespace",
            "--values", "-",
        ]
        if self._repository:
            args += ["--repo", self._repository]
        await self._helm(*args, stdin=json.dumps(values or {}))

    async def delete_release(self, release: str, namespace: str | None = None) -> None:
        args = ["uninstall", release]
        if namespace:
            args += ["--namespace", namespace]
        await self._helm(*args)

    async def release_status(self, release: str, namespace: str | None = None) -> str:
        """The release's status as helm reports it, e.g. ``deployed`` or ``pending-install``."""
        args = ["status", release, "--output", "json"]
        if namespace:
            args += ["--namespace", namespace]
        info = json.loads(await self._helm(*args) or "{}").get("info") or {}
        return str(info.get("status", ""))

    async def run_release_test(self, release: str, namespace: str | None = None) -> None:
        """Run the chart's test hooks. Raises ``HelmError`` when any test fails."""
        args = ["test", release]
        if namespace:
            args += ["--namespace", namespace]
        await self._helm(*args)
