"""Async facade over the synchronous ``kubernetes`` client.

Only the handful of reads and patches the test sequences need. Blocking
client calls are dispatched to a dedicated thread pool so that polling stays
cancellable.
"""

from __future__ import annotations

import asyncio
import base64
import json
import shutil
import tempfile
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from kubernetes import client, config
from kubernetes.client.rest import ApiException
from loguru import logger

from e2etests.errors import NotFoundError

log = logger.bind(component="k8s")

GUEST_SECRET_KEYS = ("ca", "crt", "key")


@dataclass(frozen=True, slots=True)
class CustomResource:
    """Coordinates of a namespaced custom resource."""

    group: str
    version: str
    plural: str
    name: str
    namespace: str = "default"


def is_not_found(err: BaseException) -> bool:
    return isinstance(err, ApiException) and err.status == 404


def node_is_ready(node: Any) -> bool:
    conditions = (node.status.conditions if node.status else None) or []
    return any(c.type == "Ready" and c.status == "True" for c in conditions)


def _guest_kubeconfig(cluster_id: str, server: str, ca: Path, crt: Path, key: Path) -> dict[str, Any]:
    return {
        "apiVersion": "v1",
        "kind": "Config",
        "clusters": [{"name": cluster_id, "cluster": {"server": server, "certificate-authority": str(ca)}}],
        "users": [{"name": cluster_id, "user": {"client-certificate": str(crt), "client-key": str(key)}}],
        "contexts": [{"name": cluster_id, "context": {"cluster": cluster_id, "user": cluster_id}}],
        "current-context": cluster_id,
    }


class KubeClient:
    """One cluster's API.

    ``kubeconfig`` is the file this client was loaded from, or the one written
    for it, so that CLI tools such as helm can target the same cluster. It is
    ``None`` only for in-cluster and default-context clients.
    """

    def __init__(
        self,
        api_client: client.ApiClient,
        *,
        thread_pool_size: int = 4,
        kubeconfig: str | None = None,
        workdir: Path | None = None,
    ) -> None:
        self._api = api_client
        self._core = client.CoreV1Api(api_client)
        self._apps = client.AppsV1Api(api_client)
        self._custom = client.CustomObjectsApi(api_client)
        self._version = client.VersionApi(api_client)
        self._pool = ThreadPoolExecutor(max_workers=thread_pool_size, thread_name_prefix="k8s-io")
        self._workdir = workdir
        self.kubeconfig = kubeconfig

    async def _run[T](self, fn: Callable[..., T], *args: object, **kwargs: object) -> T:
        loop = asyncio.get_running_loop()
        if kwargs:
            return await loop.run_in_executor(self._pool, lambda: fn(*args, **kwargs))
        return await loop.run_in_executor(self._pool, fn, *args)

    # ─── Construction ────────────────────────────────────────────────

    @classmethod
    def from_kubeconfig(cls, path: str | None = None, context: str | None = None) -> KubeClient:
        """Load a kubeconfig file, falling back to in-cluster config."""
        if path is None and context is None:
            try:
                config.load_incluster_config()
                log.info("Loaded in-cluster Kubernetes configuration")
                return cls(client.ApiClient())
            except config.ConfigException:
                pass
        api_client = config.new_client_from_config(config_file=path, context=context)
        log.info("Loaded kubeconfig {path}", path=path or "default")
        return cls(api_client, kubeconfig=path)

    @classmethod
    def for_guest(cls, host: KubeClient, cluster_id: str, common_domain: str) -> KubeClient:
        """Build a client for a guest cluster from its ``<id>-api`` cert secret on the host.

        The certificates and a kubeconfig referencing them are written to a
        private temporary directory that ``close()`` removes.

        Blocking; call it from a worker thread inside the event loop.

        Raises:
            NotFoundError: The secret lacks one of ``ca``, ``crt`` or ``key``.
        """
        secret = host._core.read_namespaced_secret(f"{cluster_id}-api", "default")
        data = secret.data or {}
        missing = [k for k in GUEST_SECRET_KEYS if not data.get(k)]
        if missing:
            raise NotFoundError(f"secret {cluster_id}-api has no {', '.join(missing)}")

        server = f"https://api.{cluster_id}.k8s.{common_domain}"
        workdir = Path(tempfile.mkdtemp(prefix=f"e2etests-{cluster_id}-"))
        try:
            paths = {}
            for key in GUEST_SECRET_KEYS:
                paths[key] = workdir / key
                paths[key].write_bytes(base64.b64decode(data[key]))
            kubeconfig = workdir / "kubeconfig"
            kubeconfig.write_text(json.dumps(
                _guest_kubeconfig(cluster_id, server, paths["ca"], paths["crt"], paths["key"]), indent=2,
            ))
        except BaseException:
            shutil.rmtree(workdir, ignore_errors=True)
            raise

        cfg = client.Configuration()
        cfg.host = server
        cfg.ssl_ca_cert = str(paths["ca"])
        cfg.cert_file = str(paths["crt"])
        cfg.key_file = str(paths["key"])
        log.debug("Guest {cluster_id} credentials in {workdir}", cluster_id=cluster_id, workdir=workdir)
        return cls(client.ApiClient(cfg), kubeconfig=str(kubeconfig), workdir=workdir)

    # ─── Reads ───────────────────────────────────────────────────────

    async def list_pods(self, namespace: str, label_selector: str) -> list[Any]:
        pods = await self._run(self._core.list_namespaced_pod, namespace, label_selector=label_selector)
        return list(pods.items)

    async def list_nodes(self) -> list[Any]:
        nodes = await self._run(self._core.list_node)
        return list(nodes.items)

    async def count_ready_nodes(self) -> int:
        return sum(1 for n in await self.list_nodes() if node_is_ready(n))

    async def get_deployment(self, namespace: str, name: str) -> Any:
        return await self._run(self._apps.read_namespaced_deployment, name, namespace)

    async def list_deployments(self, namespace: str, label_selector: str) -> list[Any]:
        deployments = await self._run(self._apps.list_namespaced_deployment, namespace, label_selector=label_selector)
        return list(deployments.items)

    async def server_version(self) -> str:
        info = await self._run(self._version.get_code, _request_timeout=10)
        return str(info.git_version)

    async def get_custom_object(self, ref: CustomResource) -> dict[str, Any]:
        return await self._run(
            self._custom.get_namespaced_custom_object,
            ref.group, ref.version, ref.namespace, ref.plural, ref.name,
        )

    # ─── Mutations ───────────────────────────────────────────────────

    async def delete_pod(self, namespace: str, name: str) -> None:
        log.debug("Deleting pod {namespace}/{name}", namespace=namespace, name=name)
        await self._run(self._core.delete_namespaced_pod, name, namespace)

    async def patch_config_map(self, namespace: str, name: str, data: dict[str, str]) -> None:
        """Strategic-merge ``data`` into a config map's data."""
        log.debug("Patching configmap {namespace}/{name}", namespace=namespace, name=name)
        await self._run(self._core.patch_namespaced_config_map, name, namespace, {"data": data})

    async def patch_custom_object(self, ref: CustomResource, patches: list[dict[str, Any]]) -> dict[str, Any]:
        """Apply a JSON Patch document to a custom resource.

        The client sends list bodies as ``application/json-patch+json``.
        """
        log.debug("Patching {plural}/{name}: {patches}", plural=ref.plural, name=ref.name, patches=patches)
        return await self._run(
            self._custom.patch_namespaced_custom_object,
            ref.group, ref.version, ref.namespace, ref.plural, ref.name, patches,
        )

    async def delete_custom_object(self, ref: CustomResource) -> None:
        await self._run(
            self._custom.delete_namespaced_custom_object,
            ref.group, ref.version, ref.namespace, ref.plural, ref.name,
        )

    def close(self) -> None:
        self._pool.shutdown(wait=False, cancel_futures=True)
        self._api.close()
        if self._workdir is not None:
            shutil.rmtree(self._workdir, ignore_errors=True)
            self._workdir = None
