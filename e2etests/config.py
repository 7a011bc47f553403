"""TOML-based suite and provider configuration.

Loads ~/.e2etests/defaults.toml (global) and e2etests.toml (project),
merges them, and resolves the ``[suite]`` table and the named provider.

Example e2etests.toml:

    [suite]
    cluster_id = "ci-3f2a1"
    host_cluster_name = "ci-3f2a1"
    common_domain = "example.com"
    provider = "kvm"
    registry_url = "https://versions.example.com"

    [providers.kvm]
    type = "kvm"
"""

from __future__ import annotations

import os
import tomllib
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any

from e2etests.errors import InvalidConfigError, require
from e2etests.poll import UPDATE, Backoff
from e2etests.providers.config import ProviderConfig
from e2etests.providers.registry import PROVIDER_TYPES

type RawConfig = dict[str, Any]

GLOBAL_CONFIG_PATH = Path.home() / ".e2etests" / "defaults.toml"
PROJECT_CONFIG_NAME = "e2etests.toml"


@dataclass(frozen=True, slots=True)
class SuiteConfig:
    """Settings shared by every sequence of a run.

    Args:
        cluster_id: Guest cluster under test.
        host_cluster_name: Prefix for the clusters the IPAM sequence creates.
        common_domain: Base domain of guest cluster API endpoints.
        provider: Name of the ``[providers.<name>]`` table to use.
        registry_url: Version registry base URL.
        registry_token_env: Environment variable holding the registry token.
        kubeconfig: Host cluster kubeconfig. In-cluster config when unset.
        guest_kubeconfig: Guest cluster kubeconfig. Read from the host's
            ``<cluster_id>-api`` secret when unset.
        update_interval: Seconds between update status polls.
        update_max_wait: Seconds before the update waits time out.
        chart_repository: Helm repository charts are installed from.
        ipam_chart: Chart rendering a guest cluster for the IPAM sequence.
        app_chart: Chart the basic app sequence installs and tests.
        app_namespace: Namespace of the basic app release.
    """

    cluster_id: str
    host_cluster_name: str = ""
    common_domain: str = ""
    provider: str = ""
    registry_url: str = ""
    registry_token_env: str = "GITHUB_BOT_TOKEN"
    kubeconfig: str | None = None
    guest_kubeconfig: str | None = None
    update_interval: float = UPDATE.interval
    update_max_wait: float = UPDATE.max_wait
    chart_repository: str | None = None
    ipam_chart: str = "apiextensions-aws-config-e2e"
    app_chart: str = ""
    app_namespace: str = "default"

    @property
    def update_backoff(self) -> Backoff:
        return Backoff(interval=self.update_interval, max_wait=self.update_max_wait)

    @property
    def registry_token(self) -> str | None:
        return os.environ.get(self.registry_token_env) or None


def _deep_merge(base: RawConfig, override: RawConfig) -> RawConfig:
    result = dict(base)
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value
    return result


def _read_toml(path: Path) -> RawConfig:
    if not path.is_file():
        return {}
    with path.open("rb") as f:
        return tomllib.load(f)


def load_config(
    *,
    project_dir: Path | None = None,
    global_path: Path | None = None,
) -> RawConfig:
    global_cfg = _read_toml(global_path or GLOBAL_CONFIG_PATH)
    project_path = (project_dir or Path.cwd()) / PROJECT_CONFIG_NAME
    project_cfg = _read_toml(project_path)

    merged = _deep_merge(global_cfg, project_cfg)
    merged.setdefault("suite", {})
    merged.setdefault("providers", {})
    return merged


def _build[T](cls: type[T], raw: RawConfig, owner: str) -> T:
    known = {f.name for f in fields(cls)}  # type: ignore[arg-type]
    unknown = set(raw) - known
    if unknown:
        raise InvalidConfigError(f"{owner} has unknown fields: {', '.join(sorted(unknown))}")
    try:
        return cls(**raw)
    except TypeError as e:
        raise InvalidConfigError(f"{owner}: {e}") from e


def resolve_suite(config: RawConfig) -> SuiteConfig:
    suite = _build(SuiteConfig, dict(config["suite"]), "[suite]")
    require(suite.cluster_id, "cluster_id", "[suite]")
    return suite


def resolve_provider(config: RawConfig, name: str | None = None) -> ProviderConfig:
    """Build the provider configuration named ``name`` (default: ``suite.provider``).

    ``cluster_id`` defaults to the suite's cluster ID.
    """
    suite = config["suite"]
    name = name or suite.get("provider")
    if not name:
        raise InvalidConfigError("[suite] provider must not be empty")

    providers = config["providers"]
    if name not in providers:
        raise InvalidConfigError(
            f"Provider '{name}' not found. Available: {', '.join(providers) or 'none'}"
        )

    raw = dict(providers[name])
    provider_type = raw.pop("type", None)
    if provider_type is None:
        raise InvalidConfigError(f"Provider '{name}' missing 'type' field")

    cls = PROVIDER_TYPES.get(provider_type)
    if cls is None:
        raise InvalidConfigError(
            f"Unknown provider type '{provider_type}'. Valid: {', '.join(PROVIDER_TYPES)}"
        )

    raw.setdefault("cluster_id", suite.get("cluster_id", ""))
    provider = _build(cls, raw, f"[providers.{name}]")
    provider.validate()
    return provider
