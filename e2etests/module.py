"""Dependency wiring for a test run.

Usage:
    module = E2EModule(suite, provider_config)
    injector = Injector([module])
    sequence = injector.get(ClusterState)
    ...
    await module.aclose()
"""

from __future__ import annotations

from injector import Binder, Module, provider, singleton

from e2etests.basicapp import BasicApp
from e2etests.clusterstate import ClusterState
from e2etests.config import SuiteConfig
from e2etests.errors import require
from e2etests.guest import GuestCluster
from e2etests.infra.helm import HelmInstaller
from e2etests.infra.http import JsonClient, TokenAuth
from e2etests.infra.k8s import KubeClient
from e2etests.ipam import IPAM, ChartClusterFactory, ClusterFactory
from e2etests.loadtest import LoadTest
from e2etests.probe import ProbeWorkload
from e2etests.providers import Provider, ProviderConfig, create_provider
from e2etests.scaling import Scaling
from e2etests.update import Update
from e2etests.versions import VersionRegistry


class E2EModule(Module):
    """Binds the run's configuration and provides every sequence.

    Clients are singletons, so all sequences of a run share the host and
    guest connections. Only clients that a sequence actually needed are
    created, and ``aclose`` closes exactly those.
    """

    def __init__(self, suite: SuiteConfig, provider_config: ProviderConfig) -> None:
        self._suite = suite
        self._provider_config = provider_config
        self._host: KubeClient | None = None
        self._guest: GuestCluster | None = None
        self._registry: VersionRegistry | None = None

    def configure(self, binder: Binder) -> None:
        binder.bind(SuiteConfig, to=self._suite)
        binder.bind(ProviderConfig, to=self._provider_config)

    async def aclose(self) -> None:
        if self._registry is not None:
            await self._registry.close()
        if self._guest is not None:
            self._guest.close()
        if self._host is not None:
            self._host.close()
        self._host = self._guest = self._registry = None

    # ─── Clients ─────────────────────────────────────────────────────

    @singleton
    @provider
    def provide_host(self, suite: SuiteConfig) -> KubeClient:
        self._host = KubeClient.from_kubeconfig(suite.kubeconfig)
        return self._host

    @singleton
    @provider
    def provide_guest(self, suite: SuiteConfig, host: KubeClient) -> GuestCluster:
        if suite.guest_kubeconfig:
            client = KubeClient.from_kubeconfig(suite.guest_kubeconfig)
        else:
            require(suite.common_domain, "common_domain", "[suite]")
            client = KubeClient.for_guest(host, suite.cluster_id, suite.common_domain)
        self._guest = GuestCluster(suite.cluster_id, client)
        return self._guest

    @singleton
    @provider
    def provide_registry(self, suite: SuiteConfig) -> VersionRegistry:
        require(suite.registry_url, "registry_url", "[suite]")
        token = suite.registry_token
        client = JsonClient(suite.registry_url, TokenAuth(token) if token else None)
        self._registry = VersionRegistry(client)
        return self._registry

    @singleton
    @provider
    def provide_provider(
        self,
        config: ProviderConfig,
        host: KubeClient,
        registry: VersionRegistry,
        guest: GuestCluster,
    ) -> Provider:
        return create_provider(config, host=host, registry=registry, waiter=guest)

    @singleton
    @provider
    def provide_guest_installer(self, suite: SuiteConfig, guest: GuestCluster) -> HelmInstaller:
        """Helm bound to the guest cluster. Never falls back to helm's current context."""
        require(guest.client.kubeconfig, "kubeconfig", "guest client")
        return HelmInstaller(guest.client.kubeconfig, repository=suite.chart_repository)

    @singleton
    @provider
    def provide_probe(self, guest: GuestCluster, installer: HelmInstaller) -> ProbeWorkload:
        return ProbeWorkload(installer, guest.client, backoff=guest.probe_backoff)

    @singleton
    @provider
    def provide_cluster_factory(self, suite: SuiteConfig, config: ProviderConfig, host: KubeClient) -> ClusterFactory:
        installer = HelmInstaller(suite.kubeconfig, repository=suite.chart_repository)
        return ChartClusterFactory(
            installer,
            host,
            common_domain=suite.common_domain,
            provider_type=config.type,
            chart=suite.ipam_chart,
        )

    # ─── Sequences ───────────────────────────────────────────────────

    @provider
    def provide_clusterstate(self, provider: Provider, guest: GuestCluster, probe: ProbeWorkload) -> ClusterState:
        return ClusterState(provider, guest, probe)

    @provider
    def provide_scaling(self, provider: Provider) -> Scaling:
        return Scaling(provider)

    @provider
    def provide_update(self, suite: SuiteConfig, provider: Provider) -> Update:
        return Update(provider, backoff=suite.update_backoff)

    @provider
    def provide_ipam(self, suite: SuiteConfig, factory: ClusterFactory) -> IPAM:
        return IPAM(factory, suite.host_cluster_name)

    @provider
    def provide_loadtest(self, suite: SuiteConfig, guest: GuestCluster, installer: HelmInstaller) -> LoadTest:
        return LoadTest(guest, installer, suite.common_domain)

    @provider
    def provide_basicapp(self, suite: SuiteConfig, installer: HelmInstaller) -> BasicApp:
        require(suite.app_chart, "app_chart", "[suite]")
        return BasicApp(installer, suite.app_chart, namespace=suite.app_namespace)


__all__ = ["E2EModule"]
