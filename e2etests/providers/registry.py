"""Provider registry.

Selects the provider variant for a configuration object. Variants import
their cloud SDKs lazily, so only the SDK of the selected provider is loaded.
"""

from __future__ import annotations

from loguru import logger

from e2etests.errors import InvalidConfigError
from e2etests.infra.k8s import KubeClient
from e2etests.versions import VersionRegistry

from .config import AWS, KVM, Azure, ProviderConfig
from .provider import Provider, Waiter

log = logger.bind(component="registry")

PROVIDER_TYPES: dict[str, type[ProviderConfig]] = {
    "aws": AWS,
    "azure": Azure,
    "kvm": KVM,
}


def create_provider(
    config: ProviderConfig,
    *,
    host: KubeClient,
    registry: VersionRegistry,
    waiter: Waiter,
) -> Provider:
    """Create the Provider for a configuration object."""
    log.debug("Creating provider for config={config_type}", config_type=type(config).__name__)

    match config:
        case AWS():
            from .aws import AWSProvider
            return AWSProvider(config, host, registry, waiter)
        case Azure():
            from .azure import AzureProvider
            return AzureProvider(config, host, registry, waiter)
        case KVM():
            from .kvm import KVMProvider
            return KVMProvider(config, host, registry, waiter)
        case _:
            raise InvalidConfigError(
                f"No provider registered for {type(config).__name__}. "
                f"Available providers: {', '.join(PROVIDER_TYPES)}"
            )
