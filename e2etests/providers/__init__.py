"""Providers: per-infrastructure mutations of a guest cluster.

Public API:
    Provider        - Capability protocol implemented by every variant
    Waiter          - Node-readiness wait the providers delegate to
    Patch           - One JSON Patch operation
    MutationAction  - The mutations a provider can issue
    AWS, Azure, KVM - Provider configurations
    create_provider - Build the provider for a configuration
"""

from e2etests.providers.config import AWS, KVM, Azure, ProviderConfig
from e2etests.providers.provider import MutationAction, Patch, Provider, Waiter
from e2etests.providers.registry import PROVIDER_TYPES, create_provider

__all__ = [
    "AWS",
    "Azure",
    "KVM",
    "ProviderConfig",
    "Provider",
    "Waiter",
    "Patch",
    "MutationAction",
    "PROVIDER_TYPES",
    "create_provider",
]
