"""Provider configurations.

Immutable dataclasses selected at configuration time; ``create_provider``
in ``e2etests.providers.registry`` turns one into a ``Provider``.

Example:
    >>> from e2etests.providers.config import KVM
    >>> config = KVM(cluster_id="ci-3f2a1")
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol, runtime_checkable

from e2etests.errors import require


@runtime_checkable
class ProviderConfig(Protocol):
    cluster_id: str

    @property
    def type(self) -> str: ...

    def validate(self) -> None:
        require(self.cluster_id, "cluster_id", type(self).__name__)


@dataclass(frozen=True, slots=True)
class AWS(ProviderConfig):
    """AWS guest cluster.

    Args:
        cluster_id: Guest cluster ID, also the value of the cluster tag.
        region: Region the master instance runs in.
        master_instance_type: Instance type patched in to force master replacement.
    """

    cluster_id: str
    region: str = "eu-central-1"
    master_instance_type: str = "m5.xlarge"

    @property
    def type(self) -> str: return "aws"

    def validate(self) -> None:
        ProviderConfig.validate(self)
        require(self.region, "region", "AWS")
        require(self.master_instance_type, "master_instance_type", "AWS")


@dataclass(frozen=True, slots=True)
class Azure(ProviderConfig):
    """Azure guest cluster. The resource group is named after the cluster ID.

    Args:
        subscription_id: Subscription holding the cluster's resource group.
        master_vm_size: VM size patched in to force master replacement.
    """

    cluster_id: str
    subscription_id: str = ""
    master_vm_size: str = "Standard_A2"

    @property
    def type(self) -> str: return "azure"

    def validate(self) -> None:
        ProviderConfig.validate(self)
        require(self.subscription_id, "subscription_id", "Azure")
        require(self.master_vm_size, "master_vm_size", "Azure")


@dataclass(frozen=True, slots=True)
class KVM(ProviderConfig):
    """KVM-on-Kubernetes guest cluster. Nodes run as pods in namespace ``cluster_id``."""

    cluster_id: str
    master_selector: str = "app=master"

    @property
    def type(self) -> str: return "kvm"
