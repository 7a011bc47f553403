"""Client machinery: Kubernetes, HTTP and Helm."""

from .helm import HelmError, HelmInstaller
from .http import HttpError, JsonClient, TokenAuth
from .k8s import CustomResource, KubeClient

__all__ = [
    "HelmError",
    "HelmInstaller",
    "HttpError",
    "JsonClient",
    "TokenAuth",
    "CustomResource",
    "KubeClient",
]
