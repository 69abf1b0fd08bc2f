"""
Kubernetes Provider

Deployment and Service resources.
"""

from .provider import DEPLOYMENT_TYPE, SERVICE_TYPE, KubernetesProvider

__all__ = [
    "DEPLOYMENT_TYPE",
    "SERVICE_TYPE",
    "KubernetesProvider",
]
