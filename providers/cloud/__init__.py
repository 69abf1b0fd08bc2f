"""
Cloud Provider

VPC and managed Kubernetes cluster resources.
"""

from .provider import CLUSTER_TYPE, VPC_TYPE, CloudProvider

__all__ = [
    "CLUSTER_TYPE",
    "VPC_TYPE",
    "CloudProvider",
]
