"""
Service Exposure Strategies

How a frontend service is reached: cluster-internal addressing on a
constrained local cluster, or an externally routable load balancer on a
cloud cluster.
"""

from typing import Protocol

from engine.composition import choose
from engine.dag import Declaration
from engine.outputs import Output


class ServiceExposure(Protocol):
    """Selects a service type and the output that addresses it."""

    service_type: str

    def address(self, service: Declaration) -> Output:
        ...


class ClusterInternalExposure:
    """ClusterIP service, reachable from inside the cluster only."""

    service_type = "ClusterIP"

    def address(self, service: Declaration) -> Output:
        return service["cluster_ip"]


class LoadBalancedExposure:
    """LoadBalancer service with an externally routable address."""

    service_type = "LoadBalancer"

    def address(self, service: Declaration) -> Output:
        return service["load_balancer_ip"]


def exposure_for(is_minikube: bool) -> ServiceExposure:
    """Minikube has no load balancer integration, so stay cluster-internal there."""
    return choose(is_minikube, ClusterInternalExposure, LoadBalancedExposure)
