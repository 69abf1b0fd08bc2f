"""
Simulated Kubernetes Provider

Schedules Deployments and Services onto an in-memory cluster.
Handles the "kubernetes" package.
"""

import ipaddress
import logging
from typing import Any, Dict, Optional

from providers.base import InMemoryProvider, require_inputs, stable_token

logger = logging.getLogger(__name__)

DEPLOYMENT_TYPE = "kubernetes:apps/v1:Deployment"
SERVICE_TYPE = "kubernetes:core/v1:Service"

SERVICE_TYPES = ("ClusterIP", "NodePort", "LoadBalancer")

_CLUSTER_NETWORK = ipaddress.ip_network("10.96.0.0/16")
_EXTERNAL_NETWORK = ipaddress.ip_network("203.0.113.0/24")


class KubernetesProvider(InMemoryProvider):
    """
    In-memory stand-in for a Kubernetes API server.

    Resource types:
    - kubernetes:apps/v1:Deployment -> name, labels, replicas, ready_replicas
    - kubernetes:core/v1:Service    -> name, type, cluster_ip, load_balancer_ip

    Only LoadBalancer services receive an externally routable address;
    load_balancer_ip is None for every other service type.
    """

    def __init__(self, delay: float = 0.0):
        super().__init__(delay=delay)
        self.handles(DEPLOYMENT_TYPE, self._deployment)
        self.handles(SERVICE_TYPE, self._service)

    def _deployment(self, name: str, inputs: Dict[str, Any], previous: Optional[Dict[str, Any]]) -> Dict[str, Any]:
        require_inputs(name, inputs, "spec")
        spec = inputs["spec"]

        selector = (spec.get("selector") or {}).get("match_labels") or {}
        template_labels = ((spec.get("template") or {}).get("metadata") or {}).get("labels") or {}
        if not selector:
            raise ValueError(f"{name}: spec.selector.match_labels is required")

        mismatched = {k: v for k, v in selector.items() if template_labels.get(k) != v}
        if mismatched:
            raise ValueError(
                f"{name}: selector {selector} does not match template labels {template_labels}"
            )

        containers = ((spec.get("template") or {}).get("spec") or {}).get("containers") or []
        if not containers:
            raise ValueError(f"{name}: pod template must define at least one container")

        replicas = spec.get("replicas", 1)
        metadata = inputs.get("metadata") or {}

        return {
            "name": metadata.get("name", name),
            "labels": dict(template_labels),
            "replicas": replicas,
            "ready_replicas": replicas,
        }

    def _service(self, name: str, inputs: Dict[str, Any], previous: Optional[Dict[str, Any]]) -> Dict[str, Any]:
        require_inputs(name, inputs, "spec")
        spec = inputs["spec"]

        service_type = spec.get("type", "ClusterIP")
        if service_type not in SERVICE_TYPES:
            raise ValueError(f"{name}: unsupported service type {service_type!r}")
        if not spec.get("ports"):
            raise ValueError(f"{name}: a service needs at least one port")

        metadata = inputs.get("metadata") or {}
        service_name = metadata.get("name", name)

        cluster_ip = previous["cluster_ip"] if previous else _address(_CLUSTER_NETWORK, "cluster", service_name)

        load_balancer_ip = None
        if service_type == "LoadBalancer":
            if previous and previous.get("load_balancer_ip"):
                load_balancer_ip = previous["load_balancer_ip"]
            else:
                load_balancer_ip = _address(_EXTERNAL_NETWORK, "external", service_name)

        return {
            "name": service_name,
            "type": service_type,
            "cluster_ip": cluster_ip,
            "load_balancer_ip": load_balancer_ip,
        }


def _address(network: ipaddress.IPv4Network, *parts: str) -> str:
    # Skip network and broadcast addresses
    offset = int(stable_token(*parts), 16) % (network.num_addresses - 2) + 1
    return str(network.network_address + offset)
