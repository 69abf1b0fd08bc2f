"""
Simulated Cloud Provider

Provisions VPCs and managed Kubernetes clusters in memory.
Handles the "awsx" and "eks" packages.
"""

import logging
from typing import Any, Dict, Optional

from providers.base import InMemoryProvider, require_inputs, stable_token

logger = logging.getLogger(__name__)

VPC_TYPE = "awsx:ec2:Vpc"
CLUSTER_TYPE = "eks:index:Cluster"

AVAILABILITY_ZONES = ("a", "b")


class CloudProvider(InMemoryProvider):
    """
    In-memory stand-in for a cloud account.

    Resource types:
    - awsx:ec2:Vpc       -> id, public_subnet_ids, private_subnet_ids
    - eks:index:Cluster  -> name, endpoint, kubeconfig, certificate_authority

    Generated identifiers are derived from the logical name, so repeated runs
    produce the same values. An update keeps the identifiers of the original.
    """

    def __init__(self, region: str = "us-west-2", delay: float = 0.0):
        super().__init__(delay=delay)
        self.region = region
        self.handles(VPC_TYPE, self._vpc)
        self.handles(CLUSTER_TYPE, self._cluster)

    def _vpc(self, name: str, inputs: Dict[str, Any], previous: Optional[Dict[str, Any]]) -> Dict[str, Any]:
        subnets = inputs.get("subnets") or [{"type": "public"}, {"type": "private"}]
        for subnet in subnets:
            if subnet.get("type") not in ("public", "private"):
                raise ValueError(f"{name}: unsupported subnet type {subnet.get('type')!r}")

        vpc_id = previous["id"] if previous else f"vpc-{stable_token(self.region, name, length=17)}"

        public, private = [], []
        for subnet in subnets:
            for zone in AVAILABILITY_ZONES:
                subnet_id = f"subnet-{stable_token(vpc_id, subnet['type'], zone, length=17)}"
                (public if subnet["type"] == "public" else private).append(subnet_id)

        return {
            "id": vpc_id,
            "cidr_block": inputs.get("cidr_block", "10.0.0.0/16"),
            "public_subnet_ids": public,
            "private_subnet_ids": private,
        }

    def _cluster(self, name: str, inputs: Dict[str, Any], previous: Optional[Dict[str, Any]]) -> Dict[str, Any]:
        require_inputs(name, inputs, "vpc_id", "subnet_ids")

        if not inputs["subnet_ids"]:
            raise ValueError(f"{name}: a cluster needs at least one subnet")

        desired = inputs.get("desired_capacity", 2)
        min_size = inputs.get("min_size", 1)
        max_size = inputs.get("max_size", 2)
        if not min_size <= desired <= max_size:
            raise ValueError(
                f"{name}: node group sizing must satisfy min_size <= desired_capacity <= max_size, "
                f"got {min_size} <= {desired} <= {max_size}"
            )

        if previous:
            endpoint = previous["endpoint"]
            certificate = previous["certificate_authority"]
        else:
            token = stable_token(self.region, inputs["vpc_id"], name, length=32).upper()
            endpoint = f"https://{token}.gr7.{self.region}.eks.amazonaws.com"
            certificate = stable_token("ca", name, length=40)

        kubeconfig = {
            "apiVersion": "v1",
            "kind": "Config",
            "clusters": [{
                "name": name,
                "cluster": {"server": endpoint, "certificate-authority-data": certificate},
            }],
            "contexts": [{"name": "aws", "context": {"cluster": name, "user": "aws"}}],
            "current-context": "aws",
            "users": [{
                "name": "aws",
                "user": {"exec": {
                    "apiVersion": "client.authentication.k8s.io/v1beta1",
                    "command": "aws",
                    "args": ["eks", "get-token", "--cluster-name", name],
                }},
            }],
        }

        logger.debug(
            f"Cluster {name}: {desired} nodes ({min_size}-{max_size}), "
            f"storage classes {inputs.get('storage_classes')}, "
            f"dashboard={inputs.get('deploy_dashboard', False)}"
        )

        return {
            "name": name,
            "endpoint": endpoint,
            "kubeconfig": kubeconfig,
            "certificate_authority": certificate,
        }
