"""
EKS Cluster Stack

A VPC with public subnets and a managed Kubernetes cluster inside it.
When running under Octopus Deploy, the cluster URL is emitted as an Octopus
service message once the endpoint is known.
"""

import logging
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from engine.composition import when
from engine.config import ConfigBool, Configuration
from engine.dag import GraphBuilder
from engine.outputs import Output, interpolate
from engine.runtime.program import StackProgram
from providers.cloud import CLUSTER_TYPE, VPC_TYPE

logger = logging.getLogger(__name__)


class EksClusterSettings(BaseModel):
    """Recognized cluster configuration values"""
    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    vpc_name: Optional[str] = Field(default=None, alias="vpcName")
    cluster_name: Optional[str] = Field(default=None, alias="clusterName")
    running_via_octopus: Optional[ConfigBool] = Field(default=None, alias="runningViaOctopus")
    desired_capacity: int = Field(default=2, ge=1, alias="desiredCapacity")
    min_size: int = Field(default=1, ge=1, alias="minSize")
    max_size: int = Field(default=2, ge=1, alias="maxSize")
    storage_classes: str = Field(default="gp2", alias="storageClasses")


def octopus_variable(name: str, value: Output) -> Output:
    """
    Print an Octopus "set variable" service message once value resolves.

    Returns:
        Output of the printed message line
    """
    message = interpolate('set_octopusvariable "{name}" "{value}"', name=name, value=value)

    def _emit(line: str) -> str:
        print(line, flush=True)
        return line

    return message.map(_emit)


def define(builder: GraphBuilder, config: Configuration) -> None:
    """Declare the VPC and cluster."""
    settings: EksClusterSettings = config.settings or EksClusterSettings()
    vpc_name = config.require("vpcName")
    cluster_name = config.require("clusterName")

    vpc = builder.declare(
        VPC_TYPE,
        vpc_name,
        inputs={"subnets": [{"type": "public"}]},
        outputs=["id", "public_subnet_ids"],
    )

    cluster = builder.declare(
        CLUSTER_TYPE,
        cluster_name,
        inputs={
            "vpc_id": vpc["id"],
            "subnet_ids": vpc["public_subnet_ids"],
            "desired_capacity": settings.desired_capacity,
            "min_size": settings.min_size,
            "max_size": settings.max_size,
            "storage_classes": settings.storage_classes,
            "deploy_dashboard": False,
        },
        outputs=["name", "endpoint", "kubeconfig"],
        secret_outputs=["kubeconfig"],
    )

    when(
        config.require_boolean("runningViaOctopus"),
        lambda: octopus_variable("k8sClusterUrl", cluster["endpoint"]),
    )

    builder.export("clusterEndpoint", cluster["endpoint"])
    builder.export("kubeconfig", cluster["kubeconfig"])


program = StackProgram(name="eks-cluster", define=define, settings_model=EksClusterSettings)
