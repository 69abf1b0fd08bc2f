"""
Guestbook Stack

Multi-tier guestbook application: a redis leader, redis replicas, and a PHP
frontend. The frontend service type depends on whether the target is a
local minikube cluster or a cloud cluster.
"""

import logging
from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field

from engine.config import ConfigBool, Configuration
from engine.dag import Declaration, GraphBuilder
from engine.runtime.program import StackProgram
from providers.kubernetes import DEPLOYMENT_TYPE, SERVICE_TYPE
from stacks.exposure import exposure_for

logger = logging.getLogger(__name__)


class GuestbookSettings(BaseModel):
    """Recognized guestbook configuration values"""
    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    is_minikube: Optional[ConfigBool] = Field(default=None, alias="isMinikube")
    frontend_replicas: int = Field(default=3, ge=1, alias="frontendReplicas")
    redis_replicas: int = Field(default=1, ge=1, alias="redisReplicas")


def declare_app(
    builder: GraphBuilder,
    name: str,
    image: str,
    port: int,
    replicas: int = 1,
    env: Optional[List[Dict[str, Any]]] = None,
    service_type: str = "ClusterIP",
) -> Tuple[Declaration, Declaration]:
    """
    Declare a Deployment and the Service that fronts it.

    The Service selects pods through the Deployment's labels output, so it
    always resolves after the Deployment.
    """
    labels = {"app": name}
    container: Dict[str, Any] = {
        "name": name,
        "image": image,
        "resources": {"requests": {"cpu": "100m", "memory": "100Mi"}},
        "ports": [{"container_port": port}],
    }
    if env:
        container["env"] = env

    deployment = builder.declare(
        DEPLOYMENT_TYPE,
        name,
        inputs={
            "metadata": {"name": name, "labels": labels},
            "spec": {
                "replicas": replicas,
                "selector": {"match_labels": labels},
                "template": {
                    "metadata": {"labels": labels},
                    "spec": {"containers": [container]},
                },
            },
        },
        outputs=["name", "labels", "replicas", "ready_replicas"],
    )

    service = builder.declare(
        SERVICE_TYPE,
        name,
        inputs={
            "metadata": {"name": name, "labels": deployment["labels"]},
            "spec": {
                "type": service_type,
                "ports": [{"port": port, "target_port": port}],
                "selector": deployment["labels"],
            },
        },
        outputs=["name", "type", "cluster_ip", "load_balancer_ip"],
    )

    return deployment, service


def define(builder: GraphBuilder, config: Configuration) -> None:
    """Declare the guestbook topology."""
    settings: GuestbookSettings = config.settings or GuestbookSettings()
    exposure = exposure_for(config.require_boolean("isMinikube"))

    logger.info(f"Guestbook frontend exposure: {exposure.service_type}")

    _, leader_service = declare_app(builder, "redis-leader", "redis", 6379)

    declare_app(
        builder,
        "redis-replica",
        "pulumi/guestbook-redis-replica",
        6379,
        replicas=settings.redis_replicas,
        env=[
            {"name": "GET_HOSTS_FROM", "value": "env"},
            {"name": "REDIS_LEADER_SERVICE_HOST", "value": leader_service["name"]},
        ],
    )

    _, frontend_service = declare_app(
        builder,
        "frontend",
        "pulumi/guestbook-php-redis",
        80,
        replicas=settings.frontend_replicas,
        env=[{"name": "GET_HOSTS_FROM", "value": "dns"}],
        service_type=exposure.service_type,
    )

    builder.export("frontendIp", exposure.address(frontend_service))
    builder.export("frontendServiceType", exposure.service_type)


program = StackProgram(name="guestbook", define=define, settings_model=GuestbookSettings)
