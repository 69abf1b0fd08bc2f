"""Tests for the guestbook and EKS cluster stack programs."""

import ipaddress

import pytest

from engine.config import Configuration
from engine.dag import GraphBuilder, NodeState, ProviderRegistry, ResourceId
from engine.errors import ConfigValidationError, DependencyError, MissingConfigError
from engine.scheduler import ResolutionEngine
from providers.cloud import CLUSTER_TYPE, VPC_TYPE, CloudProvider
from providers.kubernetes import DEPLOYMENT_TYPE, SERVICE_TYPE, KubernetesProvider
from schemas.stack_state import SECRET_MASK, ExportRecord
from stacks import PROGRAMS
from stacks.exposure import ClusterInternalExposure, LoadBalancedExposure, exposure_for


class FailingLeaderProvider(KubernetesProvider):
    """Kubernetes provider whose redis-leader Deployment cannot be created."""

    def invoke(self, resource_type, name, inputs):
        if resource_type == DEPLOYMENT_TYPE and name == "redis-leader":
            raise RuntimeError("image pull failed for redis")
        return super().invoke(resource_type, name, inputs)


def declare(program_name, values):
    program = PROGRAMS[program_name]
    builder = GraphBuilder(f"{program_name}-test")
    program.define(builder, Configuration(values, schema=program.settings_model))
    builder.build()
    return builder


async def resolve(builder, kubernetes=None, cloud=None):
    registry = ProviderRegistry()
    cloud = cloud or CloudProvider()
    registry.register("awsx", cloud)
    registry.register("eks", cloud)
    registry.register("kubernetes", kubernetes or KubernetesProvider())
    return await ResolutionEngine(builder, registry).run()


def test_exposure_strategy_follows_cluster_kind():
    assert isinstance(exposure_for(True), ClusterInternalExposure)
    assert isinstance(exposure_for(False), LoadBalancedExposure)


class TestGuestbook:
    def test_declares_one_deployment_and_service_per_tier(self):
        builder = declare("guestbook", {"isMinikube": True})

        names = sorted((node.type, node.name) for node in builder.nodes.values())
        assert names == sorted(
            (kind, tier)
            for kind in (DEPLOYMENT_TYPE, SERVICE_TYPE)
            for tier in ("redis-leader", "redis-replica", "frontend")
        )

    def test_service_depends_on_its_deployment(self):
        builder = declare("guestbook", {"isMinikube": True})

        service = ResourceId(SERVICE_TYPE, "frontend")
        assert builder.get_dependencies(service) == [ResourceId(DEPLOYMENT_TYPE, "frontend")]
        assert builder.get_dependencies(ResourceId(DEPLOYMENT_TYPE, "redis-replica")) == [
            ResourceId(SERVICE_TYPE, "redis-leader")
        ]

    @pytest.mark.asyncio
    async def test_minikube_uses_cluster_ip(self):
        builder = declare("guestbook", {"isMinikube": True})
        frontend = builder.nodes[ResourceId(SERVICE_TYPE, "frontend")]

        result = await resolve(builder)

        assert result.succeeded
        assert frontend.resolved_inputs["spec"]["type"] == "ClusterIP"
        assert builder.exports["frontendServiceType"] == "ClusterIP"
        assert builder.exports["frontendIp"].value == frontend.outputs["cluster_ip"].value

    @pytest.mark.asyncio
    async def test_cloud_uses_load_balancer(self):
        builder = declare("guestbook", {"isMinikube": "false", "frontendReplicas": 3})
        frontend = builder.nodes[ResourceId(SERVICE_TYPE, "frontend")]

        await resolve(builder)

        assert frontend.resolved_inputs["spec"]["type"] == "LoadBalancer"
        frontend_ip = builder.exports["frontendIp"].value
        assert ipaddress.ip_address(frontend_ip) in ipaddress.ip_network("203.0.113.0/24")

    @pytest.mark.asyncio
    async def test_replica_receives_leader_service_name(self):
        builder = declare("guestbook", {"isMinikube": True, "redisReplicas": 2})
        replica = builder.nodes[ResourceId(DEPLOYMENT_TYPE, "redis-replica")]

        await resolve(builder)

        spec = replica.resolved_inputs["spec"]
        env = spec["template"]["spec"]["containers"][0]["env"]
        assert {"name": "REDIS_LEADER_SERVICE_HOST", "value": "redis-leader"} in env
        assert spec["replicas"] == 2

    @pytest.mark.asyncio
    async def test_leader_failure_leaves_frontend_resolved(self):
        builder = declare("guestbook", {"isMinikube": True})

        result = await resolve(builder, kubernetes=FailingLeaderProvider())

        leader = ResourceId(DEPLOYMENT_TYPE, "redis-leader")
        assert list(result.root_failures) == [leader]
        for name in ("redis-leader", "redis-replica"):
            assert isinstance(result.errors[ResourceId(SERVICE_TYPE, name)], DependencyError)
        assert result.states[ResourceId(DEPLOYMENT_TYPE, "frontend")] is NodeState.RESOLVED
        assert result.states[ResourceId(SERVICE_TYPE, "frontend")] is NodeState.RESOLVED
        assert builder.exports["frontendIp"].is_resolved

    def test_missing_cluster_kind_is_a_construction_error(self):
        with pytest.raises(MissingConfigError, match="isMinikube"):
            declare("guestbook", {})

    def test_unknown_config_value_is_rejected(self):
        with pytest.raises(ConfigValidationError):
            declare("guestbook", {"isMinikube": True, "isMinikub": False})


class TestEksCluster:
    values = {"vpcName": "dev-vpc", "clusterName": "dev-cluster", "runningViaOctopus": False}

    @pytest.mark.asyncio
    async def test_cluster_is_placed_in_the_vpc(self):
        builder = declare("eks-cluster", self.values)
        vpc = builder.nodes[ResourceId(VPC_TYPE, "dev-vpc")]
        cluster = builder.nodes[ResourceId(CLUSTER_TYPE, "dev-cluster")]

        result = await resolve(builder)

        assert result.succeeded
        assert builder.topo_order == [vpc.id, cluster.id]
        assert cluster.resolved_inputs["vpc_id"] == vpc.outputs["id"].value
        assert cluster.resolved_inputs["subnet_ids"] == vpc.outputs["public_subnet_ids"].value

    @pytest.mark.asyncio
    async def test_kubeconfig_export_is_secret(self):
        builder = declare("eks-cluster", self.values)

        await resolve(builder)

        kubeconfig = builder.exports["kubeconfig"]
        assert kubeconfig.secret
        assert ExportRecord.from_value("kubeconfig", kubeconfig).value == SECRET_MASK

        unmasked = ExportRecord.from_value("kubeconfig", kubeconfig, mask_secrets=False)
        server = unmasked.value["clusters"][0]["cluster"]["server"]
        assert server == builder.exports["clusterEndpoint"].value

    @pytest.mark.asyncio
    async def test_octopus_message_printed_once_endpoint_is_known(self, capsys):
        builder = declare("eks-cluster", {**self.values, "runningViaOctopus": True})
        assert capsys.readouterr().out == ""

        await resolve(builder)

        endpoint = builder.exports["clusterEndpoint"].value
        assert capsys.readouterr().out == f'set_octopusvariable "k8sClusterUrl" "{endpoint}"\n'

    @pytest.mark.asyncio
    async def test_no_octopus_message_outside_octopus(self, capsys):
        builder = declare("eks-cluster", self.values)

        await resolve(builder)

        assert "set_octopusvariable" not in capsys.readouterr().out

    def test_octopus_flag_is_required(self):
        with pytest.raises(MissingConfigError, match="runningViaOctopus"):
            declare("eks-cluster", {"vpcName": "dev-vpc", "clusterName": "dev-cluster"})

    def test_cluster_name_is_required(self):
        with pytest.raises(MissingConfigError, match="clusterName"):
            declare("eks-cluster", {"vpcName": "dev-vpc", "runningViaOctopus": False})


@pytest.mark.parametrize("program_name, key", [("guestbook", "isMinikube"), ("eks-cluster", "runningViaOctopus")])
@pytest.mark.parametrize("value", ["yes", "1", 1, "on"])
def test_settings_reject_booleans_that_require_boolean_rejects(program_name, key, value):
    program = PROGRAMS[program_name]

    with pytest.raises(ConfigValidationError):
        Configuration({key: value}, schema=program.settings_model)
    with pytest.raises(ConfigValidationError):
        Configuration({key: value}).require_boolean(key)


def test_settings_accept_boolean_strings():
    config = Configuration({"isMinikube": "False"}, schema=PROGRAMS["guestbook"].settings_model)
    assert config.settings.is_minikube is False
    assert config.require_boolean("isMinikube") is False
