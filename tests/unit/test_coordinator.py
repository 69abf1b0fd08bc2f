"""Tests for StackCoordinator, NATS reporting and the status API."""

import asyncio
import json
from unittest.mock import AsyncMock

import pytest
from fastapi.testclient import TestClient

from engine.dag import ProviderRegistry
from engine.errors import ConstructionError
from engine.runtime import StackCoordinator
from providers.cloud import CloudProvider
from providers.kubernetes import KubernetesProvider
from reporting.api import create_app
from schemas.stack_state import NodeSnapshot
from stacks import PROGRAMS


@pytest.fixture
def stack_registry():
    registry = ProviderRegistry()
    cloud = CloudProvider()
    registry.register("awsx", cloud)
    registry.register("eks", cloud)
    registry.register("kubernetes", KubernetesProvider())
    return registry


@pytest.fixture
def coordinator(config_dir, stack_registry):
    return StackCoordinator(
        stack="guestbook-local",
        config_dir=config_dir,
        registry=stack_registry,
        programs=PROGRAMS,
    )


def test_graph_is_built_during_construction(coordinator):
    assert coordinator.builder.is_built
    assert coordinator.engine.parallel == 4
    assert len(coordinator.builder.nodes) == 6


def test_exports_are_pending_before_resolution(coordinator):
    exports = coordinator.exports()

    assert exports["frontendIp"].status == "pending"
    assert exports["frontendServiceType"].status == "resolved"
    assert exports["frontendServiceType"].value == "ClusterIP"


@pytest.mark.asyncio
async def test_run_resolves_every_node(coordinator):
    result = await coordinator.run()

    assert result.succeeded
    assert coordinator.result is result
    assert coordinator.exports()["frontendIp"].status == "resolved"

    snapshots = coordinator.snapshots()
    assert [s.state for s in snapshots] == ["resolved"] * 6
    assert [f"{s.type}::{s.name}" for s in snapshots] == [
        str(node_id) for node_id in coordinator.builder.topo_order
    ]


@pytest.mark.asyncio
async def test_metrics(coordinator):
    await coordinator.run()
    metrics = coordinator.get_metrics()

    assert metrics["stack"] == "guestbook-local"
    assert metrics["program"] == "guestbook"
    assert metrics["nodes"] == 6
    assert metrics["edges"] == 7
    assert metrics["node_states"] == {"resolved": 6}
    assert metrics["provider_invocations"] == 6


@pytest.mark.asyncio
async def test_results_are_published_when_reporting_enabled(config_dir, stack_registry):
    nats = AsyncMock()
    coordinator = StackCoordinator(
        stack="guestbook-cloud",
        config_dir=config_dir,
        registry=stack_registry,
        programs=PROGRAMS,
        nats_client=nats,
    )

    await coordinator.run()

    published = {call.args[0]: call.args[1] for call in nats.publish_json.await_args_list}
    assert len(published) == 7

    node_topic = "stacks.guestbook-cloud.nodes.kubernetes_core_v1_Service.frontend"
    snapshot = NodeSnapshot.from_json(published[node_topic])
    assert snapshot.state == "resolved"
    assert snapshot.outputs["type"] == "LoadBalancer"

    exports = json.loads(published["stacks.guestbook-cloud.exports"])
    assert exports["frontendServiceType"]["value"] == "LoadBalancer"


@pytest.mark.asyncio
async def test_nothing_published_when_reporting_disabled(config_dir, stack_registry):
    nats = AsyncMock()
    coordinator = StackCoordinator(
        stack="guestbook-local",
        config_dir=config_dir,
        registry=stack_registry,
        programs=PROGRAMS,
        nats_client=nats,
    )

    await coordinator.run()

    nats.publish_json.assert_not_awaited()


@pytest.mark.asyncio
async def test_publish_failure_does_not_fail_the_run(config_dir, stack_registry):
    nats = AsyncMock()
    nats.publish_json.side_effect = RuntimeError("NATS client not connected")
    coordinator = StackCoordinator(
        stack="guestbook-cloud",
        config_dir=config_dir,
        registry=stack_registry,
        programs=PROGRAMS,
        nats_client=nats,
    )

    result = await coordinator.run()

    assert result.succeeded


def test_unknown_program_is_rejected(tmp_path, stack_registry):
    stack_dir = tmp_path / "stacks" / "mystery"
    stack_dir.mkdir(parents=True)
    (stack_dir / "stack.yaml").write_text("stack: mystery\nprogram: serverless\n")

    with pytest.raises(ConstructionError, match="Unknown program 'serverless'"):
        StackCoordinator(
            stack="mystery",
            config_dir=tmp_path,
            registry=stack_registry,
            programs=PROGRAMS,
        )


def test_eks_stack_from_split_config(config_dir, stack_registry, capsys):
    coordinator = StackCoordinator(
        stack="eks-dev",
        config_dir=config_dir,
        registry=stack_registry,
        programs=PROGRAMS,
    )

    result = asyncio.run(coordinator.run())

    assert result.succeeded
    exports = coordinator.exports()
    assert exports["kubeconfig"].value == "[secret]"
    assert exports["clusterEndpoint"].value.startswith("https://")
    assert "set_octopusvariable" not in capsys.readouterr().out


class TestStatusApi:
    @pytest.fixture
    def client(self, coordinator):
        asyncio.run(coordinator.run())
        return TestClient(create_app(coordinator))

    def test_root(self, client):
        response = client.get("/")
        assert response.status_code == 200
        assert response.json()["status"] == "running"

    def test_health(self, client):
        body = client.get("/health").json()
        assert body["stack"] == "guestbook-local"
        assert body["resolved"] is True
        assert body["node_states"] == {"resolved": 6}

    def test_nodes(self, client):
        body = client.get("/nodes").json()
        assert body["count"] == 6
        assert {node["state"] for node in body["nodes"]} == {"resolved"}

    def test_nodes_filtered_by_state(self, client):
        assert client.get("/nodes", params={"state": "failed"}).json()["count"] == 0

    def test_invalid_state_filter(self, client):
        response = client.get("/nodes", params={"state": "exploded"})
        assert response.status_code == 400

    def test_exports(self, client):
        body = client.get("/exports").json()
        assert body["stack"] == "guestbook-local"
        assert body["exports"]["frontendServiceType"]["value"] == "ClusterIP"
        assert body["exports"]["frontendIp"]["status"] == "resolved"
