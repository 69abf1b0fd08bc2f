"""Tests for graph construction, edge derivation and cycle detection."""

import pytest

from engine.dag import Edge, GraphBuilder, ResourceId
from engine.errors import ConstructionError, CycleError

VPC = "test:net:Vpc"
CLUSTER = "test:k8s:Cluster"
APP = "test:k8s:App"


def test_declaration_returns_node_and_edges(builder):
    """Edges are an explicit result of the declaration step."""
    vpc = builder.declare(VPC, "main", outputs=["id"])
    cluster = builder.declare(CLUSTER, "prod", inputs={"vpc_id": vpc["id"]}, outputs=["endpoint"])

    assert vpc.edges == []
    assert cluster.edges == [
        Edge(dependency=ResourceId(VPC, "main"), dependent=ResourceId(CLUSTER, "prod"), via="vpc_id")
    ]
    assert builder.edges == cluster.edges


def test_declaration_returns_pending_outputs(builder):
    cluster = builder.declare(CLUSTER, "prod", outputs=["endpoint", "kubeconfig"])
    assert cluster["endpoint"].is_pending
    assert cluster.node.outputs["kubeconfig"].is_pending


def test_nested_and_derived_references_induce_edges(builder):
    vpc = builder.declare(VPC, "main", outputs=["id"])
    cluster = builder.declare(CLUSTER, "prod", outputs=["endpoint"])
    app = builder.declare(
        APP,
        "web",
        inputs={
            "env": [{"name": "URL", "value": cluster["endpoint"].map(lambda e: e + "/api")}],
            "network": {"vpc": vpc["id"]},
        },
    )

    deps = {(e.dependency.name, e.via) for e in app.edges}
    assert deps == {("prod", "env[0].value"), ("main", "network.vpc")}


def test_unknown_output_name_is_rejected(builder):
    vpc = builder.declare(VPC, "main", outputs=["id"])
    with pytest.raises(ValueError, match="no output 'arn'"):
        vpc["arn"]


def test_duplicate_identity_is_a_construction_error(builder):
    builder.declare(VPC, "main")
    with pytest.raises(ConstructionError, match="Duplicate resource"):
        builder.declare(VPC, "main")


def test_same_name_with_different_type_is_allowed(builder):
    builder.declare(APP, "frontend")
    builder.declare(CLUSTER, "frontend")
    builder.build()
    assert len(builder.nodes) == 2


def test_secret_outputs_must_be_declared(builder):
    with pytest.raises(ConstructionError, match="not declared outputs"):
        builder.declare(CLUSTER, "prod", outputs=["endpoint"], secret_outputs=["kubeconfig"])


def test_topological_order_puts_dependencies_first(builder):
    """Ties keep declaration order."""
    app = builder.declare(APP, "standalone")
    vpc = builder.declare(VPC, "main", outputs=["id"])
    cluster = builder.declare(CLUSTER, "prod", inputs={"vpc_id": vpc["id"]}, outputs=["endpoint"])
    web = builder.declare(APP, "web", inputs={"url": cluster["endpoint"]})

    builder.build()

    assert builder.topo_order == [app.id, vpc.id, cluster.id, web.id]
    assert builder.get_dependencies(web.id) == [cluster.id]
    assert builder.get_dependents(vpc.id) == {cluster.id}
    assert builder.get_all_transitive_dependents(vpc.id) == {cluster.id, web.id}


def test_depends_on_accepts_forward_references(builder):
    first = builder.declare(APP, "first", depends_on=[f"{APP}::second"])
    second = builder.declare(APP, "second")

    builder.build()

    assert first.edges[0].via == "depends_on"
    assert builder.topo_order == [second.id, first.id]


def test_cycle_is_reported_with_participating_nodes(builder):
    builder.declare(APP, "a", depends_on=[f"{APP}::c"])
    builder.declare(APP, "b", depends_on=[f"{APP}::a"])
    builder.declare(APP, "c", depends_on=[f"{APP}::b"])

    with pytest.raises(CycleError) as excinfo:
        builder.build()

    names = {node.name for node in excinfo.value.cycle}
    assert names == {"a", "b", "c"}
    assert f"{APP}::a" in str(excinfo.value)
    assert isinstance(excinfo.value, ConstructionError)


def test_self_dependency_is_a_cycle(builder):
    builder.declare(APP, "loop", depends_on=[f"{APP}::loop"])
    with pytest.raises(CycleError):
        builder.build()


def test_unknown_dependency_is_a_construction_error(builder):
    builder.declare(APP, "web", depends_on=[f"{APP}::missing"])
    with pytest.raises(ConstructionError, match="unknown resource"):
        builder.build()


def test_reference_to_another_graph_is_rejected(builder):
    other = GraphBuilder("other")
    foreign = other.declare(VPC, "elsewhere", outputs=["id"])
    builder.declare(CLUSTER, "prod", inputs={"vpc_id": foreign["id"]})

    with pytest.raises(ConstructionError, match="unknown resource"):
        builder.build()


def test_malformed_dependency_reference(builder):
    with pytest.raises(ConstructionError, match="expected 'type::name'"):
        builder.declare(APP, "web", depends_on=["just-a-name"])


def test_builder_is_sealed_after_build(builder):
    builder.declare(APP, "web")
    builder.build()

    with pytest.raises(ConstructionError, match="sealed"):
        builder.declare(APP, "late")
    with pytest.raises(ConstructionError, match="sealed"):
        builder.export("late", 1)


def test_exports_are_available_after_declaration(builder):
    cluster = builder.declare(CLUSTER, "prod", outputs=["endpoint"])
    builder.export("endpoint", cluster["endpoint"])
    builder.export("region", "us-west-2")

    assert builder.exports["endpoint"].is_pending
    assert builder.exports["region"] == "us-west-2"

    with pytest.raises(ConstructionError, match="Duplicate export"):
        builder.export("region", "eu-west-1")


def test_resource_id_parse_and_format():
    rid = ResourceId.parse("kubernetes:core/v1:Service::frontend")
    assert rid == ResourceId("kubernetes:core/v1:Service", "frontend")
    assert rid.package == "kubernetes"
    assert str(rid) == "kubernetes:core/v1:Service::frontend"
