"""
Resource Node Model

Defines the core data structures and protocols for resource graph nodes.
Each node is a declared unit of infrastructure with inputs (literals or
Output references), a set of produced Outputs, and a provider binding
resolved through its type's package prefix.
"""

import hashlib
import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, FrozenSet, List, Optional, Protocol

from ..outputs import Output


class NodeState(Enum):
    """Resolution state of a node within one pass"""
    UNSCHEDULED = "unscheduled"
    WAITING = "waiting"
    SCHEDULED = "scheduled"
    RESOLVED = "resolved"
    FAILED = "failed"


TERMINAL_STATES = frozenset({NodeState.RESOLVED, NodeState.FAILED})


@dataclass(frozen=True, order=True)
class ResourceId:
    """
    Identity of a node: (type, logical name), unique within a graph.

    Examples:
        - ResourceId(type="eks:index:Cluster", name="prod-cluster")
        - ResourceId.parse("kubernetes:core/v1:Service::frontend")
    """
    type: str
    name: str

    @property
    def package(self) -> str:
        """Provider package, e.g. "kubernetes" for "kubernetes:apps/v1:Deployment"."""
        return self.type.split(":", 1)[0]

    @classmethod
    def parse(cls, value: str) -> "ResourceId":
        resource_type, sep, name = value.rpartition("::")
        if not sep or not resource_type or not name:
            raise ValueError(f"Invalid resource reference '{value}', expected 'type::name'")
        return cls(type=resource_type, name=name)

    def __str__(self) -> str:
        return f"{self.type}::{self.name}"


@dataclass(frozen=True)
class Edge:
    """
    Dependency edge: dependent must wait for dependency.

    `via` is the input path that carried the Output reference, or
    "depends_on" for explicit ordering.
    """
    dependency: ResourceId
    dependent: ResourceId
    via: str


@dataclass(eq=False)
class ResourceNode:
    """
    A declared resource.

    Attributes:
        type: Resource type token (e.g., "awsx:ec2:Vpc", "kubernetes:core/v1:Service")
        name: Logical name, unique per type within a graph
        inputs: Input properties; values may be literals or nested Outputs
        output_names: Names of the outputs the provider must return
        depends_on: Nodes to wait for even without data flow
        secret_outputs: Output names whose values are masked in reports
    """
    type: str
    name: str
    inputs: Dict[str, Any]
    output_names: List[str]
    depends_on: List[ResourceId] = field(default_factory=list)
    secret_outputs: FrozenSet[str] = frozenset()

    outputs: Dict[str, Output] = field(init=False)
    completion: Output = field(init=False)
    state: NodeState = field(default=NodeState.UNSCHEDULED, init=False)
    error: Optional[BaseException] = field(default=None, init=False)
    resolved_inputs: Optional[Dict[str, Any]] = field(default=None, init=False)
    fingerprint: Optional[str] = field(default=None, init=False)

    def __post_init__(self):
        node_id = self.id
        self.outputs = {
            name: Output(
                [node_id],
                secret=name in self.secret_outputs,
                label=f"{node_id}.{name}",
            )
            for name in self.output_names
        }
        # Settles when the node reaches a terminal state; depends_on waits on it
        self.completion = Output([node_id], label=f"{node_id}.<completion>")

    @property
    def id(self) -> ResourceId:
        return ResourceId(type=self.type, name=self.name)

    @property
    def is_terminal(self) -> bool:
        return self.state in TERMINAL_STATES

    def output(self, name: str) -> Output:
        """
        Get a declared output by name.

        Raises:
            ValueError: If the node does not declare this output
        """
        try:
            return self.outputs[name]
        except KeyError:
            available = ", ".join(self.output_names)
            raise ValueError(
                f"{self.id} has no output '{name}'. "
                f"Available outputs: {available if available else 'none'}"
            )

    __getitem__ = output


@dataclass
class Declaration:
    """
    Result of a builder declaration step: the node and the edges it induced.
    """
    node: ResourceNode
    edges: List[Edge]

    @property
    def id(self) -> ResourceId:
        return self.node.id

    def output(self, name: str) -> Output:
        return self.node.output(name)

    __getitem__ = output


class Provider(Protocol):
    """
    Protocol for resource providers.

    A provider performs the actual creation or update of a resource given
    fully resolved inputs and returns the produced attributes. The same
    (resource_type, name) with identical inputs should be treated as a no-op
    update; fingerprint() gives providers a stable digest to decide that.

    invoke() may be a plain function (run in a worker thread) or a coroutine
    function (awaited on the engine loop).

    Example implementation:
        class EchoProvider:
            def invoke(self, resource_type, name, inputs):
                return {"id": f"{name}-id", **inputs}
    """

    def invoke(self, resource_type: str, name: str, inputs: Dict[str, Any]) -> Dict[str, Any]:
        """
        Create or update a resource.

        Args:
            resource_type: Type token of the node
            name: Logical name of the node
            inputs: Fully resolved input properties

        Returns:
            Mapping containing every output name the node declared
        """
        ...


def fingerprint(inputs: Dict[str, Any]) -> str:
    """Stable sha256 digest of resolved inputs."""
    canonical = json.dumps(inputs, sort_keys=True, default=str, separators=(",", ":"))
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()
