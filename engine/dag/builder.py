"""
Graph Builder

Collects resource declarations, derives dependency edges from Output
references, and validates the resulting graph.
Performs cycle detection and computes topological resolution order.
"""

from typing import Any, Dict, Iterable, List, Mapping, Optional, Set, Union
import logging

from ..errors import ConstructionError, CycleError
from ..outputs import iter_output_refs
from .node import Declaration, Edge, ResourceId, ResourceNode

logger = logging.getLogger(__name__)

NodeRef = Union[ResourceNode, Declaration, ResourceId, str]


class GraphBuilder:
    """
    Builds and validates the resource graph for one stack.

    The builder:
    1. Records each declaration and the edges induced by its Output inputs
    2. Seals itself on build(); the graph shape is static from then on
    3. Validates no cycles exist (using DFS)
    4. Computes topological resolution order (using Kahn's algorithm)

    Example usage:
        builder = GraphBuilder("dev")

        vpc = builder.declare("awsx:ec2:Vpc", "main", outputs=["id", "public_subnet_ids"])
        cluster = builder.declare(
            "eks:index:Cluster", "prod",
            inputs={"vpc_id": vpc["id"], "subnet_ids": vpc["public_subnet_ids"]},
            outputs=["endpoint", "kubeconfig"],
        )
        builder.export("kubeconfig", cluster["kubeconfig"])
        builder.build()

        print(builder.topo_order)   # [awsx:ec2:Vpc::main, eks:index:Cluster::prod]
        print(cluster.edges)        # [Edge(dependency=awsx:ec2:Vpc::main, ..., via="vpc_id"), ...]
    """

    def __init__(self, stack: str = "default"):
        """
        Initialize an empty builder.

        Args:
            stack: Name of the stack the graph belongs to
        """
        self.stack = stack
        self.nodes: Dict[ResourceId, ResourceNode] = {}
        self.edges: List[Edge] = []
        self.exports: Dict[str, Any] = {}
        self.adjacency: Dict[ResourceId, List[ResourceId]] = {}
        self.reverse_deps: Dict[ResourceId, Set[ResourceId]] = {}
        self.topo_order: List[ResourceId] = []
        self._sealed = False
        self._built = False

        logger.info(f"Initialized GraphBuilder for stack '{stack}'")

    @property
    def is_built(self) -> bool:
        return self._built

    def declare(
        self,
        resource_type: str,
        name: str,
        inputs: Optional[Mapping[str, Any]] = None,
        outputs: Iterable[str] = (),
        depends_on: Iterable[NodeRef] = (),
        secret_outputs: Iterable[str] = (),
    ) -> Declaration:
        """
        Declare a resource. Returns immediately with all outputs pending.

        Args:
            resource_type: Type token, "<package>:<module>:<Type>"
            name: Logical name, unique per type in this graph
            inputs: Input properties; may nest Outputs in dicts, lists and tuples
            outputs: Output names the provider must produce
            depends_on: Extra nodes to wait for (objects, ids or "type::name")
            secret_outputs: Output names to mask in reports

        Returns:
            Declaration holding the node and the edges it induced

        Raises:
            ConstructionError: If the builder is sealed, the identity is taken,
                or a secret output is not a declared output
        """
        self._check_open()

        output_names = list(outputs)
        secrets = frozenset(secret_outputs)
        unknown_secrets = secrets - set(output_names)
        if unknown_secrets:
            raise ConstructionError(
                f"Secret outputs {sorted(unknown_secrets)} are not declared outputs "
                f"of {resource_type}::{name}"
            )

        node = ResourceNode(
            type=resource_type,
            name=name,
            inputs=dict(inputs or {}),
            output_names=output_names,
            depends_on=[_as_resource_id(ref) for ref in depends_on],
            secret_outputs=secrets,
        )

        if node.id in self.nodes:
            raise ConstructionError(f"Duplicate resource: {node.id}", nodes=[node.id])

        edges = []
        for path, ref in iter_output_refs(node.inputs):
            for dependency in sorted(ref.resources):
                edges.append(Edge(dependency=dependency, dependent=node.id, via=path))
        for dependency in node.depends_on:
            edges.append(Edge(dependency=dependency, dependent=node.id, via="depends_on"))

        self.nodes[node.id] = node
        self.edges.extend(edges)

        logger.debug(f"Declared {node.id} with {len(edges)} edges")

        return Declaration(node=node, edges=edges)

    def export(self, name: str, value: Any) -> None:
        """
        Export a value (literal or Output) under a stack-level name.

        Raises:
            ConstructionError: If the builder is sealed or the name is taken
        """
        self._check_open()
        if name in self.exports:
            raise ConstructionError(f"Duplicate export: '{name}'")
        self.exports[name] = value

    def build(self) -> None:
        """
        Build graph: construct adjacency lists, validate, compute order.

        Raises:
            ConstructionError: If the graph references unknown nodes
            CycleError: If the graph contains a cycle
        """
        self._check_open()
        self._sealed = True

        logger.info(f"Building resource graph for stack '{self.stack}'...")
        self._build_adjacency()
        self._validate_no_cycles()
        self._compute_topo_order()
        self._built = True
        logger.info(
            f"Graph built successfully: {len(self.nodes)} nodes, {len(self.edges)} edges, "
            f"topological order: {[str(n) for n in self.topo_order]}"
        )

    def _check_open(self) -> None:
        if self._sealed:
            raise ConstructionError(
                f"Graph for stack '{self.stack}' is sealed; "
                "declarations must happen before build()"
            )

    def _build_adjacency(self) -> None:
        """
        Build dependency lists from recorded edges.

        Adjacency format: {node_id: [nodes it depends on]}
        Reverse deps format: {node_id: set of nodes that depend on it}
        """
        self.adjacency = {node_id: [] for node_id in self.nodes}
        self.reverse_deps = {}

        for edge in self.edges:
            if edge.dependency not in self.nodes:
                raise ConstructionError(
                    f"{edge.dependent} depends on unknown resource {edge.dependency} "
                    f"(via {edge.via})",
                    nodes=[edge.dependent, edge.dependency],
                )

            deps = self.adjacency[edge.dependent]
            if edge.dependency not in deps:
                deps.append(edge.dependency)
            self.reverse_deps.setdefault(edge.dependency, set()).add(edge.dependent)

        logger.debug(f"Built adjacency lists: {self.adjacency}")

    def _validate_no_cycles(self) -> None:
        """
        Detect cycles using depth-first search with a recursion stack.

        Raises:
            CycleError: Naming the nodes that form the cycle
        """
        visited: Set[ResourceId] = set()
        rec_stack: Set[ResourceId] = set()

        def dfs(node_id: ResourceId, path: List[ResourceId]) -> None:
            visited.add(node_id)
            rec_stack.add(node_id)
            path.append(node_id)

            for dep in self.adjacency.get(node_id, []):
                if dep not in visited:
                    dfs(dep, path[:])
                elif dep in rec_stack:
                    cycle_start = path.index(dep)
                    raise CycleError(path[cycle_start:] + [dep])

            rec_stack.remove(node_id)

        for node_id in self.nodes:
            if node_id not in visited:
                dfs(node_id, [])

        logger.debug("No cycles detected in resource graph")

    def _compute_topo_order(self) -> None:
        """
        Compute topological order using Kahn's algorithm.

        Nodes with no dependencies come first; ties keep declaration order.

        Raises:
            CycleError: If some nodes can never be ordered (should already
                       have been caught by _validate_no_cycles)
        """
        in_degree = {n: len(deps) for n, deps in self.adjacency.items()}
        position = {n: i for i, n in enumerate(self.nodes)}

        queue = [n for n in self.nodes if in_degree[n] == 0]
        self.topo_order = []

        while queue:
            node_id = queue.pop(0)
            self.topo_order.append(node_id)

            ready = []
            for dependent in self.reverse_deps.get(node_id, ()):
                in_degree[dependent] -= 1
                if in_degree[dependent] == 0:
                    ready.append(dependent)
            queue.extend(sorted(ready, key=position.__getitem__))

        if len(self.topo_order) != len(self.nodes):
            ordered = set(self.topo_order)
            remaining = [n for n in self.nodes if n not in ordered]
            raise CycleError(remaining)

        logger.debug(f"Computed topological order: {self.topo_order}")

    def get_dependencies(self, node_id: ResourceId) -> List[ResourceId]:
        """Direct dependencies of a node."""
        return self.adjacency.get(node_id, [])

    def get_dependents(self, node_id: ResourceId) -> Set[ResourceId]:
        """Nodes that directly depend on this node."""
        return self.reverse_deps.get(node_id, set())

    def get_all_transitive_dependents(self, node_id: ResourceId) -> Set[ResourceId]:
        """
        All nodes downstream of a node.

        Args:
            node_id: Node identifier

        Returns:
            Set of all node IDs that transitively depend on this node
        """
        transitive: Set[ResourceId] = set()

        def collect_deps(nid: ResourceId):
            for dep in self.get_dependents(nid):
                if dep not in transitive:
                    transitive.add(dep)
                    collect_deps(dep)

        collect_deps(node_id)
        return transitive


def _as_resource_id(ref: NodeRef) -> ResourceId:
    if isinstance(ref, ResourceId):
        return ref
    if isinstance(ref, (ResourceNode, Declaration)):
        return ref.id
    if isinstance(ref, str):
        try:
            return ResourceId.parse(ref)
        except ValueError as e:
            raise ConstructionError(str(e))
    raise ConstructionError(f"Cannot use {ref!r} as a dependency reference")
