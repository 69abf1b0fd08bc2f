"""
Resolution Engine

Drives every node of a built graph through
Unscheduled -> Waiting -> Scheduled -> Resolved | Failed,
invoking providers once inputs are resolved and propagating the results
into dependent Outputs.
"""

import asyncio
import functools
import inspect
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Set

from ..dag.builder import GraphBuilder
from ..dag.node import NodeState, ResourceId, ResourceNode, fingerprint
from ..dag.registry import ProviderRegistry
from ..errors import (
    CancellationError,
    ConstructionError,
    DependencyError,
    ProviderError,
    ResolutionTimeout,
)
from ..outputs import Output, iter_output_refs, resolve_value

logger = logging.getLogger(__name__)

_ALLOWED_TRANSITIONS = {
    NodeState.UNSCHEDULED: {NodeState.WAITING, NodeState.FAILED},
    NodeState.WAITING: {NodeState.SCHEDULED, NodeState.FAILED},
    NodeState.SCHEDULED: {NodeState.RESOLVED, NodeState.FAILED},
    NodeState.RESOLVED: set(),
    NodeState.FAILED: set(),
}


@dataclass
class ResolutionResult:
    """
    Outcome of one resolution pass.

    Attributes:
        states: Final state of every node
        errors: Error of every failed node
        invocations: Provider call count per node
    """
    states: Dict[ResourceId, NodeState]
    errors: Dict[ResourceId, BaseException] = field(default_factory=dict)
    invocations: Dict[ResourceId, int] = field(default_factory=dict)

    @property
    def succeeded(self) -> bool:
        return not self.errors

    @property
    def root_failures(self) -> Dict[ResourceId, BaseException]:
        """Failures that originated at a node, excluding their propagated copies."""
        return {
            node_id: error
            for node_id, error in self.errors.items()
            if not isinstance(error, DependencyError)
        }

    def nodes_in(self, state: NodeState) -> List[ResourceId]:
        return [node_id for node_id, s in self.states.items() if s is state]


class ResolutionEngine:
    """
    Resolves a built graph by invoking providers in dependency order.

    The engine:
    1. Puts every node into Waiting on the set of its still-pending inputs
    2. Schedules a node the moment that set becomes empty
    3. Invokes providers concurrently (bounded by `parallel`) on worker
       threads, or awaits them if they are coroutine functions
    4. Settles the node's Outputs, which wakes its dependents
    5. Fails dependents of a failed node without touching unrelated subgraphs

    All node state changes happen on the event loop thread through
    _transition(), so a node is never invoked twice in one pass.

    Example usage:
        builder = GraphBuilder("dev")
        ...declarations...
        builder.build()

        engine = ResolutionEngine(builder, registry, parallel=4)
        result = await engine.run(timeout=600)

        print(result.states)
        print(result.root_failures)
    """

    def __init__(self, graph: GraphBuilder, registry: ProviderRegistry, parallel: int = 8):
        """
        Initialize engine for a built graph.

        Args:
            graph: Built GraphBuilder (build() already called)
            registry: Provider registry covering every node type
            parallel: Maximum concurrent provider invocations

        Raises:
            ConstructionError: If the graph was not built
            ValueError: If parallel < 1
        """
        if not graph.is_built:
            raise ConstructionError(
                f"Graph for stack '{graph.stack}' must be built before resolution"
            )
        if parallel < 1:
            raise ValueError(f"parallel must be >= 1, got {parallel}")

        self.graph = graph
        self.registry = registry
        self.parallel = parallel
        self.invocations: Dict[ResourceId, int] = {node_id: 0 for node_id in graph.nodes}

        self._waiting_on: Dict[ResourceId, Set[Output]] = {}
        self._tasks: Dict[ResourceId, asyncio.Task] = {}
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._semaphore: Optional[asyncio.Semaphore] = None
        self._done: Optional[asyncio.Event] = None
        self._started = False

        logger.info(
            f"Initialized ResolutionEngine with {len(graph.nodes)} nodes, "
            f"parallel={parallel}"
        )

    async def run(self, timeout: Optional[float] = None) -> ResolutionResult:
        """
        Run one resolution pass to completion.

        Args:
            timeout: Optional time budget in seconds. On expiry every
                     non-terminal node fails with ResolutionTimeout.

        Returns:
            ResolutionResult with final node states and errors

        Raises:
            ConstructionError: If a node type has no registered provider
            RuntimeError: If this engine already ran
        """
        if self._started:
            raise RuntimeError("Resolution pass already started for this engine")

        # Fail before any provider call if a node cannot be bound
        for node in self.graph.nodes.values():
            self.registry.resolve(node.type)

        self._started = True
        self._loop = asyncio.get_running_loop()
        self._semaphore = asyncio.Semaphore(self.parallel)
        self._done = asyncio.Event()

        logger.info(f"Starting resolution of stack '{self.graph.stack}'")

        for node_id in self.graph.topo_order:
            node = self.graph.nodes[node_id]
            if node.state is NodeState.UNSCHEDULED:
                self._enter_waiting(node)
        self._check_progress()

        try:
            if timeout is None:
                await self._done.wait()
            else:
                await asyncio.wait_for(self._done.wait(), timeout)
        except asyncio.TimeoutError:
            self.abort(ResolutionTimeout(f"Resolution did not finish within {timeout}s"))
        except asyncio.CancelledError:
            self.abort(CancellationError("Resolution cancelled"))
            await self._drain()
            raise

        await self._drain()

        result = self.result()
        logger.info(
            f"Resolution of stack '{self.graph.stack}' finished: "
            f"{len(result.nodes_in(NodeState.RESOLVED))} resolved, "
            f"{len(result.nodes_in(NodeState.FAILED))} failed"
        )
        return result

    def abort(self, reason: Optional[BaseException] = None) -> int:
        """
        Fail every non-terminal node with a cancellation error.

        Args:
            reason: Error to record; defaults to CancellationError

        Returns:
            Number of nodes aborted
        """
        if reason is None:
            reason = CancellationError("Resolution aborted")

        victims = [node for node in self.graph.nodes.values() if not node.is_terminal]

        # Mark all victims first so propagation does not rewrap the reason
        for node in victims:
            self._transition(node, NodeState.FAILED)
            node.error = reason
        for node in victims:
            self._settle_failed(node, reason)

        for task in list(self._tasks.values()):
            task.cancel()

        if victims:
            logger.warning(f"Aborted {len(victims)} nodes: {reason}")
        self._check_done()
        return len(victims)

    def result(self) -> ResolutionResult:
        """Snapshot of node states and errors."""
        return ResolutionResult(
            states={node_id: node.state for node_id, node in self.graph.nodes.items()},
            errors={
                node_id: node.error
                for node_id, node in self.graph.nodes.items()
                if node.error is not None
            },
            invocations=dict(self.invocations),
        )

    def _transition(self, node: ResourceNode, new_state: NodeState) -> None:
        """Single mutation point for node state."""
        if new_state not in _ALLOWED_TRANSITIONS[node.state]:
            raise RuntimeError(
                f"Illegal state transition for {node.id}: "
                f"{node.state.value} -> {new_state.value}"
            )
        logger.debug(f"{node.id}: {node.state.value} -> {new_state.value}")
        node.state = new_state

    def _enter_waiting(self, node: ResourceNode) -> None:
        """
        Move a node to Waiting on its pending inputs.

        Inputs that already failed fail the node immediately; a node with
        nothing pending is scheduled straight away.
        """
        pending: Set[Output] = set()
        refs = [ref for _, ref in iter_output_refs(node.inputs)]
        refs.extend(self.graph.nodes[dep].completion for dep in node.depends_on)

        self._transition(node, NodeState.WAITING)

        for ref in refs:
            if ref.is_failed:
                self._fail_from_dependency(node, ref.error)
                return
            if ref.is_pending:
                pending.add(ref)

        self._waiting_on[node.id] = pending
        if not pending:
            self._schedule(node)
            return

        logger.debug(f"{node.id}: waiting on {len(pending)} outputs")
        for ref in list(pending):
            ref.on_settled(functools.partial(self._on_input_settled, node))

    def _on_input_settled(self, node: ResourceNode, ref: Output) -> None:
        if node.state is not NodeState.WAITING:
            return
        if ref.is_failed:
            self._fail_from_dependency(node, ref.error)
            return

        pending = self._waiting_on[node.id]
        pending.discard(ref)
        if not pending:
            self._schedule(node)

    def _schedule(self, node: ResourceNode) -> None:
        self._transition(node, NodeState.SCHEDULED)
        self._waiting_on.pop(node.id, None)
        self._tasks[node.id] = self._loop.create_task(
            self._invoke(node), name=f"resolve:{node.id}"
        )

    async def _invoke(self, node: ResourceNode) -> None:
        """
        Invoke the provider for a scheduled node and settle its outputs.
        """
        provider = self.registry.resolve(node.type)

        try:
            async with self._semaphore:
                if node.state is not NodeState.SCHEDULED:
                    return

                try:
                    inputs = resolve_value(node.inputs)
                    node.resolved_inputs = inputs
                    node.fingerprint = fingerprint(inputs)
                    self.invocations[node.id] += 1

                    logger.info(f"Invoking provider for {node.id}")
                    if inspect.iscoroutinefunction(provider.invoke):
                        result = await provider.invoke(node.type, node.name, inputs)
                    else:
                        result = await asyncio.to_thread(
                            provider.invoke, node.type, node.name, inputs
                        )
                    outputs = self._check_outputs(node, result)

                except asyncio.CancelledError:
                    raise
                except Exception as e:
                    error = ProviderError(node.id, e)
                    error.__cause__ = e
                    logger.error(f"Provider failed for {node.id}: {e}")
                    self._fail(node, error)
                    return

                if node.state is NodeState.SCHEDULED:
                    self._resolve(node, outputs)
        finally:
            self._tasks.pop(node.id, None)
            self._check_progress()

    def _check_outputs(self, node: ResourceNode, result: Any) -> Mapping[str, Any]:
        if not isinstance(result, Mapping):
            raise TypeError(
                f"Provider returned {type(result).__name__}, expected a mapping of outputs"
            )

        missing = [name for name in node.output_names if name not in result]
        if missing:
            raise ValueError(f"Provider did not return declared outputs: {missing}")

        extra = set(result) - set(node.output_names)
        if extra:
            logger.debug(f"{node.id}: ignoring undeclared outputs {sorted(extra)}")

        return dict(result)

    def _resolve(self, node: ResourceNode, outputs: Mapping[str, Any]) -> None:
        self._transition(node, NodeState.RESOLVED)
        logger.info(f"Resolved {node.id}")

        for name, out in node.outputs.items():
            out.resolve(outputs[name])
        node.completion.resolve(node.id)
        self._check_done()

    def _fail(self, node: ResourceNode, error: BaseException) -> None:
        self._transition(node, NodeState.FAILED)
        node.error = error
        self._settle_failed(node, error)
        self._check_done()

    def _fail_from_dependency(self, node: ResourceNode, upstream: BaseException) -> None:
        error = DependencyError(node.id, upstream)
        error.__cause__ = upstream
        logger.warning(f"{node.id} will not be invoked: {upstream}")
        self._waiting_on.pop(node.id, None)
        self._fail(node, error)

    def _settle_failed(self, node: ResourceNode, error: BaseException) -> None:
        for out in node.outputs.values():
            out.fail(error)
        node.completion.fail(error)

    def _check_done(self) -> None:
        if self._done is None or self._done.is_set():
            return
        if all(node.is_terminal for node in self.graph.nodes.values()):
            self._done.set()

    def _check_progress(self) -> None:
        """
        Abort nodes left waiting on Outputs that nothing in flight will settle.
        """
        self._check_done()
        if self._done is None or self._done.is_set() or self._tasks:
            return

        stalled = [node for node in self.graph.nodes.values() if not node.is_terminal]
        if stalled:
            self.abort(CancellationError(
                "Resolution stalled: "
                f"{', '.join(str(n.id) for n in stalled)} wait on outputs "
                "that no resource in this graph produces"
            ))

    async def _drain(self) -> None:
        tasks = list(self._tasks.values())
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
