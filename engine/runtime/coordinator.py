"""
Stack Coordinator

Coordinates one resolution pass for a single stack.
Handles config loading, graph declaration, resolution, and report publishing.
"""

import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

from ..config.loader import ConfigLoader, Configuration
from ..dag.builder import GraphBuilder
from ..dag.registry import ProviderRegistry
from ..errors import ConstructionError
from ..scheduler.executor import ResolutionEngine, ResolutionResult
from .program import StackProgram
from reporting.adapters.nats_client import NatsClient, Topics
from schemas.stack_state import ExportRecord, NodeSnapshot

logger = logging.getLogger(__name__)


class StackCoordinator:
    """
    Coordinates declaration and resolution for a single stack.

    The coordinator:
    1. Loads stack configuration from YAML
    2. Validates config values against the program's settings model
    3. Runs the program to declare resources and exports, then builds the graph
    4. Resolves the graph through the provider registry
    5. Publishes node snapshots and exports to NATS (if enabled)

    Everything up to step 3 happens in __init__, so construction errors
    surface before any provider is called.

    Example usage:
        registry = ProviderRegistry()
        registry.register("kubernetes", KubernetesProvider())

        coordinator = StackCoordinator(
            stack="guestbook-local",
            config_dir=Path("config"),
            registry=registry,
            programs=PROGRAMS,
        )

        print(coordinator.builder.exports)   # pending Outputs
        result = await coordinator.run()
        print(coordinator.exports())         # resolved values
    """

    def __init__(
        self,
        stack: str,
        config_dir: Path,
        registry: ProviderRegistry,
        programs: Mapping[str, StackProgram],
        nats_client: Optional[NatsClient] = None,
    ):
        """
        Initialize coordinator for a stack.

        Args:
            stack: Stack name (directory under config/stacks/)
            config_dir: Root config directory
            registry: Provider registry with registered providers
            programs: Available stack programs keyed by name
            nats_client: Connected NATS client, used if reporting is enabled

        Raises:
            ConstructionError: If config, program, or graph is invalid
        """
        self.stack = stack
        self.registry = registry
        self.nats = nats_client
        self.result: Optional[ResolutionResult] = None

        logger.info(f"Loading stack config for {stack}...")
        loader = ConfigLoader(config_dir)
        self.stack_config = loader.load_stack(stack)

        program = programs.get(self.stack_config.program)
        if program is None:
            available = ", ".join(programs)
            raise ConstructionError(
                f"Unknown program '{self.stack_config.program}' for stack {stack}. "
                f"Available programs: {available if available else 'none'}"
            )
        self.program = program

        self.config = Configuration(self.stack_config.config, schema=program.settings_model)

        logger.info(f"Declaring resources for {stack} with program '{program.name}'...")
        self.builder = GraphBuilder(stack)
        program.define(self.builder, self.config)
        self.builder.build()

        self.engine = ResolutionEngine(
            self.builder,
            registry,
            parallel=self.stack_config.engine.parallel,
        )

        logger.info(
            f"Coordinator initialized for {stack}: "
            f"{len(self.builder.nodes)} nodes, "
            f"{len(self.builder.exports)} exports"
        )

    async def run(self) -> ResolutionResult:
        """
        Resolve the stack and publish the outcome.

        Returns:
            ResolutionResult of the pass
        """
        logger.info(f"Resolving stack {self.stack}...")
        self.result = await self.engine.run(timeout=self.stack_config.engine.timeout_seconds)

        for node_id, error in self.result.root_failures.items():
            logger.error(f"Stack {self.stack}: {node_id} failed: {error}")

        if self.nats is not None and self.stack_config.reporting.nats_enabled:
            await self._publish_outputs()

        return self.result

    def exports(self, mask_secrets: bool = True) -> Dict[str, ExportRecord]:
        """Current export records; pending until resolution finishes."""
        return {
            name: ExportRecord.from_value(name, value, mask_secrets=mask_secrets)
            for name, value in self.builder.exports.items()
        }

    def snapshots(self) -> List[NodeSnapshot]:
        """Snapshots of every node in topological order."""
        return [
            NodeSnapshot.from_node(self.stack, self.builder.nodes[node_id])
            for node_id in self.builder.topo_order
        ]

    async def _publish_outputs(self) -> None:
        """
        Publish node snapshots and exports to NATS.

        Publishes to:
        - stacks.{stack}.nodes.{type}.{name} for each node
        - stacks.{stack}.exports for the exports mapping
        """
        for snapshot in self.snapshots():
            topic = Topics.node_state(self.stack, snapshot.type, snapshot.name)
            try:
                await self.nats.publish_json(topic, snapshot.to_json())
                logger.debug(f"Published {snapshot.type}::{snapshot.name} to {topic}")
            except Exception as e:
                logger.error(f"Failed to publish {snapshot.name} snapshot: {e}")

        topic = Topics.exports(self.stack)
        payload = {name: record.to_dict() for name, record in self.exports().items()}
        try:
            await self.nats.publish_json(topic, json.dumps(payload, default=str))
            logger.debug(f"Published exports to {topic}")
        except Exception as e:
            logger.error(f"Failed to publish exports: {e}")

    def get_metrics(self) -> Dict[str, Any]:
        """
        Get coordinator metrics.

        Returns:
            Dictionary with coordinator statistics
        """
        states: Dict[str, int] = {}
        for node in self.builder.nodes.values():
            states[node.state.value] = states.get(node.state.value, 0) + 1

        return {
            "stack": self.stack,
            "program": self.program.name,
            "nodes": len(self.builder.nodes),
            "edges": len(self.builder.edges),
            "topological_order": [str(n) for n in self.builder.topo_order],
            "node_states": states,
            "provider_invocations": sum(self.engine.invocations.values()),
        }
