"""
In-Memory Provider Base

Shared create/update/no-op bookkeeping for simulated providers.
"""

import hashlib
import logging
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Tuple

from engine.dag.node import ResourceId, fingerprint

logger = logging.getLogger(__name__)

Handler = Callable[[str, Dict[str, Any], Optional[Dict[str, Any]]], Dict[str, Any]]


@dataclass
class ResourceRecord:
    """Last known state of a provisioned resource"""
    fingerprint: str
    outputs: Dict[str, Any]


class InMemoryProvider:
    """
    Provider that keeps provisioned resources in memory.

    Subclasses register one handler per resource type. A handler receives
    (name, inputs, previous_outputs) and returns the outputs. Identity is
    (resource_type, name): invoking again with the same input fingerprint is a
    no-op that returns the stored outputs; different inputs are an update.

    Attributes:
        operations: Log of (operation, resource_type, name), operation being
                    "create", "update" or "same"
    """

    def __init__(self, delay: float = 0.0):
        """
        Args:
            delay: Simulated provisioning latency in seconds per create/update
        """
        self.delay = delay
        self.operations: List[Tuple[str, str, str]] = []
        self._handlers: Dict[str, Handler] = {}
        self._records: Dict[ResourceId, ResourceRecord] = {}
        self._lock = threading.Lock()

    def handles(self, resource_type: str, handler: Handler) -> None:
        """Register the handler for a resource type."""
        self._handlers[resource_type] = handler

    def invoke(self, resource_type: str, name: str, inputs: Dict[str, Any]) -> Dict[str, Any]:
        """
        Create, update, or confirm a resource.

        Raises:
            ValueError: If the resource type is not handled, or inputs are invalid
        """
        handler = self._handlers.get(resource_type)
        if handler is None:
            raise ValueError(
                f"{type(self).__name__} does not handle resource type {resource_type}"
            )

        resource_id = ResourceId(type=resource_type, name=name)
        digest = fingerprint(inputs)

        with self._lock:
            record = self._records.get(resource_id)

        if record is not None and record.fingerprint == digest:
            self._log_operation("same", resource_id)
            return dict(record.outputs)

        if self.delay:
            time.sleep(self.delay)

        previous = dict(record.outputs) if record is not None else None
        outputs = handler(name, inputs, previous)

        with self._lock:
            self._records[resource_id] = ResourceRecord(fingerprint=digest, outputs=dict(outputs))
        self._log_operation("update" if record is not None else "create", resource_id)

        return outputs

    def get(self, resource_type: str, name: str) -> Optional[ResourceRecord]:
        """Stored record for a resource, if provisioned."""
        with self._lock:
            return self._records.get(ResourceId(type=resource_type, name=name))

    def _log_operation(self, operation: str, resource_id: ResourceId) -> None:
        with self._lock:
            self.operations.append((operation, resource_id.type, resource_id.name))
        logger.info(f"{operation} {resource_id}")


def stable_token(*parts: str, length: int = 8) -> str:
    """Deterministic hex token derived from parts."""
    digest = hashlib.sha256("/".join(parts).encode("utf-8")).hexdigest()
    return digest[:length]


def require_inputs(name: str, inputs: Dict[str, Any], *keys: str) -> None:
    """
    Raises:
        ValueError: If any key is missing from inputs
    """
    missing = [key for key in keys if inputs.get(key) is None]
    if missing:
        raise ValueError(f"{name}: missing required inputs: {missing}")
