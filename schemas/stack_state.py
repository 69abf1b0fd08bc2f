"""
Stack State Schemas

Dataclasses for reporting node states and stack exports.
"""

import json
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from engine.dag.node import ResourceNode
from engine.errors import failing_resource
from engine.outputs import Output

SECRET_MASK = "[secret]"


@dataclass
class NodeSnapshot:
    """
    Reportable view of one resource node after (or during) resolution.

    Secret outputs are masked; pending outputs are omitted.
    """
    stack: str
    type: str
    name: str
    state: str
    fingerprint: Optional[str] = None
    outputs: Dict[str, Any] = field(default_factory=dict)
    error: Optional[str] = None
    failed_at: Optional[str] = None  # Node where the failure originated

    @classmethod
    def from_node(cls, stack: str, node: ResourceNode) -> "NodeSnapshot":
        """Build a snapshot from a live node."""
        outputs = {}
        for name, out in node.outputs.items():
            if out.is_resolved:
                outputs[name] = SECRET_MASK if out.secret else out.value

        origin = failing_resource(node.error)
        return cls(
            stack=stack,
            type=node.type,
            name=node.name,
            state=node.state.value,
            fingerprint=node.fingerprint,
            outputs=outputs,
            error=str(node.error) if node.error is not None else None,
            failed_at=str(origin) if origin is not None else None,
        )

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        return {
            "stack": self.stack,
            "type": self.type,
            "name": self.name,
            "state": self.state,
            "fingerprint": self.fingerprint,
            "outputs": self.outputs,
            "error": self.error,
            "failed_at": self.failed_at,
        }

    def to_json(self) -> str:
        """Convert to JSON string."""
        return json.dumps(self.to_dict(), default=str)

    @classmethod
    def from_dict(cls, data: dict) -> "NodeSnapshot":
        """Create from dictionary."""
        return cls(
            stack=data["stack"],
            type=data["type"],
            name=data["name"],
            state=data["state"],
            fingerprint=data.get("fingerprint"),
            outputs=data.get("outputs", {}),
            error=data.get("error"),
            failed_at=data.get("failed_at"),
        )

    @classmethod
    def from_json(cls, json_str: str) -> "NodeSnapshot":
        """Create from JSON string."""
        return cls.from_dict(json.loads(json_str))


@dataclass
class ExportRecord:
    """
    One stack export: a final value, a failure, or still pending.
    """
    name: str
    status: str  # "resolved", "pending", "failed"
    value: Any = None
    secret: bool = False
    error: Optional[str] = None

    @classmethod
    def from_value(cls, name: str, value: Any, mask_secrets: bool = True) -> "ExportRecord":
        """Build a record from a literal or an Output."""
        if not isinstance(value, Output):
            return cls(name=name, status="resolved", value=value)

        if value.is_pending:
            return cls(name=name, status="pending", secret=value.secret)
        if value.is_failed:
            return cls(name=name, status="failed", secret=value.secret, error=str(value.error))

        shown = SECRET_MASK if (value.secret and mask_secrets) else value.value
        return cls(name=name, status="resolved", value=shown, secret=value.secret)

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        return {
            "name": self.name,
            "status": self.status,
            "value": self.value,
            "secret": self.secret,
            "error": self.error,
        }

    def to_json(self) -> str:
        """Convert to JSON string."""
        return json.dumps(self.to_dict(), default=str)
