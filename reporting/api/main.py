"""
Stack Status API

FastAPI service exposing the state of a resolved (or resolving) stack.

HTTP Endpoints:
- GET  /          - Health check
- GET  /health    - Detailed health status
- GET  /nodes     - Node snapshots in topological order
- GET  /exports   - Stack exports
"""

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from fastapi import FastAPI, HTTPException
from pydantic import BaseModel

from engine.runtime.coordinator import StackCoordinator

logger = logging.getLogger(__name__)


# Response models (Pydantic)
class NodeResponse(BaseModel):
    """Single node snapshot"""
    type: str
    name: str
    state: str
    fingerprint: Optional[str] = None
    outputs: Dict[str, Any]
    error: Optional[str] = None
    failed_at: Optional[str] = None


class NodesResponse(BaseModel):
    """Response containing every node of a stack"""
    stack: str
    count: int
    nodes: List[NodeResponse]


class ExportResponse(BaseModel):
    """Single stack export"""
    name: str
    status: str
    value: Any = None
    secret: bool = False
    error: Optional[str] = None


class ExportsResponse(BaseModel):
    """Response containing every export of a stack"""
    stack: str
    exports: Dict[str, ExportResponse]


def create_app(coordinator: StackCoordinator) -> FastAPI:
    """
    Build the status API for a coordinator.

    Args:
        coordinator: Coordinator whose stack is reported

    Returns:
        FastAPI application
    """
    app = FastAPI(
        title="stackgraph - Stack Status API",
        description="Resolution state of declared resources",
        version="1.0.0",
    )

    @app.get("/")
    async def root():
        """Health check endpoint"""
        return {
            "status": "running",
            "service": "stack-status-api",
            "timestamp": datetime.now().isoformat(),
        }

    @app.get("/health")
    async def health():
        """Detailed health status"""
        metrics = coordinator.get_metrics()
        return {
            "status": "healthy",
            "service": "stack-status-api",
            "stack": coordinator.stack,
            "resolved": coordinator.result is not None,
            "node_states": metrics["node_states"],
            "timestamp": datetime.now().isoformat(),
        }

    @app.get("/nodes")
    async def get_nodes(state: Optional[str] = None) -> NodesResponse:
        """
        List node snapshots.

        Args:
            state: Optional filter (unscheduled, waiting, scheduled, resolved, failed)

        Raises:
            400: Unknown state filter
        """
        valid_states = {"unscheduled", "waiting", "scheduled", "resolved", "failed"}
        if state is not None and state not in valid_states:
            raise HTTPException(
                status_code=400,
                detail=f"Invalid state '{state}'. Must be one of: {sorted(valid_states)}"
            )

        snapshots = [
            s for s in coordinator.snapshots()
            if state is None or s.state == state
        ]
        nodes = [
            NodeResponse(
                type=s.type,
                name=s.name,
                state=s.state,
                fingerprint=s.fingerprint,
                outputs=s.outputs,
                error=s.error,
                failed_at=s.failed_at,
            )
            for s in snapshots
        ]

        logger.info(f"Listed {len(nodes)} nodes for {coordinator.stack}")

        return NodesResponse(stack=coordinator.stack, count=len(nodes), nodes=nodes)

    @app.get("/exports")
    async def get_exports() -> ExportsResponse:
        """Current stack exports; secret values are masked."""
        exports = {
            name: ExportResponse(**record.to_dict())
            for name, record in coordinator.exports().items()
        }
        return ExportsResponse(stack=coordinator.stack, exports=exports)

    return app
