"""
DAG Module

Resource graph construction, validation, and provider lookup.
"""

from .node import (
    Declaration,
    Edge,
    NodeState,
    Provider,
    ResourceId,
    ResourceNode,
    TERMINAL_STATES,
    fingerprint,
)
from .registry import ProviderRegistry
from .builder import GraphBuilder

__all__ = [
    "Declaration",
    "Edge",
    "NodeState",
    "Provider",
    "ResourceId",
    "ResourceNode",
    "TERMINAL_STATES",
    "fingerprint",
    "ProviderRegistry",
    "GraphBuilder",
]
