"""
Outputs Module

Deferred value cells that carry resource attributes between nodes.
"""

from .cell import Output, OutputState, interpolate, iter_output_refs, resolve_value

__all__ = [
    "Output",
    "OutputState",
    "interpolate",
    "iter_output_refs",
    "resolve_value",
]
