"""
Runtime Module

Stack coordinator and runtime execution components.
"""

from .coordinator import StackCoordinator
from .program import StackProgram

__all__ = [
    "StackCoordinator",
    "StackProgram",
]
