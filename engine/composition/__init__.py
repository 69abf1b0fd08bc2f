"""
Composition Module

Configuration-driven branching at graph construction time.
"""

from .branching import choose, require_condition, select, when

__all__ = [
    "choose",
    "require_condition",
    "select",
    "when",
]
