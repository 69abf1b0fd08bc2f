"""
Scheduler Module

Readiness-driven resolution of resource graphs.
"""

from .executor import ResolutionEngine, ResolutionResult

__all__ = [
    "ResolutionEngine",
    "ResolutionResult",
]
