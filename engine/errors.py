"""
Engine Errors

Error taxonomy for graph construction and resolution.

- ConstructionError: fatal, raised before any provider call
- ProviderError: local to one node, propagates along dependency edges
- DependencyError: a node that could not run because an input failed
- CancellationError: process-level abort of a resolution pass
"""

from typing import Iterable, List, Optional


class ConstructionError(ValueError):
    """Graph or configuration cannot be constructed"""

    def __init__(self, message: str, nodes: Iterable = ()):
        super().__init__(message)
        self.nodes: List = list(nodes)


class CycleError(ConstructionError):
    """Dependency graph contains a cycle"""

    def __init__(self, cycle: List):
        super().__init__(
            "Cycle detected in resource graph: "
            + " -> ".join(str(n) for n in cycle),
            nodes=cycle,
        )
        self.cycle = cycle


class MissingConfigError(ConstructionError):
    """Required configuration value is absent"""

    def __init__(self, key: str):
        super().__init__(f"Missing required configuration value: '{key}'")
        self.key = key


class ConfigValidationError(ConstructionError):
    """Configuration is present but malformed or has unknown keys"""


class OutputPendingError(RuntimeError):
    """Value of an Output was read before it resolved"""


class ProviderError(RuntimeError):
    """A provider invocation failed for a node"""

    def __init__(self, resource_id, cause: BaseException):
        super().__init__(f"{resource_id}: provider invocation failed: {cause}")
        self.resource_id = resource_id
        self.cause = cause


class DependencyError(RuntimeError):
    """A node could not be invoked because one of its inputs failed"""

    def __init__(self, resource_id, upstream: BaseException):
        super().__init__(f"{resource_id}: dependency failed: {upstream}")
        self.resource_id = resource_id
        self.upstream = upstream

    @property
    def root_cause(self) -> BaseException:
        """Walk the chain back to the error that started it."""
        error: BaseException = self
        while isinstance(error, DependencyError):
            error = error.upstream
        return error


class CancellationError(RuntimeError):
    """Resolution pass was aborted before the node reached a terminal state"""


class ResolutionTimeout(CancellationError):
    """Resolution pass exceeded its time budget"""


def failing_resource(error: Optional[BaseException]):
    """Return the identity of the node where a failure originated, if any."""
    if isinstance(error, DependencyError):
        error = error.root_cause
    return getattr(error, "resource_id", None)
