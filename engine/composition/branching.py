"""
Conditional Composition

Construction-time branching over configuration values.

Conditions are plain booleans or strings taken from Configuration before
any node is declared. Passing an Output is rejected: the graph shape must
be fixed before resolution starts, and an Output's value is not known until
then.
"""

from typing import Any, Callable, Mapping, Optional, TypeVar

from ..errors import ConstructionError
from ..outputs import Output

T = TypeVar("T")


def require_condition(condition: Any) -> bool:
    """
    Validate a branch condition.

    Raises:
        TypeError: If the condition is an Output or not a bool
    """
    if isinstance(condition, Output):
        raise TypeError(
            f"Branch condition {condition!r} is an Output; conditions must be "
            "decided from configuration values before graph construction"
        )
    if not isinstance(condition, bool):
        raise TypeError(f"Branch condition must be a bool, got {type(condition).__name__}")
    return condition


def choose(condition: bool, if_true: Callable[[], T], if_false: Callable[[], T]) -> T:
    """
    Build exactly one of two variants.

    Only the selected factory is called, so the other variant's nodes are
    never declared.

    Example:
        service = choose(
            is_minikube,
            lambda: declare_service(builder, "ClusterIP"),
            lambda: declare_service(builder, "LoadBalancer"),
        )
    """
    if require_condition(condition):
        return if_true()
    return if_false()


def when(condition: bool, factory: Callable[[], T]) -> Optional[T]:
    """Build a variant only if the condition holds."""
    if require_condition(condition):
        return factory()
    return None


def select(value: str, variants: Mapping[str, Callable[[], T]]) -> T:
    """
    Build the variant keyed by a configuration string.

    Raises:
        TypeError: If value is an Output
        ConstructionError: If no variant matches
    """
    if isinstance(value, Output):
        raise TypeError(
            f"Variant selector {value!r} is an Output; selectors must be "
            "decided from configuration values before graph construction"
        )
    if value not in variants:
        raise ConstructionError(
            f"Unknown variant '{value}'. Expected one of: {', '.join(variants)}"
        )
    return variants[value]()
