"""
Output Cells

Deferred, single-assignment values for resource attributes that are not
known until a provider has run (endpoints, IDs, generated credentials).

An Output starts pending and settles exactly once, either resolved with a
value or failed with an error. Continuations registered with map() / all()
run when the source settles; nothing here ever blocks the caller.

Example usage:
    endpoint = cluster.output("endpoint")
    url = endpoint.map(lambda host: f"https://{host}")

    both = Output.all(vpc.output("id"), cluster.output("name"))
    label = interpolate("{cluster} in {vpc}", cluster=cluster.output("name"), vpc=vpc.output("id"))
"""

import logging
import threading
from enum import Enum
from typing import Any, Callable, FrozenSet, Generic, Iterable, Iterator, List, Optional, Tuple, TypeVar

from ..errors import ConstructionError, OutputPendingError

logger = logging.getLogger(__name__)

T = TypeVar("T")
U = TypeVar("U")


class OutputState(Enum):
    """Lifecycle of an Output cell"""
    PENDING = "pending"
    RESOLVED = "resolved"
    FAILED = "failed"


class Output(Generic[T]):
    """
    Deferred value owned by the resource node that produces it.

    Attributes:
        resources: Identities of the nodes this value derives from. The graph
                   builder turns these into dependency edges.
        secret: Whether the value must be masked when reported
        label: Human-readable origin, used in logs and repr
    """

    def __init__(
        self,
        resources: Iterable = (),
        secret: bool = False,
        label: Optional[str] = None,
    ):
        self.resources: FrozenSet = frozenset(resources)
        self.secret = secret
        self.label = label
        self._state = OutputState.PENDING
        self._value: Any = None
        self._error: Optional[BaseException] = None
        self._callbacks: List[Callable[["Output"], None]] = []
        self._lock = threading.Lock()

    @classmethod
    def of(cls, value: T, secret: bool = False) -> "Output[T]":
        """Create an already-resolved Output with no owning resource."""
        out = cls(secret=secret)
        out.resolve(value)
        return out

    @property
    def state(self) -> OutputState:
        return self._state

    @property
    def is_pending(self) -> bool:
        return self._state is OutputState.PENDING

    @property
    def is_resolved(self) -> bool:
        return self._state is OutputState.RESOLVED

    @property
    def is_failed(self) -> bool:
        return self._state is OutputState.FAILED

    @property
    def value(self) -> T:
        """
        Resolved value.

        Raises:
            OutputPendingError: If the Output has not settled yet
            Exception: The failure cause, if the Output failed
        """
        if self._state is OutputState.RESOLVED:
            return self._value
        if self._state is OutputState.FAILED:
            raise self._error
        raise OutputPendingError(f"{self!r} has not resolved yet")

    @property
    def error(self) -> Optional[BaseException]:
        return self._error

    def resolve(self, value: T) -> bool:
        """
        Settle with a value. Called by the owning node's engine.

        Returns:
            True if this call settled the Output, False if it was already settled
        """
        return self._settle(OutputState.RESOLVED, value, None)

    def fail(self, error: BaseException) -> bool:
        """
        Settle with an error. Called by the owning node's engine.

        Returns:
            True if this call settled the Output, False if it was already settled
        """
        return self._settle(OutputState.FAILED, None, error)

    def _settle(self, state: OutputState, value: Any, error: Optional[BaseException]) -> bool:
        with self._lock:
            if self._state is not OutputState.PENDING:
                return False
            self._state = state
            self._value = value
            self._error = error
            callbacks, self._callbacks = self._callbacks, []

        # A raising continuation must not keep the others from running
        for callback in callbacks:
            try:
                callback(self)
            except Exception:
                logger.exception(f"Continuation on {self!r} raised")
        return True

    def on_settled(self, callback: Callable[["Output[T]"], None]) -> None:
        """
        Register a continuation invoked once the Output settles.

        Runs immediately if the Output has already settled.
        """
        with self._lock:
            if self._state is OutputState.PENDING:
                self._callbacks.append(callback)
                return
        callback(self)

    def map(self, func: Callable[[T], Any]) -> "Output[U]":
        """
        Derive a new Output holding func(value).

        If this Output fails, the derived one fails with the same error and
        func is never called. If func raises, the derived Output fails with
        that exception. If func returns an Output, the derived Output adopts
        its eventual state; that Output may only derive from resources this
        one already carries, otherwise the derived Output fails with a
        ConstructionError.
        """
        derived: Output = Output(
            self.resources,
            secret=self.secret,
            label=f"{self.label}.map" if self.label else None,
        )

        def _continue(source: Output) -> None:
            if source.is_failed:
                derived.fail(source.error)
                return
            try:
                result = func(source._value)
            except Exception as e:
                logger.debug(f"map() continuation on {source!r} raised: {e}")
                derived.fail(e)
                return

            if isinstance(result, Output):
                undeclared = result.resources - derived.resources
                if undeclared:
                    derived.fail(ConstructionError(
                        f"map() continuation on {source!r} returned an Output of "
                        f"{', '.join(sorted(str(r) for r in undeclared))}, which "
                        "the graph has no edge to; reference it directly in the inputs",
                        nodes=sorted(undeclared),
                    ))
                    return
                if result.secret:
                    derived.secret = True
                result.on_settled(lambda inner: _adopt(derived, inner))
            else:
                derived.resolve(result)

        self.on_settled(_continue)
        return derived

    @staticmethod
    def all(*outputs) -> "Output[Tuple]":
        """
        Combine Outputs into one Output of a tuple.

        Accepts Outputs and literals as positional arguments, or a single
        list/tuple of them. Resolves once every input resolves; fails with the
        first failure observed, and only once.
        """
        if len(outputs) == 1 and isinstance(outputs[0], (list, tuple)):
            outputs = tuple(outputs[0])

        items = [o if isinstance(o, Output) else Output.of(o) for o in outputs]
        resources = frozenset().union(*(o.resources for o in items))
        combined: Output = Output(resources, secret=any(o.secret for o in items))

        if not items:
            combined.resolve(())
            return combined

        remaining = [len(items)]
        lock = threading.Lock()

        def _on_settled(source: Output) -> None:
            if source.is_failed:
                combined.fail(source.error)
                return
            with lock:
                remaining[0] -= 1
                done = remaining[0] == 0
            if done:
                combined.resolve(tuple(o._value for o in items))

        for item in items:
            item.on_settled(_on_settled)

        return combined

    def __bool__(self) -> bool:
        raise TypeError(
            f"{self!r} cannot be used as a condition; branch on configuration "
            "values decided before graph construction"
        )

    def __repr__(self) -> str:
        origin = self.label or "Output"
        if self._state is OutputState.RESOLVED:
            shown = "[secret]" if self.secret else repr(self._value)
            return f"<{origin} resolved={shown}>"
        if self._state is OutputState.FAILED:
            return f"<{origin} failed={self._error!r}>"
        return f"<{origin} pending>"


def _adopt(derived: Output, inner: Output) -> None:
    if inner.is_failed:
        derived.fail(inner.error)
    else:
        derived.resolve(inner._value)


def interpolate(template: str, **values: Any) -> Output[str]:
    """
    Format a string from Outputs and literals once all of them resolve.

    Example:
        interpolate('set_octopusvariable "k8sClusterUrl" "{url}"', url=endpoint)
    """
    keys = list(values)
    return Output.all([values[k] for k in keys]).map(
        lambda resolved: template.format(**dict(zip(keys, resolved)))
    )


def iter_output_refs(value: Any, path: str = "") -> Iterator[Tuple[str, Output]]:
    """
    Yield (input path, Output) for every Output nested in a value.

    Walks dicts, lists and tuples. Paths look like "spec.ports[0].port".
    """
    if isinstance(value, Output):
        yield path, value
    elif isinstance(value, dict):
        for key, item in value.items():
            child = f"{path}.{key}" if path else str(key)
            yield from iter_output_refs(item, child)
    elif isinstance(value, (list, tuple)):
        for index, item in enumerate(value):
            yield from iter_output_refs(item, f"{path}[{index}]")


def resolve_value(value: Any) -> Any:
    """
    Replace every nested Output with its resolved value.

    Raises:
        OutputPendingError: If any nested Output has not settled
    """
    if isinstance(value, Output):
        return value.value
    if isinstance(value, dict):
        return {key: resolve_value(item) for key, item in value.items()}
    if isinstance(value, list):
        return [resolve_value(item) for item in value]
    if isinstance(value, tuple):
        return tuple(resolve_value(item) for item in value)
    return value
