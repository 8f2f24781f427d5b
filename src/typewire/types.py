from __future__ import annotations

import threading
from collections.abc import Callable
from enum import Enum
from typing import Any, Generic, TypeVar

T = TypeVar("T")

_MISSING: Any = object()


class Lifetime(str, Enum):
    """Defines the lifetime of a service in the container."""

    TRANSIENT = "transient"
    """A new instance is created every time the service is requested."""

    SINGLETON = "singleton"
    """A single instance per closed type, shared for the lifetime of the container."""

    SCOPED = "scoped"
    """A single instance per top-level scope tree, shared by all of its descendant scopes."""


class ScopeBehaviour(str, Enum):
    """Defines how instances produced by a target interact with the active scope."""

    IMPLICIT = "implicit"
    """Disposable instances are tracked by a scope and disposed with it."""

    EXPLICIT = "explicit"
    """The scope caches the instance; one instance per scope tree."""

    NONE = "none"
    """Instances are never tracked."""


class ScopePreference(str, Enum):
    """Defines which scope receives tracked instances."""

    CURRENT = "current"
    """The nearest scope, i.e. the one the resolve call was made through."""

    ROOT = "root"
    """The container's root scope, disposed with the container."""


class MemberBindingBehaviour(str, Enum):
    """Selects how non-constructor members of a concrete type are injected."""

    NONE = "none"
    """Only constructor parameters are injected."""

    BIND_ANNOTATED = "bind_annotated"
    """Public annotated class attributes not covered by the constructor are injected."""


class Lazy(Generic[T]):
    """Deferred, thread-safe access to a resolved dependency.

    Request ``Lazy[Service]`` to receive an object whose ``value`` property
    resolves ``Service`` on first access and caches it afterwards.
    """

    __slots__ = ("_factory", "_lock", "_value")

    def __init__(self, factory: Callable[[], T]) -> None:
        self._factory = factory
        self._lock = threading.Lock()
        self._value: Any = _MISSING

    @property
    def is_value_created(self) -> bool:
        return self._value is not _MISSING

    @property
    def value(self) -> T:
        if self._value is _MISSING:
            with self._lock:
                if self._value is _MISSING:
                    self._value = self._factory()
        return self._value

    def __repr__(self) -> str:
        state = repr(self._value) if self.is_value_created else "<not created>"
        return f"Lazy({state})"
