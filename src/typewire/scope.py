"""Scopes own the disposable instances created while they are active.

Scopes form a tree rooted at the container's root scope. Closing a scope
closes its children (latest first), then disposes its own tracked instances
in reverse creation order, and finally detaches it from its parent.
"""

from __future__ import annotations

import logging
import threading
import weakref
from collections.abc import Callable
from contextlib import ExitStack, suppress
from functools import partial
from types import TracebackType
from typing import TYPE_CHECKING, Any, TypeVar

from typing_extensions import Self

from typewire.exceptions import TypeWireScopeDisposedError

if TYPE_CHECKING:
    from typewire.container import Container

T = TypeVar("T")

logger = logging.getLogger(__name__)


class InstanceCache:
    """Thread-safe get-or-create cache.

    The factory for a key runs to completion at most once, even when many
    threads request the same key at the same time.
    """

    __slots__ = ("_instances", "_locks", "_locks_lock")

    def __init__(self) -> None:
        self._instances: dict[Any, Any] = {}
        self._locks: dict[Any, threading.Lock] = {}
        self._locks_lock = threading.Lock()

    def get_or_add(self, key: Any, factory: Callable[[], T]) -> T:
        try:
            return self._instances[key]
        except KeyError:
            pass

        with self._get_lock(key):
            if key in self._instances:
                return self._instances[key]
            instance = factory()
            self._instances[key] = instance
            return instance

    def __contains__(self, key: Any) -> bool:
        return key in self._instances

    def __len__(self) -> int:
        return len(self._instances)

    def _get_lock(self, key: Any) -> threading.Lock:
        """Get or create the lock guarding creation for ``key``.

        Uses double-checked locking to minimize lock contention.
        """
        lock = self._locks.get(key)
        if lock is None:
            with self._locks_lock:
                lock = self._locks.get(key)
                if lock is None:  # pragma: no cover - race timing dependent
                    lock = threading.Lock()
                    self._locks[key] = lock
        return lock


class ContainerScope:
    """A lifetime boundary that tracks and disposes created instances.

    Use as a context manager::

        with container.create_scope() as scope:
            service = scope.resolve(Service)
    """

    __slots__ = (
        "_children",
        "_container",
        "_disposed",
        "_guards",
        "_guards_lock",
        "_instances",
        "_lock",
        "_parent",
        "_scoped",
        "_tracked_ids",
    )

    def __init__(self, container: Container, parent: ContainerScope | None = None) -> None:
        self._container = container
        self._parent = parent
        self._children: list[ContainerScope] = []
        self._instances = ExitStack()
        self._tracked_ids: set[int] = set()
        self._scoped = InstanceCache()
        self._lock = threading.Lock()
        self._guards: dict[int, tuple[weakref.ref[Any], _DisposalGuard]] = {}
        self._guards_lock = threading.RLock()
        self._disposed = False

    @property
    def container(self) -> Container:
        return self._container

    @property
    def parent(self) -> ContainerScope | None:
        return self._parent

    @property
    def root(self) -> ContainerScope:
        scope = self
        while scope._parent is not None:
            scope = scope._parent
        return scope

    @property
    def tree_root(self) -> ContainerScope:
        """The top-level scope of this scope's tree (a direct child of the root)."""
        scope = self
        while scope._parent is not None and scope._parent._parent is not None:
            scope = scope._parent
        return scope

    @property
    def is_disposed(self) -> bool:
        return self._disposed

    def create_scope(self) -> ContainerScope:
        return self.create_child(self._container)

    def create_child(self, container: Container) -> ContainerScope:
        """Create a child scope that resolves through ``container``."""
        with self._lock:
            self._ensure_not_disposed()
            child = ContainerScope(container, parent=self)
            self._children.append(child)
        return child

    def resolve(self, service_type: Any, name: str | None = None) -> Any:
        self._ensure_not_disposed()
        return self._container.resolve_in_scope(service_type, name=name, scope=self)

    def try_resolve(self, service_type: Any, name: str | None = None) -> tuple[bool, Any]:
        self._ensure_not_disposed()
        return self._container.try_resolve_in_scope(service_type, name=name, scope=self)

    def track(self, instance: T) -> T:
        """Register ``instance`` for disposal when this scope closes.

        Objects without ``close()`` or ``__exit__`` are returned untouched, and
        an instance already tracked by this scope is not tracked twice. An
        instance tracked by several scopes of one tree is disposed once, by
        whichever scope closes first.

        Raises:
            TypeWireScopeDisposedError: If the scope is already closed. The
                instance is disposed on a best-effort basis first.

        """
        if not is_disposable(instance):
            return instance

        guard = self.root._guard_for(instance)
        with self._lock:
            if not self._disposed:
                if id(instance) not in self._tracked_ids:
                    self._tracked_ids.add(id(instance))
                    self._instances.callback(guard.close)
                return instance

        dispose_quietly(guard)
        msg = f"Cannot track {instance!r}: the scope has already been disposed."
        raise TypeWireScopeDisposedError(msg)

    def get_or_add(self, key: Any, factory: Callable[[], T]) -> T:
        """Return the scoped instance cached under ``key``, creating it once."""
        self._ensure_not_disposed()
        return self._scoped.get_or_add(key, factory)

    def close(self) -> None:
        """Dispose child scopes, then tracked instances, then detach from the parent.

        Closing an already closed scope does nothing. Exceptions raised by
        disposed instances propagate after every instance has been disposed.
        """
        with self._lock:
            if self._disposed:
                return
            self._disposed = True
            children = list(self._children)
            instances = self._instances

        logger.debug(
            "Closing scope %r (%d child scope(s), %d tracked instance(s))",
            self,
            len(children),
            len(self._tracked_ids),
        )
        with ExitStack() as stack:
            stack.callback(self._detach)
            stack.push(instances)
            for child in children:
                stack.callback(child.close)

    def __enter__(self) -> Self:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_value: BaseException | None,
        traceback: TracebackType | None,
    ) -> None:
        self.close()

    def __repr__(self) -> str:
        state = "disposed" if self._disposed else "active"
        kind = "root" if self._parent is None else "child"
        return f"<ContainerScope {kind} {state} at {id(self):#x}>"

    def _guard_for(self, instance: Any) -> _DisposalGuard:
        """Return the tree-wide disposal guard of ``instance``.

        Guards are remembered until the instance is garbage collected, so a
        disposed instance tracked again is not disposed a second time.
        Instances that cannot be weakly referenced get a fresh guard per call.
        """
        key = id(instance)
        with self._guards_lock:
            entry = self._guards.get(key)
            if entry is not None:
                return entry[1]
            guard = _DisposalGuard(instance)
            try:
                reference = weakref.ref(instance, partial(self._forget_guard, key))
            except TypeError:
                return guard
            self._guards[key] = (reference, guard)
            return guard

    def _forget_guard(self, key: int, reference: weakref.ref[Any]) -> None:
        with self._guards_lock:
            entry = self._guards.get(key)
            if entry is not None and entry[0] is reference:
                del self._guards[key]

    def _detach(self) -> None:
        parent = self._parent
        if parent is None:
            return
        with parent._lock:
            if self in parent._children:
                parent._children.remove(self)

    def _ensure_not_disposed(self) -> None:
        if self._disposed:
            msg = f"{self!r} has already been disposed."
            raise TypeWireScopeDisposedError(msg)


class _DisposalGuard:
    """Disposes one instance at most once, however many scopes track it."""

    __slots__ = ("_disposed", "_instance", "_lock")

    def __init__(self, instance: Any) -> None:
        self._instance = instance
        self._disposed = False
        self._lock = threading.Lock()

    def close(self) -> None:
        with self._lock:
            if self._disposed:
                return
            self._disposed = True
            instance, self._instance = self._instance, None
        with ExitStack() as stack:
            _push_disposal(stack, instance)


def is_disposable(instance: Any) -> bool:
    """Return whether ``instance`` has a ``close()`` method or is a context manager."""
    if isinstance(instance, type):
        return False
    return callable(getattr(instance, "close", None)) or hasattr(instance, "__exit__")


def dispose_quietly(instance: Any) -> None:
    """Best-effort disposal that suppresses any exception raised while disposing."""
    with suppress(Exception), ExitStack() as stack:
        _push_disposal(stack, instance)


def _push_disposal(stack: ExitStack, instance: Any) -> None:
    close = getattr(instance, "close", None)
    if callable(close):
        stack.callback(close)
    else:
        stack.push(instance)
