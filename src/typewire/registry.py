"""Storage and lookup of targets by contract type and name.

Keys are ``(service_type, name)`` pairs. Open generic contracts are stored
under their unsubscripted origin and consulted when no exact closed key
matches. A ``TargetContainer`` with a parent is a layer: it answers from its
own entries first and falls back to the parent without ever writing to it.
"""

from __future__ import annotations

import itertools
import threading
from collections.abc import Iterator
from typing import Any, ClassVar, get_args

from typewire.defaults import NAME_SEPARATOR
from typewire.exceptions import TypeWireInvalidRegistrationError
from typewire.generics import (
    GenericTypeMapper,
    contains_typevar,
    is_assignable,
    is_open_generic,
    origin_of,
)
from typewire.targets import DecoratorTarget, Target


class TargetList:
    """Ordered targets registered for one key; the most recent one is the default."""

    __slots__ = ("_entries",)

    def __init__(self) -> None:
        self._entries: list[tuple[int, Target]] = []

    def add(self, sequence: int, target: Target) -> None:
        self._entries.append((sequence, target))

    @property
    def default(self) -> Target | None:
        return self._entries[-1][1] if self._entries else None

    def latest_supporting(self, requested: Any) -> Target | None:
        for _, target in reversed(self._entries):
            if target.supports_type(requested):
                return target
        return None

    def entries(self) -> tuple[tuple[int, Target], ...]:
        return tuple(self._entries)

    def __iter__(self) -> Iterator[Target]:
        return (target for _, target in self._entries)

    def __len__(self) -> int:
        return len(self._entries)


class TargetContainer:
    """Registry of targets, optionally layered over a parent registry."""

    _sequence: ClassVar[itertools.count[int]] = itertools.count()

    def __init__(self, parent: TargetContainer | None = None) -> None:
        self._parent = parent
        self._entries: dict[tuple[Any, str | None], TargetList] = {}
        self._decorators: dict[Any, list[type]] = {}
        self._decorated: dict[tuple[Target, Any], Target] = {}
        self._version = 0
        self._lock = threading.RLock()

    @property
    def parent(self) -> TargetContainer | None:
        return self._parent

    @property
    def version(self) -> int:
        """A counter that grows whenever this layer or one of its parents changes."""
        if self._parent is None:
            return self._version
        return self._version + self._parent.version

    def register(self, target: Target, service_type: Any = None, *, name: str | None = None) -> None:
        """Register ``target`` for ``service_type`` (its declared type by default).

        Raises:
            TypeWireInvalidRegistrationError: If ``target`` is ``None`` or cannot
                produce instances usable as ``service_type``.

        """
        if target is None:
            msg = "Cannot register None as a target."
            raise TypeWireInvalidRegistrationError(msg)
        if service_type is None:
            service_type = target.declared_type
        if not target.supports_type(service_type):
            msg = f"{target!r} cannot be registered for {service_type!r}: incompatible types."
            raise TypeWireInvalidRegistrationError(msg)

        key = (_storage_type(service_type), name)
        with self._lock:
            self._entries.setdefault(key, TargetList()).add(next(self._sequence), target)
            self._decorated.clear()
            self._version += 1

    def register_decorator(self, decorator_type: type, service_type: Any) -> None:
        """Decorate every target fetched from this layer for ``service_type``.

        Decorators apply in registration order, so the most recently
        registered decorator is the outermost one. Decorators registered for an
        exact closed type replace the open generic ones for that type.
        """
        if decorator_type is None or service_type is None:
            msg = "Decorator type and service type are required."
            raise TypeWireInvalidRegistrationError(msg)
        if not isinstance(origin_of(decorator_type), type):
            msg = f"Decorator must be a class, got {decorator_type!r}."
            raise TypeWireInvalidRegistrationError(msg)

        storage_type = _storage_type(service_type)
        if is_open_generic(decorator_type):
            supported = GenericTypeMapper(decorator_type).supports_origin(storage_type)
        else:
            supported = is_assignable(storage_type, decorator_type)
        if not supported:
            msg = f"Decorator {decorator_type!r} does not implement {service_type!r}."
            raise TypeWireInvalidRegistrationError(msg)

        with self._lock:
            self._decorators.setdefault(storage_type, []).append(decorator_type)
            self._decorated.clear()
            self._version += 1

    def fetch(self, service_type: Any, name: str | None = None) -> Target | None:
        """Return the default target for ``service_type``, or ``None``.

        Hierarchical names fall back to shorter prefixes and finally to the
        unnamed registration. Parent layers are only consulted when this layer
        has nothing for the type.
        """
        target = self.fetch_own(service_type, name)
        if target is None and self._parent is not None:
            return self._parent.fetch(service_type, name)
        return target

    def fetch_own(self, service_type: Any, name: str | None = None) -> Target | None:
        """Like ``fetch``, but never consults the parent layer."""
        for candidate in _name_candidates(name):
            target = self._fetch_own(service_type, candidate)
            if target is not None:
                return self._decorate(target, service_type)
        return None

    def fetch_all(self, service_type: Any, name: str | None = None) -> list[Target]:
        """Return every target registered for ``service_type`` in registration order."""
        own = self._fetch_all_own(service_type, name)
        if not own and self._parent is not None:
            return self._parent.fetch_all(service_type, name)
        return [self._decorate(target, service_type) for _, target in own]

    def fetch_compatible(self, element_type: Any) -> list[tuple[Target, Any]]:
        """Return ``(target, compile_type)`` for every unnamed registration usable as ``element_type``.

        Closed keys match when their type is assignable to ``element_type``
        (covariant and contravariant generic arguments are honoured). Open keys
        match when one of their targets supports the element type. Results are
        in registration order across all keys and layers.
        """
        return [(target, compile_type) for _, target, compile_type in self._compatible(element_type, set())]

    def registered_keys(self) -> list[tuple[Any, str | None]]:
        """Return every ``(service_type, name)`` key of this layer and its parents."""
        with self._lock:
            keys = list(self._entries)
        if self._parent is not None:
            keys.extend(key for key in self._parent.registered_keys() if key not in keys)
        return keys

    def __contains__(self, service_type: Any) -> bool:
        return self.fetch(service_type) is not None

    def _fetch_own(self, service_type: Any, name: str | None) -> Target | None:
        entries = self._entries.get((service_type, name))
        if entries is not None and entries.default is not None:
            return entries.default
        if get_args(service_type):
            open_entries = self._entries.get((origin_of(service_type), name))
            if open_entries is not None:
                return open_entries.latest_supporting(service_type)
        return None

    def _fetch_all_own(self, service_type: Any, name: str | None) -> list[tuple[int, Target]]:
        found: list[tuple[int, Target]] = []
        entries = self._entries.get((service_type, name))
        if entries is not None:
            found.extend(entries.entries())
        if get_args(service_type):
            open_entries = self._entries.get((origin_of(service_type), name))
            if open_entries is not None:
                found.extend(
                    (sequence, target)
                    for sequence, target in open_entries.entries()
                    if target.supports_type(service_type)
                )
        found.sort(key=lambda entry: entry[0])
        return found

    def _compatible(
        self,
        element_type: Any,
        shadowed: set[Any],
    ) -> list[tuple[int, Target, Any]]:
        found: list[tuple[int, Target, Any]] = []
        with self._lock:
            items = [(key, entries.entries()) for key, entries in self._entries.items()]
        for (key_type, name), entries in items:
            if name is not None or key_type in shadowed:
                continue
            if is_open_generic(key_type):
                found.extend(
                    (sequence, self._decorate(target, element_type), element_type)
                    for sequence, target in entries
                    if target.supports_type(element_type)
                )
            elif is_assignable(element_type, key_type):
                found.extend(
                    (sequence, self._decorate(target, key_type), key_type)
                    for sequence, target in entries
                )

        if self._parent is not None:
            own_keys = {key_type for key_type, name in self._entries if name is None}
            found.extend(self._parent._compatible(element_type, shadowed | own_keys))
        found.sort(key=lambda entry: entry[0])
        return found

    def _decorate(self, target: Target, service_type: Any) -> Target:
        decorators = self._decorators.get(service_type)
        if decorators is None and get_args(service_type):
            decorators = self._decorators.get(origin_of(service_type))
        if not decorators:
            return target

        cache_key = (target, service_type)
        decorated = self._decorated.get(cache_key)
        if decorated is not None:
            return decorated

        decorated = target
        storage_type = service_type if service_type in self._decorators else origin_of(service_type)
        for decorator_type in decorators:
            decorated = DecoratorTarget(decorator_type, decorated, storage_type)
        with self._lock:
            self._decorated.setdefault(cache_key, decorated)
        return decorated


class OverridingTargetContainer(TargetContainer):
    """A registry layer that shadows, and never mutates, its parent."""

    def __init__(self, parent: TargetContainer) -> None:
        if parent is None:
            msg = "An overriding target container requires a parent."
            raise TypeWireInvalidRegistrationError(msg)
        super().__init__(parent)


def _storage_type(service_type: Any) -> Any:
    if get_args(service_type) and contains_typevar(service_type):
        return origin_of(service_type)
    return service_type


def _name_candidates(name: str | None) -> list[str | None]:
    if name is None:
        return [None]
    parts = name.split(NAME_SEPARATOR)
    candidates: list[str | None] = [NAME_SEPARATOR.join(parts[:end]) for end in range(len(parts), 0, -1)]
    candidates.append(None)
    return candidates
