"""Targets: immutable descriptions of how to produce an instance of a contract.

A target never builds anything itself. ``TargetCompiler`` turns a target into
a compiled target for one requested type, and the container caches the
result.
"""

from __future__ import annotations

import types
from abc import ABC, abstractmethod
from collections.abc import Callable, Iterable, Mapping
from types import MappingProxyType
from typing import Annotated, Any, Literal, TypeVar, Union, get_args, get_origin

from typewire.descriptors import EMPTY, return_annotation
from typewire.exceptions import TypeWireInvalidRegistrationError
from typewire.generics import (
    GenericTypeMapper,
    GenericTypeMapping,
    is_assignable,
    is_open_generic,
    origin_of,
)
from typewire.types import Lazy, MemberBindingBehaviour, ScopeBehaviour, ScopePreference


class Target(ABC):
    """Base class of every resolution strategy.

    Subclasses describe *what* to produce; ``supports_type`` answers whether
    the produced object can be used where ``requested`` is expected. The
    answer may be optimistic: an open generic target can accept a request
    that later fails to bind.
    """

    __slots__ = ()

    @property
    @abstractmethod
    def declared_type(self) -> Any:
        """The type of the objects this target produces."""

    @property
    def scope_behaviour(self) -> ScopeBehaviour:
        return ScopeBehaviour.IMPLICIT

    @property
    def scope_preference(self) -> ScopePreference:
        return ScopePreference.CURRENT

    def supports_type(self, requested: Any) -> bool:
        return is_assignable(requested, self.declared_type)

    def closed_type(self, requested: Any) -> Any:
        """Return the concrete type produced for ``requested``; lifetime caches key on it."""
        return self.declared_type

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.declared_type!r})"


class ObjectTarget(Target):
    """Always produces the same object.

    Raises:
        TypeWireInvalidRegistrationError: If ``value`` is not an instance of
            ``declared_type``. ``None`` is accepted for any declared type so
            that ``param: X | None = None`` defaults can be bound.

    """

    __slots__ = ("_declared_type", "_dispose", "_value")

    def __init__(self, value: Any, declared_type: Any = None, *, dispose: bool = False) -> None:
        if declared_type is not None and not _value_matches(value, declared_type):
            msg = f"Object {value!r} is not compatible with its declared type {declared_type!r}."
            raise TypeWireInvalidRegistrationError(msg)
        self._value = value
        self._declared_type = type(value) if declared_type is None else declared_type
        self._dispose = dispose

    @property
    def value(self) -> Any:
        return self._value

    @property
    def declared_type(self) -> Any:
        return self._declared_type

    @property
    def dispose(self) -> bool:
        return self._dispose

    @property
    def scope_behaviour(self) -> ScopeBehaviour:
        return ScopeBehaviour.IMPLICIT if self._dispose else ScopeBehaviour.NONE

    @property
    def scope_preference(self) -> ScopePreference:
        return ScopePreference.ROOT

    def supports_type(self, requested: Any) -> bool:
        if is_assignable(requested, self._declared_type):
            return True
        requested_origin = origin_of(requested)
        return isinstance(requested_origin, type) and _safe_isinstance(self._value, requested_origin)


class ConstructorTarget(Target):
    """Builds a closed concrete type by calling its best-matching constructor.

    Args:
        concrete_type: A class or a closed generic alias such as ``Box[int]``.
        named_args: Explicit values (or targets) for constructor parameters, by name.
        member_binding: Overrides the container's ``MEMBER_BINDING`` option.
        scope_behaviour: How produced instances interact with the active scope.
        scope_preference: Which scope tracks produced instances.

    """

    __slots__ = (
        "_concrete_type",
        "_member_binding",
        "_named_args",
        "_scope_behaviour",
        "_scope_preference",
    )

    def __init__(
        self,
        concrete_type: Any,
        *,
        named_args: Mapping[str, Any] | None = None,
        member_binding: MemberBindingBehaviour | None = None,
        scope_behaviour: ScopeBehaviour = ScopeBehaviour.IMPLICIT,
        scope_preference: ScopePreference = ScopePreference.CURRENT,
    ) -> None:
        if not isinstance(origin_of(concrete_type), type):
            msg = f"Concrete type must be a class, got {concrete_type!r}."
            raise TypeWireInvalidRegistrationError(msg)
        if is_open_generic(concrete_type):
            msg = (
                f"{concrete_type!r} is an open generic type; "
                "use GenericConstructorTarget to register it."
            )
            raise TypeWireInvalidRegistrationError(msg)
        self._concrete_type = concrete_type
        self._named_args = MappingProxyType(dict(named_args or {}))
        self._member_binding = member_binding
        self._scope_behaviour = scope_behaviour
        self._scope_preference = scope_preference

    @property
    def concrete_type(self) -> Any:
        return self._concrete_type

    @property
    def declared_type(self) -> Any:
        return self._concrete_type

    @property
    def named_args(self) -> Mapping[str, Any]:
        return self._named_args

    @property
    def member_binding(self) -> MemberBindingBehaviour | None:
        return self._member_binding

    @property
    def scope_behaviour(self) -> ScopeBehaviour:
        return self._scope_behaviour

    @property
    def scope_preference(self) -> ScopePreference:
        return self._scope_preference


class GenericConstructorTarget(Target):
    """Builds closures of an open generic class.

    The declared type stays open. Each request is mapped onto the class's
    hierarchy to find the closing type, which is then built the same way as a
    ``ConstructorTarget``.
    """

    __slots__ = (
        "_mapper",
        "_member_binding",
        "_named_args",
        "_open_type",
        "_scope_behaviour",
        "_scope_preference",
    )

    def __init__(
        self,
        open_type: type,
        *,
        named_args: Mapping[str, Any] | None = None,
        member_binding: MemberBindingBehaviour | None = None,
        scope_behaviour: ScopeBehaviour = ScopeBehaviour.IMPLICIT,
        scope_preference: ScopePreference = ScopePreference.CURRENT,
    ) -> None:
        if not is_open_generic(open_type):
            msg = f"{open_type!r} is not an open generic class."
            raise TypeWireInvalidRegistrationError(msg)
        self._open_type = open_type
        self._mapper = GenericTypeMapper(open_type)
        self._named_args = MappingProxyType(dict(named_args or {}))
        self._member_binding = member_binding
        self._scope_behaviour = scope_behaviour
        self._scope_preference = scope_preference

    @property
    def declared_type(self) -> type:
        return self._open_type

    @property
    def named_args(self) -> Mapping[str, Any]:
        return self._named_args

    @property
    def member_binding(self) -> MemberBindingBehaviour | None:
        return self._member_binding

    @property
    def scope_behaviour(self) -> ScopeBehaviour:
        return self._scope_behaviour

    @property
    def scope_preference(self) -> ScopePreference:
        return self._scope_preference

    def map_type(self, requested: Any) -> GenericTypeMapping:
        return self._mapper.map_type(requested)

    def supports_type(self, requested: Any) -> bool:
        if not get_args(requested):
            return is_assignable(requested, self._open_type)
        if not self._mapper.supports_origin(requested):
            return False
        mapping = self._mapper.map_type(requested)
        return mapping.success or mapping.invalid_arguments

    def closed_type(self, requested: Any) -> Any:
        mapping = self._mapper.map_type(requested)
        return mapping.closing_type if mapping.success else self._open_type


class _WrapperTarget(Target):
    __slots__ = ("_inner",)

    def __init__(self, inner: Target) -> None:
        if inner is None:
            msg = f"{type(self).__name__} requires an inner target."
            raise TypeWireInvalidRegistrationError(msg)
        self._inner = inner

    @property
    def inner(self) -> Target:
        return self._inner

    @property
    def declared_type(self) -> Any:
        return self._inner.declared_type

    @property
    def scope_preference(self) -> ScopePreference:
        return self._inner.scope_preference

    def supports_type(self, requested: Any) -> bool:
        return self._inner.supports_type(requested)

    def closed_type(self, requested: Any) -> Any:
        return self._inner.closed_type(requested)

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self._inner!r})"


class SingletonTarget(_WrapperTarget):
    """One instance per closed type for the lifetime of the container."""

    __slots__ = ()

    @property
    def scope_behaviour(self) -> ScopeBehaviour:
        return self._inner.scope_behaviour


class ScopedTarget(_WrapperTarget):
    """One instance per closed type per top-level scope tree."""

    __slots__ = ()

    @property
    def scope_behaviour(self) -> ScopeBehaviour:
        return ScopeBehaviour.EXPLICIT


class DecoratorTarget(Target):
    """Wraps ``inner`` with an instance of ``decorator_type``.

    The decorator's constructor receives the inner instance through a
    parameter annotated with the decorated contract.
    """

    __slots__ = ("_decorator_type", "_inner", "_service_type")

    def __init__(self, decorator_type: Any, inner: Target, service_type: Any) -> None:
        self._decorator_type = decorator_type
        self._inner = inner
        self._service_type = service_type

    @property
    def decorator_type(self) -> Any:
        return self._decorator_type

    @property
    def inner(self) -> Target:
        return self._inner

    @property
    def service_type(self) -> Any:
        return self._service_type

    @property
    def declared_type(self) -> Any:
        return self._decorator_type

    def supports_type(self, requested: Any) -> bool:
        return self._inner.supports_type(requested)

    def closed_type(self, requested: Any) -> Any:
        return self._inner.closed_type(requested)

    def decorated_type(self, requested: Any) -> Any:
        """Return the contract the inner instance is registered under while decorating."""
        if is_open_generic(self._service_type) and origin_of(requested) is self._service_type:
            return requested
        return self._service_type

    def __repr__(self) -> str:
        return f"DecoratorTarget({self._decorator_type!r}, {self._inner!r})"


class ListTarget(Target):
    """An explicit list (or tuple) of targets for one element type."""

    __slots__ = ("_as_tuple", "_element_type", "_targets")

    def __init__(self, element_type: Any, targets: Iterable[Target], *, as_tuple: bool = False) -> None:
        self._element_type = element_type
        self._targets = tuple(targets)
        self._as_tuple = as_tuple
        for target in self._targets:
            if not target.supports_type(element_type):
                msg = f"{target!r} cannot produce elements of type {element_type!r}."
                raise TypeWireInvalidRegistrationError(msg)

    @property
    def element_type(self) -> Any:
        return self._element_type

    @property
    def targets(self) -> tuple[Target, ...]:
        return self._targets

    @property
    def as_tuple(self) -> bool:
        return self._as_tuple

    @property
    def declared_type(self) -> Any:
        if self._as_tuple:
            return tuple[self._element_type, ...]
        return list[self._element_type]

    @property
    def scope_behaviour(self) -> ScopeBehaviour:
        return ScopeBehaviour.NONE


class EnumerableTarget(Target):
    """Every compatible registration of an element type, assembled on request.

    ``entries`` pairs each target with the type it is compiled for, in
    registration order. ``shape`` is the requested collection type; ``list``
    shapes produce a list, every other shape produces a tuple.
    """

    __slots__ = ("_element_type", "_entries", "_shape")

    def __init__(
        self,
        element_type: Any,
        entries: Iterable[tuple[Target, Any]],
        shape: Any,
    ) -> None:
        self._element_type = element_type
        self._entries = tuple(entries)
        self._shape = shape

    @property
    def element_type(self) -> Any:
        return self._element_type

    @property
    def entries(self) -> tuple[tuple[Target, Any], ...]:
        return self._entries

    @property
    def as_list(self) -> bool:
        return origin_of(self._shape) is list

    @property
    def declared_type(self) -> Any:
        return self._shape

    @property
    def scope_behaviour(self) -> ScopeBehaviour:
        return ScopeBehaviour.NONE


class DelegateTarget(Target):
    """Calls a function whose parameters are injected like constructor parameters."""

    __slots__ = ("_declared_type", "_function", "_named_args", "_scope_behaviour")

    def __init__(
        self,
        function: Callable[..., Any],
        declared_type: Any = None,
        *,
        named_args: Mapping[str, Any] | None = None,
        scope_behaviour: ScopeBehaviour = ScopeBehaviour.IMPLICIT,
    ) -> None:
        if function is None or not callable(function):
            msg = f"Delegate must be callable, got {function!r}."
            raise TypeWireInvalidRegistrationError(msg)
        if declared_type is None:
            declared_type = return_annotation(function)
        if declared_type is EMPTY or declared_type is None:
            msg = (
                f"Cannot determine the type produced by {function!r}; "
                "annotate its return type or pass declared_type."
            )
            raise TypeWireInvalidRegistrationError(msg)
        self._function = function
        self._declared_type = declared_type
        self._named_args = MappingProxyType(dict(named_args or {}))
        self._scope_behaviour = scope_behaviour

    @property
    def function(self) -> Callable[..., Any]:
        return self._function

    @property
    def declared_type(self) -> Any:
        return self._declared_type

    @property
    def named_args(self) -> Mapping[str, Any]:
        return self._named_args

    @property
    def scope_behaviour(self) -> ScopeBehaviour:
        return self._scope_behaviour


class ResolvedTarget(Target):
    """Resolves another contract, falling back to ``fallback`` when it is not registered."""

    __slots__ = ("_fallback", "_service_type")

    def __init__(self, service_type: Any, fallback: Target | None = None) -> None:
        self._service_type = service_type
        self._fallback = fallback

    @property
    def declared_type(self) -> Any:
        return self._service_type

    @property
    def fallback(self) -> Target | None:
        return self._fallback

    @property
    def scope_behaviour(self) -> ScopeBehaviour:
        return ScopeBehaviour.NONE


class FuncTarget(Target):
    """Produces a zero-argument callable that resolves ``result_type`` on every call."""

    __slots__ = ("_result_type",)

    def __init__(self, result_type: Any) -> None:
        self._result_type = result_type

    @property
    def result_type(self) -> Any:
        return self._result_type

    @property
    def declared_type(self) -> Any:
        return Callable[[], self._result_type]

    @property
    def scope_behaviour(self) -> ScopeBehaviour:
        return ScopeBehaviour.NONE

    def supports_type(self, requested: Any) -> bool:
        return requested == self.declared_type


class LazyTarget(Target):
    """Produces a ``Lazy`` wrapper that resolves ``result_type`` once, on first access."""

    __slots__ = ("_result_type",)

    def __init__(self, result_type: Any) -> None:
        self._result_type = result_type

    @property
    def result_type(self) -> Any:
        return self._result_type

    @property
    def declared_type(self) -> Any:
        return Lazy[self._result_type]

    @property
    def scope_behaviour(self) -> ScopeBehaviour:
        return ScopeBehaviour.NONE


_NUMERIC_PROMOTIONS: dict[type, tuple[type, ...]] = {float: (int,), complex: (int, float)}


def _value_matches(value: Any, declared_type: Any) -> bool:
    """Return whether ``value`` can be used where ``declared_type`` is expected.

    Forms that cannot be checked at runtime (TypeVars, forward references)
    are accepted.
    """
    if value is None or declared_type is Any or declared_type is object:
        return True
    origin = get_origin(declared_type)
    if origin in (Union, types.UnionType):
        return any(_value_matches(value, argument) for argument in get_args(declared_type))
    if origin is Literal:
        return value in get_args(declared_type)
    if origin is Annotated:
        return _value_matches(value, get_args(declared_type)[0])
    if origin is type:
        return isinstance(origin_of(value), type)
    if isinstance(declared_type, (TypeVar, str)):
        return True
    supertype = getattr(declared_type, "__supertype__", None)
    if supertype is not None:
        return _value_matches(value, supertype)
    if is_assignable(declared_type, type(value)):
        return True
    if isinstance(value, _NUMERIC_PROMOTIONS.get(declared_type, ())):
        return True
    declared_origin = origin_of(declared_type)
    return isinstance(declared_origin, type) and _safe_isinstance(value, declared_origin)


def _safe_isinstance(value: Any, cls: type) -> bool:
    try:
        return isinstance(value, cls)
    except TypeError:
        return False
