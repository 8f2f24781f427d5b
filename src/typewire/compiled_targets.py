"""Compiled targets for fast repeated resolution.

These callables are created once per target and requested type by
``TargetCompiler``. All binding decisions (constructor choice, parameter
targets, generic closure) are made before they are built, so calling one only
runs the dependency chain.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import TYPE_CHECKING, Any, Protocol

from typewire.exceptions import TypeWireServiceNotRegisteredError
from typewire.types import Lazy, ScopePreference

if TYPE_CHECKING:
    from typewire.resolve_context import ResolveContext
    from typewire.scope import InstanceCache


class CompiledTarget(Protocol):
    """Protocol for compiled targets."""

    def __call__(self, context: ResolveContext) -> Any:
        """Produce and return an instance."""
        ...


class ConstantCompiledTarget:
    """Returns a pre-existing object."""

    __slots__ = ("_value",)

    def __init__(self, value: Any) -> None:
        self._value = value

    def __call__(self, context: ResolveContext) -> Any:
        return self._value


class ConstructorCompiledTarget:
    """Calls a constructor (or delegate) with pre-compiled argument producers.

    Positional-only parameters are passed positionally, everything else by
    keyword. Members are assigned after construction.
    """

    __slots__ = ("_args", "_factory", "_kwargs", "_members")

    def __init__(
        self,
        factory: Callable[..., Any],
        args: tuple[CompiledTarget, ...] = (),
        kwargs: tuple[tuple[str, CompiledTarget], ...] = (),
        members: tuple[tuple[str, CompiledTarget], ...] = (),
    ) -> None:
        self._factory = factory
        self._args = args
        self._kwargs = kwargs
        self._members = members

    def __call__(self, context: ResolveContext) -> Any:
        instance = self._factory(
            *[producer(context) for producer in self._args],
            **{name: producer(context) for name, producer in self._kwargs},
        )
        for name, producer in self._members:
            setattr(instance, name, producer(context))
        return instance


class TrackingCompiledTarget:
    """Registers produced instances with the current or root scope for disposal."""

    __slots__ = ("_inner", "_preference")

    def __init__(self, inner: CompiledTarget, preference: ScopePreference) -> None:
        self._inner = inner
        self._preference = preference

    def __call__(self, context: ResolveContext) -> Any:
        instance = self._inner(context)
        scope = context.scope if self._preference is ScopePreference.CURRENT else context.scope.root
        return scope.track(instance)


class SingletonCompiledTarget:
    """Produces one instance per cache key for the lifetime of the container.

    The instance is created against the root scope so that anything it
    tracks is disposed with the container, not with the requesting scope.
    """

    __slots__ = ("_cache", "_inner", "_key")

    def __init__(self, cache: InstanceCache, key: Any, inner: CompiledTarget) -> None:
        self._cache = cache
        self._key = key
        self._inner = inner

    def __call__(self, context: ResolveContext) -> Any:
        return self._cache.get_or_add(
            self._key,
            lambda: self._inner(context.with_scope(context.scope.root)),
        )


class ScopedCompiledTarget:
    """Produces one instance per cache key per top-level scope tree."""

    __slots__ = ("_inner", "_key")

    def __init__(self, key: Any, inner: CompiledTarget) -> None:
        self._key = key
        self._inner = inner

    def __call__(self, context: ResolveContext) -> Any:
        owner = context.scope.tree_root
        return owner.get_or_add(self._key, lambda: self._inner(context.with_scope(owner)))


class CollectionCompiledTarget:
    """Produces a list or tuple from a fixed sequence of element producers."""

    __slots__ = ("_as_list", "_items")

    def __init__(self, items: tuple[CompiledTarget, ...], *, as_list: bool) -> None:
        self._items = items
        self._as_list = as_list

    def __call__(self, context: ResolveContext) -> Any:
        values = [item(context) for item in self._items]
        return values if self._as_list else tuple(values)


class RuntimeResolveCompiledTarget:
    """Resolves a contract through the container when called."""

    __slots__ = ("_service_type",)

    def __init__(self, service_type: Any) -> None:
        self._service_type = service_type

    def __call__(self, context: ResolveContext) -> Any:
        return context.resolve(self._service_type)


class FuncCompiledTarget:
    """Produces a factory bound to the calling scope."""

    __slots__ = ("_result_type",)

    def __init__(self, result_type: Any) -> None:
        self._result_type = result_type

    def __call__(self, context: ResolveContext) -> Callable[[], Any]:
        result_type = self._result_type
        return lambda: context.resolve(result_type)


class LazyCompiledTarget:
    """Produces a ``Lazy`` bound to the calling scope."""

    __slots__ = ("_result_type",)

    def __init__(self, result_type: Any) -> None:
        self._result_type = result_type

    def __call__(self, context: ResolveContext) -> Lazy[Any]:
        result_type = self._result_type
        return Lazy(lambda: context.resolve(result_type))


class UnresolvedTypeCompiledTarget:
    """Stands in for a contract with no registration; raises only when called."""

    __slots__ = ("_name", "_service_type")

    def __init__(self, service_type: Any, name: str | None = None) -> None:
        self._service_type = service_type
        self._name = name

    def __call__(self, context: ResolveContext) -> Any:
        raise TypeWireServiceNotRegisteredError(self._service_type, self._name)
