"""Compilation of targets into cached, executable compiled targets.

``TargetCompiler.compile`` dispatches on the target's class. Every
compilation first pushes ``(target, requested_type)`` onto the compile stack
shared by the whole request; a repeated pair means the dependency graph is
cyclic.
"""

from __future__ import annotations

import functools
import logging
from collections.abc import Iterator
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from typewire.binding import ConstructorBinder, ConstructorBinding
from typewire.compiled_targets import (
    CollectionCompiledTarget,
    CompiledTarget,
    ConstantCompiledTarget,
    ConstructorCompiledTarget,
    FuncCompiledTarget,
    LazyCompiledTarget,
    RuntimeResolveCompiledTarget,
    ScopedCompiledTarget,
    SingletonCompiledTarget,
    TrackingCompiledTarget,
)
from typewire.exceptions import (
    TypeWireBindingError,
    TypeWireCyclicDependencyError,
    TypeWireGenericMappingError,
    TypeWireInvalidGenericTypeArgumentError,
)
from typewire.generics import GenericTypeMapper, is_open_generic
from typewire.options import Option
from typewire.registry import OverridingTargetContainer
from typewire.targets import (
    ConstructorTarget,
    DecoratorTarget,
    DelegateTarget,
    EnumerableTarget,
    FuncTarget,
    GenericConstructorTarget,
    LazyTarget,
    ListTarget,
    ObjectTarget,
    ResolvedTarget,
    ScopedTarget,
    SingletonTarget,
    Target,
)
from typewire.types import MemberBindingBehaviour, ScopeBehaviour

if TYPE_CHECKING:
    from typewire.container import Container

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True, eq=False)
class CompileStackEntry:
    """One ``(target, type)`` pair being compiled.

    Entries compare by target identity and type equality, so a wrapper that
    compiles the same target for a different type is not mistaken for a cycle.
    """

    target: Target
    type: Any

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, CompileStackEntry):
            return NotImplemented
        return self.target is other.target and self.type == other.type

    def __hash__(self) -> int:
        return hash((id(self.target), self.type))

    def __repr__(self) -> str:
        return f"{self.target!r} for {self.type!r}"


class CompileContext:
    """State for compiling one request and its dependencies.

    A child context shares its parent's container, name and compile stack, and
    owns a registry layer for registrations that must only be visible to the
    branch being compiled (for example the target a decorator wraps).
    """

    __slots__ = ("_container", "_name", "_parent", "_requested_type", "_stack", "_targets")

    def __init__(
        self,
        container: Container,
        requested_type: Any,
        *,
        name: str | None = None,
        parent: CompileContext | None = None,
        stack: list[CompileStackEntry] | None = None,
    ) -> None:
        self._container = container
        self._requested_type = requested_type
        self._name = name
        self._parent = parent
        self._stack: list[CompileStackEntry] = [] if stack is None else stack
        self._targets: OverridingTargetContainer | None = None

    @property
    def container(self) -> Container:
        return self._container

    @property
    def requested_type(self) -> Any:
        return self._requested_type

    @property
    def name(self) -> str | None:
        return self._name

    @property
    def parent(self) -> CompileContext | None:
        return self._parent

    @property
    def stack(self) -> tuple[CompileStackEntry, ...]:
        return tuple(self._stack)

    @property
    def targets(self) -> OverridingTargetContainer:
        """This context's local registry layer, created on first use."""
        if self._targets is None:
            self._targets = OverridingTargetContainer(self._container.targets)
        return self._targets

    @property
    def has_local_overrides(self) -> bool:
        return any(context._targets is not None for context in self._chain())

    def new_child(self, requested_type: Any) -> CompileContext:
        return CompileContext(
            self._container,
            requested_type,
            name=self._name,
            parent=self,
            stack=self._stack,
        )

    def push(self, target: Target, requested_type: Any) -> bool:
        """Push an entry onto the compile stack; ``False`` if it is already present."""
        entry = CompileStackEntry(target, requested_type)
        if entry in self._stack:
            return False
        self._stack.append(entry)
        return True

    def pop(self) -> CompileStackEntry:
        return self._stack.pop()

    def fetch(self, service_type: Any) -> Target | None:
        """Find a target, preferring registrations local to this context's branch."""
        local = self.fetch_local(service_type)
        if local is not None:
            return local
        return self._container.fetch_target(service_type, self._name)

    def fetch_local(self, service_type: Any) -> Target | None:
        """Find a target registered in this context's branch only."""
        for context in self._chain():
            if context._targets is not None:
                local = context._targets.fetch_own(service_type, self._name)
                if local is not None:
                    return local
        return None

    def _chain(self) -> Iterator[CompileContext]:
        context: CompileContext | None = self
        while context is not None:
            yield context
            context = context._parent


class TargetCompiler:
    """Turns targets into compiled targets, caching results per target, type and name."""

    def __init__(self, binder: ConstructorBinder | None = None) -> None:
        self._binder = binder or ConstructorBinder()
        self._cache: dict[tuple[Target, Any, str | None], CompiledTarget] = {}

    def clear(self) -> None:
        self._cache.clear()

    def compile(self, target: Target, context: CompileContext) -> CompiledTarget:
        """Compile ``target`` for ``context.requested_type``.

        Raises:
            TypeWireCyclicDependencyError: If the target is already being
                compiled for the same type further up the stack.
            TypeWireBindingError: If the target cannot be bound.

        """
        requested_type = context.requested_type
        if not context.push(target, requested_type):
            raise TypeWireCyclicDependencyError(
                requested_type,
                [*context.stack, CompileStackEntry(target, requested_type)],
            )
        try:
            cacheable = not context.has_local_overrides
            cache_key = (target, requested_type, context.name)
            if cacheable:
                cached = self._cache.get(cache_key)
                if cached is not None:
                    return cached

            logger.debug("Compiling %r for %r", target, requested_type)
            compiled = self._compile(target, context)
            if cacheable:
                self._cache.setdefault(cache_key, compiled)
            return compiled
        finally:
            context.pop()

    @functools.singledispatchmethod
    def _compile(self, target: Target, context: CompileContext) -> CompiledTarget:
        msg = f"Unsupported target {target!r}."
        raise TypeWireBindingError(msg)

    @_compile.register(ObjectTarget)
    def _compile_object(self, target: ObjectTarget, context: CompileContext) -> CompiledTarget:
        compiled = ConstantCompiledTarget(target.value)
        return self._apply_scope_behaviour(target, compiled, target.declared_type)

    @_compile.register(ConstructorTarget)
    def _compile_constructor(self, target: ConstructorTarget, context: CompileContext) -> CompiledTarget:
        compiled = self._compile_concrete(target, target.concrete_type, context)
        return self._apply_scope_behaviour(target, compiled, target.concrete_type)

    @_compile.register(GenericConstructorTarget)
    def _compile_generic_constructor(
        self,
        target: GenericConstructorTarget,
        context: CompileContext,
    ) -> CompiledTarget:
        closing_type = _close(target.declared_type, target.map_type(context.requested_type))
        compiled = self._compile_concrete(target, closing_type, context)
        return self._apply_scope_behaviour(target, compiled, closing_type)

    @_compile.register(SingletonTarget)
    def _compile_singleton(self, target: SingletonTarget, context: CompileContext) -> CompiledTarget:
        inner = self.compile(target.inner, context.new_child(context.requested_type))
        key = (target, target.inner.closed_type(context.requested_type))
        return SingletonCompiledTarget(context.container.singletons, key, inner)

    @_compile.register(ScopedTarget)
    def _compile_scoped(self, target: ScopedTarget, context: CompileContext) -> CompiledTarget:
        inner = self.compile(target.inner, context.new_child(context.requested_type))
        return ScopedCompiledTarget((target, target.inner.closed_type(context.requested_type)), inner)

    @_compile.register(DecoratorTarget)
    def _compile_decorator(self, target: DecoratorTarget, context: CompileContext) -> CompiledTarget:
        requested_type = context.requested_type
        decorated_type = target.decorated_type(requested_type)
        decorator_type = target.decorator_type
        if is_open_generic(decorator_type):
            decorator_type = _close(decorator_type, GenericTypeMapper(decorator_type).map_type(decorated_type))

        child = context.new_child(requested_type)
        child.targets.register(target.inner, decorated_type)
        if requested_type != decorated_type:
            child.targets.register(target.inner, requested_type)
        return self.compile(ConstructorTarget(decorator_type), child)

    @_compile.register(ListTarget)
    def _compile_list(self, target: ListTarget, context: CompileContext) -> CompiledTarget:
        items = tuple(
            self.compile(item, context.new_child(target.element_type)) for item in target.targets
        )
        return CollectionCompiledTarget(items, as_list=not target.as_tuple)

    @_compile.register(EnumerableTarget)
    def _compile_enumerable(self, target: EnumerableTarget, context: CompileContext) -> CompiledTarget:
        items = tuple(
            self.compile(item, context.new_child(compile_type))
            for item, compile_type in target.entries
        )
        return CollectionCompiledTarget(items, as_list=target.as_list)

    @_compile.register(DelegateTarget)
    def _compile_delegate(self, target: DelegateTarget, context: CompileContext) -> CompiledTarget:
        binding = self._binder.bind_callable(target.function, context, named_args=target.named_args)
        compiled = self._compile_binding(target.function, binding, context)
        return self._apply_scope_behaviour(target, compiled, target.declared_type)

    @_compile.register(ResolvedTarget)
    def _compile_resolved(self, target: ResolvedTarget, context: CompileContext) -> CompiledTarget:
        found = context.fetch(target.declared_type)
        if found is not None:
            return self.compile(found, context.new_child(target.declared_type))
        if target.fallback is not None:
            return self.compile(target.fallback, context.new_child(target.declared_type))
        return RuntimeResolveCompiledTarget(target.declared_type)

    @_compile.register(FuncTarget)
    def _compile_func(self, target: FuncTarget, context: CompileContext) -> CompiledTarget:
        return FuncCompiledTarget(target.result_type)

    @_compile.register(LazyTarget)
    def _compile_lazy(self, target: LazyTarget, context: CompileContext) -> CompiledTarget:
        return LazyCompiledTarget(target.result_type)

    def _compile_concrete(
        self,
        target: ConstructorTarget | GenericConstructorTarget,
        concrete_type: Any,
        context: CompileContext,
    ) -> CompiledTarget:
        member_binding = target.member_binding
        if member_binding is None:
            member_binding = context.container.options.get(Option.MEMBER_BINDING, concrete_type)
        binding = self._binder.bind(
            concrete_type,
            context,
            named_args=target.named_args,
            member_binding=MemberBindingBehaviour(member_binding),
        )
        return self._compile_binding(concrete_type, binding, context)

    def _compile_binding(
        self,
        factory: Any,
        binding: ConstructorBinding,
        context: CompileContext,
    ) -> CompiledTarget:
        args: list[CompiledTarget] = []
        kwargs: list[tuple[str, CompiledTarget]] = []
        for parameter_binding in binding.parameters:
            parameter = parameter_binding.parameter
            compiled = self.compile(parameter_binding.target, context.new_child(parameter_binding.service_type))
            if parameter.is_positional_only:
                args.append(compiled)
            else:
                kwargs.append((parameter.name, compiled))
        members = tuple(
            (member.name, self.compile(member.target, context.new_child(member.service_type)))
            for member in binding.members
        )
        return ConstructorCompiledTarget(factory, tuple(args), tuple(kwargs), members)

    def _apply_scope_behaviour(self, target: Target, compiled: CompiledTarget, closed_type: Any) -> CompiledTarget:
        behaviour = target.scope_behaviour
        if behaviour is ScopeBehaviour.NONE:
            return compiled
        tracked = TrackingCompiledTarget(compiled, target.scope_preference)
        if behaviour is ScopeBehaviour.EXPLICIT:
            return ScopedCompiledTarget((target, closed_type), tracked)
        return tracked


def _close(open_type: Any, mapping: Any) -> Any:
    if mapping.invalid_arguments:
        raise TypeWireInvalidGenericTypeArgumentError(mapping.error_message)
    if not mapping.success:
        msg = f"Cannot map {mapping.requested_type!r} onto {open_type!r}: {mapping.error_message}"
        raise TypeWireGenericMappingError(msg)
    if not mapping.is_fully_bound:
        raise TypeWireGenericMappingError(mapping.error_message)
    return mapping.closing_type
