"""Constructor selection and parameter binding.

Every constructor of a concrete type is bound against the compile context.
Constructors whose parameters can all be satisfied (by an explicit override,
a branch-local or registered target, or a default value) are preferred over
constructors that need some parameter to be assumed resolvable at runtime.
Within that pool the ranking is:

1. most parameters,
2. fewest optional parameters,
3. highest resolvable score (override or local = 2, registered = 1, otherwise 0),
4. most parameters matched by ``named_args``.

A tie for first place is an ambiguity and raises ``TypeWireBindingError``.
"""

from __future__ import annotations

import types
from collections.abc import Mapping
from dataclasses import dataclass, replace
from enum import Enum
from typing import TYPE_CHECKING, Any, Union, get_args, get_origin

from typewire.descriptors import (
    EMPTY,
    ConstructorDescriptor,
    ParameterDescriptor,
    describe_callable,
    describe_constructors,
    describe_members,
)
from typewire.exceptions import TypeWireBindingError
from typewire.targets import ObjectTarget, ResolvedTarget, Target
from typewire.types import MemberBindingBehaviour

if TYPE_CHECKING:
    from collections.abc import Callable

    from typewire.compilation import CompileContext


class BindingKind(str, Enum):
    """Where a parameter's value comes from."""

    OVERRIDE = "override"
    LOCAL = "local"
    REGISTERED = "registered"
    DEFAULT = "default"
    ASSUMED = "assumed"


_SCORES = {
    BindingKind.OVERRIDE: 2,
    BindingKind.LOCAL: 2,
    BindingKind.REGISTERED: 1,
}


@dataclass(frozen=True, slots=True)
class ParameterBinding:
    parameter: ParameterDescriptor
    target: Target
    kind: BindingKind
    service_type: Any


@dataclass(frozen=True, slots=True)
class MemberBinding:
    name: str
    target: Target
    service_type: Any


@dataclass(frozen=True, slots=True)
class ConstructorBinding:
    """The chosen constructor with a target for every parameter and injected member."""

    constructor: ConstructorDescriptor
    parameters: tuple[ParameterBinding, ...]
    members: tuple[MemberBinding, ...] = ()

    @property
    def assumed_count(self) -> int:
        return sum(1 for binding in self.parameters if binding.kind is BindingKind.ASSUMED)

    @property
    def resolvable_score(self) -> int:
        return sum(_SCORES.get(binding.kind, 0) for binding in self.parameters)

    @property
    def named_matches(self) -> int:
        return sum(1 for binding in self.parameters if binding.kind is BindingKind.OVERRIDE)

    def rank(self) -> tuple[int, int, int, int]:
        return (
            -len(self.parameters),
            self.constructor.optional_count,
            -self.resolvable_score,
            -self.named_matches,
        )


class ConstructorBinder:
    """Chooses and binds constructors for concrete types."""

    def bind(
        self,
        concrete_type: Any,
        context: CompileContext,
        *,
        named_args: Mapping[str, Any] | None = None,
        member_binding: MemberBindingBehaviour = MemberBindingBehaviour.NONE,
    ) -> ConstructorBinding:
        """Return the best constructor binding for ``concrete_type``.

        Raises:
            TypeWireBindingError: If the type has no constructors, none of them
                can be bound, or several rank equally.

        """
        constructors = describe_constructors(concrete_type)
        if not constructors:
            msg = f"{concrete_type!r} has no constructors that can be called."
            raise TypeWireBindingError(msg)

        named_args = named_args or {}
        candidates = [
            binding
            for binding in (
                self._bind_constructor(constructor, context, named_args)
                for constructor in constructors
            )
            if binding is not None
        ]
        if not candidates:
            msg = (
                f"No constructor of {concrete_type!r} can be bound: every candidate "
                "has a required parameter without a type annotation or named argument."
            )
            raise TypeWireBindingError(msg)

        best = self._select(concrete_type, candidates)
        if member_binding is MemberBindingBehaviour.BIND_ANNOTATED:
            best = replace(best, members=self._bind_members(concrete_type, best, context))
        return best

    def bind_callable(
        self,
        function: Callable[..., Any],
        context: CompileContext,
        *,
        named_args: Mapping[str, Any] | None = None,
    ) -> ConstructorBinding:
        """Bind the parameters of a delegate the same way a constructor is bound."""
        binding = self._bind_constructor(describe_callable(function), context, named_args or {})
        if binding is None:
            msg = (
                f"Cannot bind {function!r}: a required parameter has no type "
                "annotation or named argument."
            )
            raise TypeWireBindingError(msg)
        return binding

    def _select(self, concrete_type: Any, candidates: list[ConstructorBinding]) -> ConstructorBinding:
        pool = [binding for binding in candidates if not binding.assumed_count] or candidates
        pool.sort(key=ConstructorBinding.rank)
        best = pool[0]
        if len(pool) > 1 and pool[1].rank() == best.rank():
            tied = ", ".join(repr(binding.constructor) for binding in pool if binding.rank() == best.rank())
            msg = f"Ambiguous constructors for {concrete_type!r}: {tied}"
            raise TypeWireBindingError(msg)
        return best

    def _bind_constructor(
        self,
        constructor: ConstructorDescriptor,
        context: CompileContext,
        named_args: Mapping[str, Any],
    ) -> ConstructorBinding | None:
        bindings: list[ParameterBinding] = []
        for parameter in constructor.parameters:
            binding = self._bind_parameter(parameter, context, named_args)
            if binding is None:
                return None
            bindings.append(binding)
        return ConstructorBinding(constructor=constructor, parameters=tuple(bindings))

    def _bind_parameter(  # noqa: PLR0911
        self,
        parameter: ParameterDescriptor,
        context: CompileContext,
        named_args: Mapping[str, Any],
    ) -> ParameterBinding | None:
        if parameter.name in named_args:
            value = named_args[parameter.name]
            target = value if isinstance(value, Target) else ObjectTarget(value)
            service_type = parameter.annotation if parameter.is_annotated else target.declared_type
            return ParameterBinding(parameter, target, BindingKind.OVERRIDE, service_type)

        if not parameter.is_annotated:
            if parameter.has_default:
                target = ObjectTarget(parameter.default)
                return ParameterBinding(parameter, target, BindingKind.DEFAULT, target.declared_type)
            return None

        service_type = _lookup_type(parameter.annotation)
        fallback = ObjectTarget(parameter.default, service_type) if parameter.has_default else None

        if context.fetch_local(service_type) is not None:
            kind = BindingKind.LOCAL
        elif context.fetch(service_type) is not None:
            kind = BindingKind.REGISTERED
        elif get_origin(service_type) is type and get_args(service_type):
            target = ObjectTarget(get_args(service_type)[0], service_type)
            return ParameterBinding(parameter, target, BindingKind.REGISTERED, service_type)
        elif parameter.has_default:
            kind = BindingKind.DEFAULT
        else:
            kind = BindingKind.ASSUMED
        return ParameterBinding(parameter, ResolvedTarget(service_type, fallback), kind, service_type)

    def _bind_members(
        self,
        concrete_type: Any,
        binding: ConstructorBinding,
        context: CompileContext,
    ) -> tuple[MemberBinding, ...]:
        covered = {parameter.name for parameter in binding.constructor.parameters}
        members: list[MemberBinding] = []
        for member in describe_members(concrete_type):
            if member.name in covered:
                continue
            service_type = _lookup_type(member.annotation)
            if context.fetch(service_type) is None:
                continue
            fallback = ObjectTarget(member.default, service_type) if member.default is not EMPTY else None
            members.append(MemberBinding(member.name, ResolvedTarget(service_type, fallback), service_type))
        return tuple(members)


def _lookup_type(annotation: Any) -> Any:
    """Unwrap ``X | None`` to ``X``; the default covers the ``None`` case."""
    if get_origin(annotation) in (Union, types.UnionType):
        arguments = [argument for argument in get_args(annotation) if argument is not type(None)]
        if len(arguments) == 1:
            return arguments[0]
    return annotation
