"""Constructor and member descriptors computed once per concrete class."""

from __future__ import annotations

import functools
import inspect
from collections.abc import Callable
from dataclasses import dataclass, replace
from typing import Any, ClassVar, get_origin, get_type_hints

from typing_extensions import get_overloads

from typewire.exceptions import TypeWireBindingError
from typewire.generics import origin_of, parameter_mapping, substitute_typevars

EMPTY: Any = inspect.Parameter.empty

_SKIPPED_KINDS = frozenset({inspect.Parameter.VAR_POSITIONAL, inspect.Parameter.VAR_KEYWORD})


@dataclass(frozen=True, slots=True)
class ParameterDescriptor:
    """A single injectable constructor or delegate parameter."""

    name: str
    annotation: Any = EMPTY
    default: Any = EMPTY
    kind: inspect._ParameterKind = inspect.Parameter.POSITIONAL_OR_KEYWORD

    @property
    def has_default(self) -> bool:
        return self.default is not EMPTY

    @property
    def is_annotated(self) -> bool:
        return self.annotation is not EMPTY

    @property
    def is_positional_only(self) -> bool:
        return self.kind is inspect.Parameter.POSITIONAL_ONLY


@dataclass(frozen=True, slots=True)
class ConstructorDescriptor:
    """One candidate signature for building a concrete type."""

    function: Callable[..., Any]
    parameters: tuple[ParameterDescriptor, ...]

    @property
    def optional_count(self) -> int:
        return sum(1 for parameter in self.parameters if parameter.has_default)

    def __repr__(self) -> str:
        rendered = ", ".join(parameter.name for parameter in self.parameters)
        return f"{getattr(self.function, '__qualname__', self.function)!r}({rendered})"


@dataclass(frozen=True, slots=True)
class MemberDescriptor:
    """An annotated class attribute that can be injected after construction."""

    name: str
    annotation: Any
    default: Any = EMPTY


def describe_constructors(concrete_type: Any) -> tuple[ConstructorDescriptor, ...]:
    """Return the constructors of ``concrete_type``, closed over its generic arguments.

    Overloaded ``__init__`` signatures each count as one constructor. Abstract
    classes and protocols have none.
    """
    origin = origin_of(concrete_type)
    constructors = _describe_constructors(origin)
    mapping = parameter_mapping(concrete_type)
    if not mapping:
        return constructors
    return tuple(
        replace(
            constructor,
            parameters=tuple(
                replace(
                    parameter,
                    annotation=substitute_typevars(parameter.annotation, mapping=mapping),
                )
                for parameter in constructor.parameters
            ),
        )
        for constructor in constructors
    )


def describe_callable(function: Callable[..., Any]) -> ConstructorDescriptor:
    """Describe a delegate's parameters the same way constructors are described."""
    return _describe_function(function, skip_first=False)


def describe_members(concrete_type: Any) -> tuple[MemberDescriptor, ...]:
    """Return the public annotated attributes of ``concrete_type``."""
    origin = origin_of(concrete_type)
    members = _describe_members(origin)
    mapping = parameter_mapping(concrete_type)
    if not mapping:
        return members
    return tuple(
        replace(member, annotation=substitute_typevars(member.annotation, mapping=mapping))
        for member in members
    )


def return_annotation(function: Callable[..., Any]) -> Any:
    """Return the resolved return annotation of ``function`` or ``EMPTY``."""
    if isinstance(function, type):
        return function
    try:
        hints = get_type_hints(_hints_source(function))
    except (NameError, TypeError):
        return EMPTY
    return hints.get("return", EMPTY)


@functools.cache
def _describe_constructors(origin: type) -> tuple[ConstructorDescriptor, ...]:
    if inspect.isabstract(origin) or getattr(origin, "_is_protocol", False):
        return ()

    init = origin.__init__  # type: ignore[misc]
    if init is object.__init__:
        return (ConstructorDescriptor(function=init, parameters=()),)

    functions = get_overloads(init) or [init]
    return tuple(_describe_function(function, skip_first=True) for function in functions)


@functools.cache
def _describe_members(origin: type) -> tuple[MemberDescriptor, ...]:
    try:
        hints = get_type_hints(origin)
    except (NameError, TypeError) as error:
        msg = f"Cannot read member annotations of {origin!r}: {error}"
        raise TypeWireBindingError(msg) from error

    return tuple(
        MemberDescriptor(name=name, annotation=hint, default=getattr(origin, name, EMPTY))
        for name, hint in hints.items()
        if not name.startswith("_") and get_origin(hint) is not ClassVar and hint is not ClassVar
    )


def _describe_function(function: Callable[..., Any], *, skip_first: bool) -> ConstructorDescriptor:
    try:
        signature = inspect.signature(function)
    except (TypeError, ValueError) as error:
        msg = f"Cannot inspect signature of {function!r}: {error}"
        raise TypeWireBindingError(msg) from error

    try:
        hints = get_type_hints(_hints_source(function))
    except (NameError, TypeError) as error:
        msg = f"Cannot resolve annotations of {function!r}: {error}"
        raise TypeWireBindingError(msg) from error

    parameters = list(signature.parameters.values())
    if skip_first and parameters:
        parameters = parameters[1:]

    return ConstructorDescriptor(
        function=function,
        parameters=tuple(
            ParameterDescriptor(
                name=parameter.name,
                annotation=hints.get(parameter.name, EMPTY),
                default=parameter.default,
                kind=parameter.kind,
            )
            for parameter in parameters
            if parameter.kind not in _SKIPPED_KINDS
        ),
    )


def _hints_source(function: Any) -> Any:
    if isinstance(function, functools.partial):
        return function.func
    if isinstance(function, type):
        return function.__init__
    if inspect.isroutine(function):
        return function
    return type(function).__call__
