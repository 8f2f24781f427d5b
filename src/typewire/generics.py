"""Open generic type mapping.

These helpers operate on normalised ``typing`` aliases: a class's generic bases
are read once from ``__orig_bases__`` and rewritten in terms of the class's own
type parameters, so that mapping a request onto an open generic provider is a
structural unification rather than a series of live reflection calls.
"""

from __future__ import annotations

import functools
import threading
from collections import deque
from collections.abc import Iterator, Mapping
from dataclasses import dataclass
from typing import Any, Generic, Protocol, TypeVar, get_args, get_origin

from typewire.exceptions import TypeWireInvalidGenericTypeArgumentError

_IGNORED_BASES: frozenset[Any] = frozenset({Generic, Protocol, object})


@dataclass(frozen=True, slots=True)
class GenericTypeMapping:
    """Result of mapping a requested type onto an open generic type."""

    requested_type: Any
    closing_type: Any = None
    is_fully_bound: bool = False
    error_message: str | None = None
    invalid_arguments: bool = False
    """Set when the request's arguments violate the open type's TypeVar bounds."""

    @property
    def success(self) -> bool:
        return self.closing_type is not None


def origin_of(value: Any) -> Any:
    """Return the unsubscripted origin of ``value`` (``IBox[int]`` -> ``IBox``)."""
    return get_origin(value) or value


def type_parameters(value: Any) -> tuple[TypeVar, ...]:
    """Return the TypeVars declared by a generic class, in declaration order."""
    return tuple(
        parameter
        for parameter in getattr(value, "__parameters__", ())
        if isinstance(parameter, TypeVar)
    )


def is_open_generic(value: Any) -> bool:
    """Return whether ``value`` is an unsubscripted generic class definition."""
    return isinstance(value, type) and get_origin(value) is None and bool(type_parameters(value))


def is_closed_generic(value: Any) -> bool:
    """Return whether ``value`` is a subscripted alias with no TypeVars left."""
    if get_origin(value) is None:
        return False
    arguments = get_args(value)
    return bool(arguments) and not any(contains_typevar(argument) for argument in arguments)


def contains_typevar(value: Any) -> bool:
    """Return whether a type expression still contains a ``TypeVar``.

    Args:
        value: Type expression or object to inspect.

    Returns:
        ``True`` when any nested node contains a TypeVar, else ``False``.

    """
    if isinstance(value, TypeVar):
        return True

    if isinstance(value, list):
        return any(contains_typevar(argument) for argument in value)

    origin = get_origin(value)
    if origin is not None:
        return any(contains_typevar(argument) for argument in get_args(value))

    return bool(type_parameters(value)) and not isinstance(value, type)


def substitute_typevars(value: Any, *, mapping: Mapping[TypeVar, Any]) -> Any:
    """Substitute TypeVars in a type expression using a resolved mapping.

    Substitution is simultaneous: a TypeVar replaced by another TypeVar is not
    substituted again, which keeps reordered parameter lists intact.

    Args:
        value: Type expression template that may contain TypeVars.
        mapping: Mapping from template TypeVars to concrete type arguments.

    Returns:
        The substituted type expression with available TypeVars replaced.

    """
    if isinstance(value, TypeVar):
        return mapping.get(value, value)

    if isinstance(value, list):
        return [substitute_typevars(argument, mapping=mapping) for argument in value]

    origin = get_origin(value)
    if origin is None:
        return value

    arguments = get_args(value)
    if not arguments:
        return value

    substituted_arguments = tuple(
        substitute_typevars(argument, mapping=mapping) for argument in arguments
    )
    return _rebuild_alias(origin=origin, args=substituted_arguments, fallback=value)


def validate_typevar_arguments(typevar_map: Mapping[TypeVar, Any]) -> None:
    """Validate closed generic arguments against TypeVar constraints and bounds.

    Args:
        typevar_map: Mapping from open TypeVars to candidate concrete arguments.

    Raises:
        TypeWireInvalidGenericTypeArgumentError: If any argument violates TypeVar
            constraints or bound requirements.

    """
    for typevar, argument in typevar_map.items():
        if isinstance(argument, TypeVar):
            continue
        if not _is_type_argument_valid(typevar=typevar, argument=argument):
            constraints = getattr(typevar, "__constraints__", ())
            bound = getattr(typevar, "__bound__", None)
            if constraints:
                formatted_constraints = ", ".join(repr(item) for item in constraints)
                msg = (
                    f"Generic argument {argument!r} for TypeVar '{typevar.__name__}' must satisfy "
                    f"one of: {formatted_constraints}."
                )
            else:
                msg = (
                    f"Generic argument {argument!r} for TypeVar '{typevar.__name__}' must satisfy "
                    f"bound {bound!r}."
                )
            raise TypeWireInvalidGenericTypeArgumentError(msg)


def parameter_mapping(value: Any) -> dict[TypeVar, Any]:
    """Return the TypeVar -> argument mapping described by a subscripted alias."""
    parameters = type_parameters(origin_of(value))
    arguments = get_args(value)
    if not arguments or len(arguments) != len(parameters):
        return {}
    return dict(zip(parameters, arguments, strict=True))


def generic_bases(cls: type) -> tuple[Any, ...]:
    """Return every base of ``cls`` expressed in terms of ``cls``'s own TypeVars.

    The primary chain (first base, recursively) comes first, followed by the
    remaining bases breadth-first. Each base appears once.
    """
    return _generic_bases(cls)


@functools.cache
def _generic_bases(cls: type) -> tuple[Any, ...]:
    found: list[Any] = []
    pending: deque[Any] = deque()

    current: Any = cls
    mapping: dict[TypeVar, Any] = {}
    while isinstance(current, type):
        bases = _direct_bases(current, mapping)
        if not bases:
            break
        primary, *rest = bases
        found.append(primary)
        pending.extend(rest)
        current = origin_of(primary)
        mapping = parameter_mapping(primary)

    while pending:
        base = pending.popleft()
        if base in found:
            continue
        found.append(base)
        origin = origin_of(base)
        if isinstance(origin, type):
            pending.extend(_direct_bases(origin, parameter_mapping(base)))

    return tuple(found)


def iter_occurrences(value: Any) -> Iterator[Any]:
    """Yield ``value`` itself and then each of its bases, closed over its arguments."""
    origin = origin_of(value)
    yield value
    if not isinstance(origin, type):
        return
    mapping = parameter_mapping(value)
    for base in generic_bases(origin):
        yield substitute_typevars(base, mapping=mapping)


def is_assignable(requested: Any, provided: Any) -> bool:
    """Return whether an instance of ``provided`` can be used where ``requested`` is expected.

    Plain classes are compared nominally. Parameterised requests look for an
    occurrence of the requested origin in ``provided``'s hierarchy and compare
    arguments according to the variance of the origin's TypeVars.
    """
    if requested is Any or requested is object or requested == provided:
        return True

    requested_origin = origin_of(requested)
    provided_origin = origin_of(provided)
    if not get_args(requested):
        return _is_nominal_subclass(provided_origin, requested_origin)

    for occurrence in iter_occurrences(provided):
        if origin_of(occurrence) is not requested_origin:
            continue
        return _arguments_assignable(requested, occurrence)
    return False


class GenericTypeMapper:
    """Maps requested types onto one open generic class.

    Mapping results are cached per requested type; the mapper itself never
    changes the open type it was created for.
    """

    __slots__ = ("_cache", "_lock", "_open_type", "_parameters")

    def __init__(self, open_type: type) -> None:
        self._open_type = open_type
        self._parameters = type_parameters(open_type)
        self._cache: dict[Any, GenericTypeMapping] = {}
        self._lock = threading.Lock()

    @property
    def open_type(self) -> type:
        return self._open_type

    def occurrences(self) -> tuple[Any, ...]:
        """The open type's own alias followed by its generic bases, in walk order."""
        own = _rebuild_alias(origin=self._open_type, args=self._parameters, fallback=self._open_type)
        return (own, *generic_bases(self._open_type))

    def supports_origin(self, requested: Any) -> bool:
        requested_origin = origin_of(requested)
        return any(origin_of(occurrence) is requested_origin for occurrence in self.occurrences())

    def map_type(self, requested: Any) -> GenericTypeMapping:
        cached = self._cache.get(requested)
        if cached is not None:
            return cached
        mapping = self._map_type(requested)
        with self._lock:
            self._cache.setdefault(requested, mapping)
        return mapping

    def _map_type(self, requested: Any) -> GenericTypeMapping:
        if not get_args(requested):
            return GenericTypeMapping(
                requested_type=requested,
                error_message=f"{requested!r} is not a parameterised generic type.",
            )

        requested_origin = origin_of(requested)
        occurrence = next(
            (item for item in self.occurrences() if origin_of(item) is requested_origin),
            None,
        )
        if occurrence is None:
            return GenericTypeMapping(
                requested_type=requested,
                error_message=(
                    f"{requested_origin!r} does not occur in the hierarchy of "
                    f"{self._open_type!r}."
                ),
            )

        typevar_map: dict[TypeVar, Any] = {}
        if not _match_node(template=occurrence, concrete=requested, mapping=typevar_map):
            return GenericTypeMapping(
                requested_type=requested,
                error_message=(
                    f"Arguments of {requested!r} cannot be unified with {occurrence!r} "
                    f"declared by {self._open_type!r}."
                ),
            )

        try:
            validate_typevar_arguments(typevar_map)
        except TypeWireInvalidGenericTypeArgumentError as error:
            return GenericTypeMapping(
                requested_type=requested,
                error_message=str(error),
                invalid_arguments=True,
            )

        closing_arguments = tuple(typevar_map.get(parameter, parameter) for parameter in self._parameters)
        closing_type = _rebuild_alias(
            origin=self._open_type,
            args=closing_arguments,
            fallback=self._open_type,
        )
        unbound = [parameter for parameter in self._parameters if parameter not in typevar_map]
        return GenericTypeMapping(
            requested_type=requested,
            closing_type=closing_type,
            is_fully_bound=not unbound,
            error_message=(
                "Type parameters "
                + ", ".join(parameter.__name__ for parameter in unbound)
                + f" of {self._open_type!r} cannot be determined from {requested!r}."
                if unbound
                else None
            ),
        )


def _direct_bases(cls: type, mapping: Mapping[TypeVar, Any]) -> list[Any]:
    bases = cls.__dict__.get("__orig_bases__", cls.__bases__)
    return [
        substitute_typevars(base, mapping=mapping)
        for base in bases
        if origin_of(base) not in _IGNORED_BASES
    ]


def _match_node(  # noqa: PLR0911
    *,
    template: Any,
    concrete: Any,
    mapping: dict[TypeVar, Any],
) -> bool:
    if isinstance(template, TypeVar):
        known = mapping.get(template)
        if known is None:
            mapping[template] = concrete
            return True
        return known == concrete

    if isinstance(template, list):
        if not isinstance(concrete, list) or len(template) != len(concrete):
            return False
        return all(
            _match_node(template=item, concrete=other, mapping=mapping)
            for item, other in zip(template, concrete, strict=True)
        )

    template_origin = get_origin(template)
    if template_origin is None:
        return template == concrete

    concrete_origin = get_origin(concrete)
    if concrete_origin != template_origin:
        return False

    template_arguments = get_args(template)
    concrete_arguments = get_args(concrete)
    if len(template_arguments) != len(concrete_arguments):
        return False

    return all(
        _match_node(template=template_argument, concrete=concrete_argument, mapping=mapping)
        for template_argument, concrete_argument in zip(
            template_arguments,
            concrete_arguments,
            strict=True,
        )
    )


def _arguments_assignable(requested: Any, occurrence: Any) -> bool:
    requested_arguments = get_args(requested)
    provided_arguments = get_args(occurrence)
    if len(requested_arguments) != len(provided_arguments):
        return False
    parameters = type_parameters(origin_of(requested))
    if len(parameters) != len(requested_arguments):
        return requested_arguments == provided_arguments

    for parameter, wanted, given in zip(
        parameters,
        requested_arguments,
        provided_arguments,
        strict=True,
    ):
        if parameter.__covariant__:
            if not is_assignable(wanted, given):
                return False
        elif parameter.__contravariant__:
            if not is_assignable(given, wanted):
                return False
        elif wanted != given:
            return False
    return True


def _is_nominal_subclass(provided: Any, requested: Any) -> bool:
    if not isinstance(provided, type) or not isinstance(requested, type):
        return False
    try:
        return issubclass(provided, requested)
    except TypeError:
        return requested in provided.__mro__


def _rebuild_alias(*, origin: Any, args: tuple[Any, ...], fallback: Any) -> Any:
    if not args:
        return fallback
    try:
        if len(args) == 1:
            return origin[args[0]]
        return origin[args]
    except TypeError:
        return fallback


def _is_type_argument_valid(*, typevar: TypeVar, argument: Any) -> bool:
    constraints = getattr(typevar, "__constraints__", ())
    if constraints:
        return any(
            _matches_type_constraint(argument=argument, constraint=constraint)
            for constraint in constraints
        )
    bound = getattr(typevar, "__bound__", None)
    if bound is None:
        return True
    return _matches_type_constraint(argument=argument, constraint=bound)


def _matches_type_constraint(*, argument: Any, constraint: Any) -> bool:
    if constraint is Any:
        return True
    argument_type = origin_of(argument)
    constraint_type = origin_of(constraint)
    if isinstance(argument_type, type) and isinstance(constraint_type, type):
        try:
            return issubclass(argument_type, constraint_type)
        except TypeError:
            return False
    return argument == constraint
