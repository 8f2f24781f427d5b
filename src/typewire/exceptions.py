from __future__ import annotations

from collections.abc import Sequence
from typing import Any


class TypeWireError(Exception):
    """Represent a base class for all TypeWire-specific failures.

    Catch this type when you want to handle any TypeWire error path without
    matching each concrete exception class individually.
    """


class TypeWireInvalidRegistrationError(TypeWireError):
    """Signal invalid registration arguments.

    Raised eagerly by ``TargetContainer.register`` and the ``Container.register_*``
    helpers when a target cannot structurally satisfy the contract it is
    registered for, or when a required argument is ``None``.

    Typical fixes include registering the implementation against one of its own
    base classes, or registering an open generic class against an open generic
    contract that appears in its bases.
    """


class TypeWireConfigurationError(TypeWireError):
    """Signal one or more failures while applying container configuration.

    Raised by ``CombinedContainerConfig.configure`` after every configuration
    object has been applied, so that all registration problems are reported
    together instead of stopping at the first one.
    """

    def __init__(self, errors: Sequence[TypeWireError]) -> None:
        self.errors = tuple(errors)
        details = "; ".join(str(error) for error in self.errors)
        super().__init__(f"{len(self.errors)} configuration error(s): {details}")


class TypeWireBindingError(TypeWireError):
    """Signal that a target could not be bound for a requested type.

    Raised lazily while compiling a target, for example when no constructor of
    the concrete type can be selected or when more than one constructor ranks
    equally well.

    Typical fixes include registering the missing dependencies, passing
    ``named_args`` overrides, or removing ambiguous ``__init__`` overloads.
    """


class TypeWireGenericMappingError(TypeWireBindingError):
    """Signal that an open generic target could not be closed for a request.

    Raised when the requested type does not occur in the open generic type's
    hierarchy, or when the mapping leaves one or more type parameters unbound.
    """


class TypeWireCyclicDependencyError(TypeWireBindingError):
    """Signal a cyclic dependency graph detected during compilation.

    The ``stack`` attribute lists the ``(target, type)`` entries that were being
    compiled when the cycle closed, outermost first.
    """

    def __init__(self, service_type: Any, stack: Sequence[Any]) -> None:
        self.service_type = service_type
        self.stack = tuple(stack)
        path = " -> ".join(repr(entry) for entry in self.stack)
        super().__init__(f"Cyclic dependency detected while compiling {service_type!r}: {path}")


class TypeWireInvalidGenericTypeArgumentError(TypeWireError):
    """Signal invalid closed-generic arguments for an open registration.

    Raised while mapping open-generic targets when a closed request violates
    TypeVar bounds or constraints.

    Typical fixes include resolving a compatible closed generic type or tightening
    open-generic annotations to reflect valid constraints.
    """


class TypeWireServiceNotRegisteredError(TypeWireError):
    """Signal that no target exists for a requested type.

    Raised by ``resolve`` only when the compiled sentinel for the missing type
    is actually invoked, so a layered container can still supply the type later.
    """

    def __init__(self, service_type: Any, name: str | None = None) -> None:
        self.service_type = service_type
        self.name = name
        suffix = f" (name {name!r})" if name is not None else ""
        super().__init__(f"Service {service_type!r}{suffix} is not registered")


class TypeWireScopeDisposedError(TypeWireError):
    """Signal use of a scope after it has been disposed.

    Raised by ``ContainerScope.track``, ``ContainerScope.create_scope`` and
    resolution through a closed scope.
    """


class TypeWireDependencyCycleError(TypeWireError):
    """Signal mutually dependent objects passed to ``sort_dependants``."""


class TypeWireMissingDependencyError(TypeWireError):
    """Signal a required dependency that is absent from the sorted collection."""
