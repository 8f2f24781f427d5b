from __future__ import annotations

import inspect
from typing import Any

from typewire.exceptions import TypeWireInvalidRegistrationError
from typewire.generics import origin_of


class RegistrationValidator:
    """Validates registration arguments before targets are created."""

    def validate_concrete_type(self, concrete_type: Any) -> None:
        """Validate that a concrete type is an instantiable class or closed alias of one."""
        origin = origin_of(concrete_type)
        if not inspect.isclass(origin):
            msg = f"Concrete type must be a class, got {concrete_type!r}."
            raise TypeWireInvalidRegistrationError(msg)

        if inspect.isabstract(origin):
            msg = f"Concrete type '{origin.__qualname__}' cannot be an abstract class."
            raise TypeWireInvalidRegistrationError(msg)

    def validate_service_type(self, service_type: Any) -> None:
        """Validate an explicitly passed service type."""
        if service_type is None:
            msg = "Service type cannot be None."
            raise TypeWireInvalidRegistrationError(msg)
