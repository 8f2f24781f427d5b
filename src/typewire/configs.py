"""Container configuration objects.

Configuration objects are applied to a container in dependency order (see
``typewire.ordering``). ``CombinedContainerConfig`` applies every object even
when some fail, then reports all failures together.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections.abc import Callable, Iterable
from typing import TYPE_CHECKING, Any

from typewire.exceptions import TypeWireConfigurationError, TypeWireError
from typewire.options import Option
from typewire.ordering import Dependant, sort_dependants

if TYPE_CHECKING:
    from typewire.container import Container

logger = logging.getLogger(__name__)


class ContainerConfig(Dependant, ABC):
    """Something that configures a container: sets options or adds registrations."""

    @abstractmethod
    def configure(self, container: Container) -> None: ...


class SetOption(ContainerConfig):
    """Set an option globally or for one service type."""

    def __init__(self, option: Option, value: Any, *, for_type: Any = None) -> None:
        self.option = option
        self.value = value
        self.for_type = for_type

    def configure(self, container: Container) -> None:
        container.options.set(self.option, self.value, for_type=self.for_type)

    def __repr__(self) -> str:
        suffix = f", for_type={self.for_type!r}" if self.for_type is not None else ""
        return f"SetOption({self.option.name}, {self.value!r}{suffix})"


class RegisterModule(ContainerConfig):
    """Run a function that registers services. Applied after every ``SetOption``."""

    def __init__(self, register: Callable[[Container], None]) -> None:
        self.register = register
        self.after_any(SetOption)

    def configure(self, container: Container) -> None:
        self.register(container)

    def __repr__(self) -> str:
        return f"RegisterModule({getattr(self.register, '__qualname__', self.register)!r})"


class CombinedContainerConfig(ContainerConfig):
    """Applies several configuration objects in dependency order.

    Raises:
        TypeWireConfigurationError: After all configs ran, if any of them
            raised a ``TypeWireError``.

    """

    def __init__(self, configs: Iterable[ContainerConfig] = ()) -> None:
        self._configs = list(configs)

    @property
    def configs(self) -> tuple[ContainerConfig, ...]:
        return tuple(self._configs)

    def add(self, config: ContainerConfig) -> CombinedContainerConfig:
        self._configs.append(config)
        return self

    def configure(self, container: Container) -> None:
        errors: list[TypeWireError] = []
        for config in sort_dependants(self._configs):
            try:
                config.configure(container)
            except TypeWireError as error:
                logger.debug("Configuration %r failed: %s", config, error)
                errors.append(error)
        if errors:
            raise TypeWireConfigurationError(errors)
