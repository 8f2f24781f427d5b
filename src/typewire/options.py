from __future__ import annotations

import threading
from enum import Enum
from typing import Any

from typewire.defaults import DEFAULT_OPTION_VALUES
from typewire.generics import origin_of


class Option(Enum):
    """Named switches consulted while targets are fetched and compiled.

    Each option has a global value and may be overridden for a specific
    service type (or for every closure of an open generic type) through
    :meth:`ContainerOptions.set`.
    """

    ENABLE_ARRAY_INJECTION = "enable_array_injection"
    """Assemble ``tuple[T, ...]`` requests from every compatible registration of ``T``."""

    ENABLE_LIST_INJECTION = "enable_list_injection"
    """Assemble ``list[T]`` requests from every compatible registration of ``T``."""

    ENABLE_COLLECTION_INJECTION = "enable_collection_injection"
    """Assemble ``Collection[T]`` and ``Sequence[T]`` requests."""

    ENABLE_ENUMERABLE_INJECTION = "enable_enumerable_injection"
    """Assemble ``Iterable[T]`` requests."""

    ENABLE_AUTO_FUNC_INJECTION = "enable_auto_func_injection"
    """Satisfy ``Callable[[], T]`` with a factory that resolves ``T`` on each call."""

    ENABLE_AUTO_LAZY_INJECTION = "enable_auto_lazy_injection"
    """Satisfy ``Lazy[T]`` with a deferred, cached resolution of ``T``."""

    MEMBER_BINDING = "member_binding"
    """Select how annotated class attributes are injected, see ``MemberBindingBehaviour``."""


class ContainerOptions:
    """Explicit option values for one container.

    Lookups check the exact service type first, then its unsubscripted origin,
    then the global value, and finally ``DEFAULT_OPTION_VALUES``.
    """

    __slots__ = ("_global", "_lock", "_per_type")

    def __init__(self, values: dict[Option, Any] | None = None) -> None:
        self._global: dict[Option, Any] = dict(values or {})
        self._per_type: dict[tuple[Option, Any], Any] = {}
        self._lock = threading.Lock()

    def get(self, option: Option, service_type: Any = None) -> Any:
        if service_type is not None:
            for key in (service_type, origin_of(service_type)):
                value = self._per_type.get((option, key), _UNSET)
                if value is not _UNSET:
                    return value
        value = self._global.get(option, _UNSET)
        if value is not _UNSET:
            return value
        return DEFAULT_OPTION_VALUES[option.value]

    def set(self, option: Option, value: Any, *, for_type: Any = None) -> None:
        with self._lock:
            if for_type is None:
                self._global[option] = value
            else:
                self._per_type[(option, for_type)] = value

    def copy(self) -> ContainerOptions:
        with self._lock:
            options = ContainerOptions(self._global)
            options._per_type = dict(self._per_type)
        return options

    def __repr__(self) -> str:
        return f"ContainerOptions(global={self._global!r}, per_type={self._per_type!r})"


_UNSET: Any = object()
