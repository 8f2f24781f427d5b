from __future__ import annotations

from dataclasses import dataclass, replace
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from typewire.container import Container
    from typewire.scope import ContainerScope


@dataclass(frozen=True, slots=True)
class ResolveContext:
    """Live state passed to compiled targets while a request is being served.

    ``name`` is the name of the original request; nested resolutions keep it
    so that named registrations deeper in the graph can be found.
    """

    container: Container
    requested_type: Any
    scope: ContainerScope
    name: str | None = None

    def new_context(self, requested_type: Any) -> ResolveContext:
        return replace(self, requested_type=requested_type)

    def with_scope(self, scope: ContainerScope) -> ResolveContext:
        if scope is self.scope:
            return self
        return replace(self, scope=scope)

    def resolve(self, service_type: Any) -> Any:
        """Resolve ``service_type`` through the same container, scope and name."""
        return self.container.resolve_in(self.new_context(service_type))
