"""Topological ordering for collections of mutually dependent objects.

Objects opt in by deriving from :class:`Dependant` and declaring edges to other
objects (``requires``/``after``) or to every object of a class
(``requires_any``/``after_any``). Required edges must be satisfied by the
collection being sorted; optional edges only affect the order when the target
is present.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from typing import Any, TypeVar

from typewire.exceptions import TypeWireDependencyCycleError, TypeWireMissingDependencyError

DependantT = TypeVar("DependantT", bound="Dependant")


@dataclass(frozen=True, slots=True)
class _Edge:
    target: Any
    required: bool
    by_type: bool

    def matches(self, candidate: Any) -> bool:
        if self.by_type:
            return isinstance(candidate, self.target)
        return candidate is self.target


class Dependant:
    """Mixin for objects that declare ordering edges to other objects."""

    def requires(self, obj: Any) -> Any:
        """Declare that ``obj`` must be present and must come before this object."""
        self._edges().append(_Edge(target=obj, required=True, by_type=False))
        return self

    def requires_any(self, cls: type) -> Any:
        """Declare that at least one instance of ``cls`` must be present and come first."""
        self._edges().append(_Edge(target=cls, required=True, by_type=True))
        return self

    def after(self, obj: Any) -> Any:
        """Order this object after ``obj`` when ``obj`` is present."""
        self._edges().append(_Edge(target=obj, required=False, by_type=False))
        return self

    def after_any(self, cls: type) -> Any:
        """Order this object after every present instance of ``cls``."""
        self._edges().append(_Edge(target=cls, required=False, by_type=True))
        return self

    def get_dependencies(self, objects: Sequence[Any]) -> list[Any]:
        """Return the members of ``objects`` this object must follow.

        Raises:
            TypeWireMissingDependencyError: If a required edge has no match in
                ``objects``.

        """
        found: list[Any] = []
        for edge in self._edges():
            matches = [obj for obj in objects if obj is not self and edge.matches(obj)]
            if not matches and edge.required:
                wanted = edge.target.__name__ if edge.by_type else repr(edge.target)
                msg = f"{self!r} requires {wanted}, which is not present."
                raise TypeWireMissingDependencyError(msg)
            found.extend(obj for obj in matches if not any(obj is seen for seen in found))
        return found

    def _edges(self) -> list[_Edge]:
        edges = self.__dict__.get("_dependant_edges")
        if edges is None:
            edges = []
            self.__dict__["_dependant_edges"] = edges
        return edges


def sort_dependants(objects: Iterable[DependantT]) -> list[DependantT]:
    """Return ``objects`` in dependency order.

    The sort is stable: objects with no ordering constraint between them keep
    their input order.

    Raises:
        TypeWireMissingDependencyError: If a required dependency is absent.
        TypeWireDependencyCycleError: If the objects depend on each other in a cycle.

    """
    items = list(objects)
    dependencies = [
        [_index_of(items, dependency) for dependency in item.get_dependencies(items)]
        for item in items
    ]

    ordered: list[DependantT] = []
    emitted = [False] * len(items)
    while len(ordered) < len(items):
        ready = next(
            (
                index
                for index, item_dependencies in enumerate(dependencies)
                if not emitted[index] and all(emitted[other] for other in item_dependencies)
            ),
            None,
        )
        if ready is None:
            remaining = ", ".join(repr(item) for index, item in enumerate(items) if not emitted[index])
            msg = f"Dependency cycle detected between: {remaining}"
            raise TypeWireDependencyCycleError(msg)
        emitted[ready] = True
        ordered.append(items[ready])
    return ordered


def _index_of(items: Sequence[Any], obj: Any) -> int:
    return next(index for index, item in enumerate(items) if item is obj)
