"""Tests for automatic collection injection."""

from collections.abc import Collection, Iterable, Sequence
from typing import Generic, TypeVar

import pytest

from typewire.container import Container
from typewire.exceptions import TypeWireServiceNotRegisteredError
from typewire.options import Option
from typewire.targets import ConstructorTarget, ListTarget

T = TypeVar("T")
T_co = TypeVar("T_co", covariant=True)
T_contra = TypeVar("T_contra", contravariant=True)


class IPlugin:
    pass


class FirstPlugin(IPlugin):
    pass


class SecondPlugin(IPlugin):
    pass


class ThirdPlugin(IPlugin):
    pass


class IFilter:
    pass


class Animal:
    pass


class Dog(Animal):
    pass


class Cat(Animal):
    pass


class IProducer(Generic[T_co]):
    pass


class DogProducer(IProducer[Dog]):
    pass


class IHandler(Generic[T_contra]):
    pass


class AnimalHandler(IHandler[Animal]):
    pass


class IBox(Generic[T]):
    pass


class Box(IBox[T]):
    pass


class PluginHost:
    def __init__(self, plugins: list[IPlugin]) -> None:
        self.plugins = plugins


@pytest.fixture()
def plugins(container: Container) -> Container:
    container.register_multiple([FirstPlugin, SecondPlugin, ThirdPlugin], IPlugin)
    return container


class TestShapes:
    def test_empty_collection(self, container: Container) -> None:
        """A collection of an unregistered element type is empty, not an error."""
        assert container.resolve(tuple[IPlugin, ...]) == ()
        assert container.resolve(list[IPlugin]) == []

    def test_tuple_preserves_registration_order(self, plugins: Container) -> None:
        resolved = plugins.resolve(tuple[IPlugin, ...])

        assert isinstance(resolved, tuple)
        assert [type(plugin) for plugin in resolved] == [FirstPlugin, SecondPlugin, ThirdPlugin]

    def test_list_is_a_list(self, plugins: Container) -> None:
        resolved = plugins.resolve(list[IPlugin])

        assert isinstance(resolved, list)
        assert len(resolved) == 3

    @pytest.mark.parametrize("shape", [Collection, Sequence, Iterable])
    def test_abstract_shapes_produce_tuples(self, plugins: Container, shape: type) -> None:
        resolved = plugins.resolve(shape[IPlugin])  # type: ignore[index]

        assert isinstance(resolved, tuple)
        assert len(resolved) == 3

    def test_each_resolution_builds_new_elements(self, plugins: Container) -> None:
        first = plugins.resolve(list[IPlugin])
        second = plugins.resolve(list[IPlugin])

        assert first[0] is not second[0]

    def test_collection_as_constructor_dependency(self, plugins: Container) -> None:
        plugins.register_type(PluginHost)

        assert len(plugins.resolve(PluginHost).plugins) == 3

    def test_fixed_length_tuple_is_not_assembled(self, plugins: Container) -> None:
        with pytest.raises(TypeWireServiceNotRegisteredError):
            plugins.resolve(tuple[IPlugin, IPlugin])


class TestVariance:
    def test_subclass_registrations_are_included(self, container: Container) -> None:
        """Registrations keyed by a subtype of the element type are collected."""
        container.register_type(Dog)
        container.register_type(Cat)

        resolved = container.resolve(tuple[Animal, ...])

        assert [type(animal) for animal in resolved] == [Dog, Cat]

    def test_covariant_generic_elements(self, container: Container) -> None:
        container.register_type(DogProducer, IProducer[Dog])

        assert len(container.resolve(list[IProducer[Animal]])) == 1
        assert container.resolve(list[IProducer[Cat]]) == []

    def test_contravariant_generic_elements(self, container: Container) -> None:
        container.register_type(AnimalHandler, IHandler[Animal])

        assert len(container.resolve(list[IHandler[Dog]])) == 1
        assert container.resolve(list[IHandler[int]]) == []

    def test_open_generic_registration_is_closed_per_element(self, container: Container) -> None:
        container.register_type(Box, IBox)

        (box,) = container.resolve(list[IBox[int]])

        assert isinstance(box, Box)
        assert box.__orig_class__ == Box[int]

    def test_named_registrations_are_excluded(self, container: Container) -> None:
        container.register_type(FirstPlugin, IPlugin)
        container.register_type(SecondPlugin, IPlugin, name="extra")

        assert [type(plugin) for plugin in container.resolve(list[IPlugin])] == [FirstPlugin]


class TestOptions:
    def test_disabling_list_injection(self, plugins: Container) -> None:
        plugins.options.set(Option.ENABLE_LIST_INJECTION, False)

        with pytest.raises(TypeWireServiceNotRegisteredError):
            plugins.resolve(list[IPlugin])
        assert len(plugins.resolve(tuple[IPlugin, ...])) == 3

    def test_disabling_array_injection_for_one_element_type(self, plugins: Container) -> None:
        """Options set for an element type affect only collections of that type."""
        plugins.options.set(Option.ENABLE_ARRAY_INJECTION, False, for_type=IPlugin)

        assert not plugins.can_resolve(tuple[IPlugin, ...])
        assert plugins.resolve(tuple[IFilter, ...]) == ()

    def test_disabling_collection_and_enumerable_injection(self, plugins: Container) -> None:
        plugins.options.set(Option.ENABLE_COLLECTION_INJECTION, False)
        plugins.options.set(Option.ENABLE_ENUMERABLE_INJECTION, False)

        assert not plugins.can_resolve(Sequence[IPlugin])
        assert not plugins.can_resolve(Iterable[IPlugin])
        assert plugins.can_resolve(list[IPlugin])

    def test_explicit_list_registration_wins(self, plugins: Container) -> None:
        plugins.register(ListTarget(IPlugin, [ConstructorTarget(SecondPlugin)]))

        assert [type(plugin) for plugin in plugins.resolve(list[IPlugin])] == [SecondPlugin]
        assert len(plugins.resolve(tuple[IPlugin, ...])) == 3
