"""Tests for open generic type mapping and variance-aware assignability."""

from typing import Generic, TypeVar

import pytest

from typewire.exceptions import TypeWireInvalidGenericTypeArgumentError
from typewire.generics import (
    GenericTypeMapper,
    contains_typevar,
    generic_bases,
    is_assignable,
    is_closed_generic,
    is_open_generic,
    substitute_typevars,
    validate_typevar_arguments,
)

T = TypeVar("T")
U = TypeVar("U")
K = TypeVar("K")
V = TypeVar("V")
T_co = TypeVar("T_co", covariant=True)
T_contra = TypeVar("T_contra", contravariant=True)


class Animal:
    pass


class Dog(Animal):
    pass


TAnimal = TypeVar("TAnimal", bound=Animal)


class IBox(Generic[T]):
    pass


class IOther(Generic[T]):
    pass


class Box(IBox[T]):
    pass


class MiddleBox(Box[T]):
    pass


class LeafBox(MiddleBox[U]):
    pass


class ListBox(IBox[list[T]]):
    pass


class DeepBox(IBox[dict[str, list[T]]]):
    pass


class IPair(Generic[K, V]):
    pass


class SwappedPair(IPair[V, K], Generic[K, V]):
    pass


class PartialBox(IBox[K], Generic[K, V]):
    pass


class AnimalBox(IBox[TAnimal]):
    pass


class MultiBox(IBox[T], IOther[T]):
    pass


class IProducer(Generic[T_co]):
    pass


class IConsumer(Generic[T_contra]):
    pass


class DogProducer(IProducer[Dog]):
    pass


class AnimalConsumer(IConsumer[Animal]):
    pass


class TestGenericTypeMapper:
    def test_maps_direct_base(self) -> None:
        """Requesting the direct generic base closes the provider over the same argument."""
        mapping = GenericTypeMapper(Box).map_type(IBox[int])

        assert mapping.success
        assert mapping.is_fully_bound
        assert mapping.closing_type == Box[int]
        assert mapping.error_message is None

    def test_maps_reordered_parameters(self) -> None:
        """Parameters that appear in a different order in the base are realigned."""
        mapping = GenericTypeMapper(SwappedPair).map_type(IPair[int, str])

        assert mapping.closing_type == SwappedPair[str, int]

    def test_maps_nested_parameter(self) -> None:
        """A parameter used as an argument of another generic is unified through it."""
        mapping = GenericTypeMapper(ListBox).map_type(IBox[list[int]])

        assert mapping.closing_type == ListBox[int]

    def test_maps_deeply_nested_parameter(self) -> None:
        """Nesting at several levels is unified recursively."""
        mapping = GenericTypeMapper(DeepBox).map_type(IBox[dict[str, list[bytes]]])

        assert mapping.closing_type == DeepBox[bytes]

    def test_nested_shape_mismatch_fails(self) -> None:
        """A request whose nested structure differs from the base cannot be mapped."""
        mapping = GenericTypeMapper(DeepBox).map_type(IBox[list[int]])

        assert not mapping.success
        assert mapping.closing_type is None
        assert mapping.error_message

    def test_maps_through_deep_base_chain(self) -> None:
        """The base chain is walked through renamed type parameters."""
        mapper = GenericTypeMapper(LeafBox)

        assert mapper.map_type(IBox[int]).closing_type == LeafBox[int]
        assert mapper.map_type(Box[str]).closing_type == LeafBox[str]
        assert mapper.map_type(MiddleBox[float]).closing_type == LeafBox[float]

    def test_maps_secondary_base(self) -> None:
        """Bases beyond the first one are found breadth-first."""
        mapping = GenericTypeMapper(MultiBox).map_type(IOther[int])

        assert mapping.closing_type == MultiBox[int]

    def test_partial_mapping_is_not_fully_bound(self) -> None:
        """A parameter absent from the requested base leaves the mapping partially bound."""
        mapping = GenericTypeMapper(PartialBox).map_type(IBox[int])

        assert mapping.success
        assert not mapping.is_fully_bound
        assert mapping.error_message is not None
        assert "V" in mapping.error_message

    def test_bound_violation_is_reported(self) -> None:
        """Arguments outside a TypeVar bound give an unsuccessful mapping."""
        mapper = GenericTypeMapper(AnimalBox)

        assert mapper.map_type(IBox[Dog]).closing_type == AnimalBox[Dog]
        invalid = mapper.map_type(IBox[int])
        assert not invalid.success
        assert invalid.invalid_arguments

    def test_unrelated_request_fails(self) -> None:
        """A generic that does not occur in the hierarchy cannot be mapped."""
        mapping = GenericTypeMapper(Box).map_type(IOther[int])

        assert not mapping.success
        assert "does not occur" in (mapping.error_message or "")

    def test_unparameterised_request_fails(self) -> None:
        """Only parameterised requests can close an open generic."""
        assert not GenericTypeMapper(Box).map_type(IBox).success

    def test_results_are_cached(self) -> None:
        """The same request returns the same mapping object."""
        mapper = GenericTypeMapper(Box)

        assert mapper.map_type(IBox[int]) is mapper.map_type(IBox[int])

    def test_supports_origin(self) -> None:
        """Origins anywhere in the hierarchy are supported."""
        mapper = GenericTypeMapper(LeafBox)

        assert mapper.supports_origin(IBox[int])
        assert mapper.supports_origin(Box)
        assert not mapper.supports_origin(IOther[int])


def test_generic_bases_follow_primary_chain() -> None:
    """Bases are expressed in terms of the class's own type parameters."""
    assert generic_bases(LeafBox) == (MiddleBox[U], Box[U], IBox[U])


def test_generic_bases_of_plain_class_are_empty() -> None:
    assert generic_bases(Animal) == ()


class TestAssignability:
    def test_nominal_subclass(self) -> None:
        """Plain classes are compared by subclassing."""
        assert is_assignable(Animal, Dog)
        assert not is_assignable(Dog, Animal)

    def test_invariant_arguments_must_match(self) -> None:
        """Invariant parameters require equal arguments."""
        assert is_assignable(IBox[int], Box[int])
        assert not is_assignable(IBox[Animal], Box[Dog])

    def test_covariant_arguments(self) -> None:
        """Covariant parameters accept subtypes."""
        assert is_assignable(IProducer[Animal], DogProducer)
        assert is_assignable(IProducer[Animal], IProducer[Dog])
        assert not is_assignable(IProducer[Dog], IProducer[Animal])

    def test_contravariant_arguments(self) -> None:
        """Contravariant parameters accept supertypes."""
        assert is_assignable(IConsumer[Dog], AnimalConsumer)
        assert is_assignable(IConsumer[Dog], IConsumer[Animal])
        assert not is_assignable(IConsumer[Animal], IConsumer[Dog])

    def test_unrelated_generic(self) -> None:
        assert not is_assignable(IOther[int], Box[int])


class TestTypeVarHelpers:
    def test_contains_typevar(self) -> None:
        """Nested TypeVars are detected."""
        assert contains_typevar(IBox[T])
        assert contains_typevar(IBox[list[T]])
        assert not contains_typevar(IBox[int])

    def test_substitution_is_simultaneous(self) -> None:
        """Swapping two parameters does not substitute twice."""
        assert substitute_typevars(IPair[K, V], mapping={K: V, V: K}) == IPair[V, K]

    def test_substitutes_nested_arguments(self) -> None:
        assert substitute_typevars(IBox[list[T]], mapping={T: int}) == IBox[list[int]]

    def test_validate_rejects_bound_violation(self) -> None:
        """Arguments outside the bound raise."""
        with pytest.raises(TypeWireInvalidGenericTypeArgumentError, match="TAnimal"):
            validate_typevar_arguments({TAnimal: int})

    def test_validate_accepts_subclass_of_bound(self) -> None:
        validate_typevar_arguments({TAnimal: Dog})

    def test_open_and_closed_detection(self) -> None:
        """Unsubscripted generic classes are open; fully subscripted aliases are closed."""
        assert is_open_generic(Box)
        assert not is_open_generic(Box[int])
        assert not is_open_generic(Animal)
        assert is_closed_generic(Box[int])
        assert not is_closed_generic(Box[T])
