"""Tests for Container registration and resolution."""

import logging
from abc import ABC, abstractmethod
from typing import Generic, TypeVar

import pytest

from typewire.container import Container, OverridingContainer
from typewire.exceptions import (
    TypeWireBindingError,
    TypeWireInvalidGenericTypeArgumentError,
    TypeWireInvalidRegistrationError,
    TypeWireServiceNotRegisteredError,
)
from typewire.options import ContainerOptions, Option
from typewire.targets import ObjectTarget, ResolvedTarget
from typewire.types import Lifetime, MemberBindingBehaviour

T = TypeVar("T")


class ServiceA:
    pass


class ServiceB:
    def __init__(self, a: ServiceA) -> None:
        self.a = a


class IService:
    pass


class FirstService(IService):
    pass


class SecondService(IService):
    pass


class ThirdService(IService):
    pass


class IBox(Generic[T]):
    pass


class Box(IBox[T]):
    pass


class Number:
    pass


TNumber = TypeVar("TNumber", bound=Number)


class NumberBox(IBox[TNumber]):
    pass


class AbstractService(ABC):
    @abstractmethod
    def run(self) -> None: ...


class Connection:
    def __init__(self, dsn: str = "memory") -> None:
        self.dsn = dsn


class Repository:
    def __init__(self, connection: Connection) -> None:
        self.connection = connection


class UntypedHolder:
    def __init__(self, value) -> None:  # noqa: ANN001
        self.value = value


class Handler:
    service: ServiceA
    label: str = "handler"
    missing: Number

    def __init__(self, b: ServiceB) -> None:
        self.b = b


class TestResolve:
    def test_resolve_with_dependency(self, container: Container) -> None:
        container.register_type(ServiceA)
        container.register_type(ServiceB)

        b = container.resolve(ServiceB)

        assert isinstance(b, ServiceB)
        assert isinstance(b.a, ServiceA)

    def test_transient_creates_new_instances(self, container: Container) -> None:
        container.register_type(ServiceA)

        assert container.resolve(ServiceA) is not container.resolve(ServiceA)

    def test_singleton_returns_same_instance(self, container: Container) -> None:
        container.register_type(ServiceA, lifetime=Lifetime.SINGLETON)

        assert container.resolve(ServiceA) is container.resolve(ServiceA)

    def test_unregistered_service_raises(self, container: Container) -> None:
        with pytest.raises(TypeWireServiceNotRegisteredError, match="is not registered"):
            container.resolve(ServiceA)

    def test_container_resolves_itself(self, container: Container) -> None:
        assert container.resolve(Container) is container

    def test_try_resolve(self, container: Container) -> None:
        assert container.try_resolve(ServiceA) == (False, None)

        container.register_type(ServiceA)
        found, instance = container.try_resolve(ServiceA)

        assert found
        assert isinstance(instance, ServiceA)

    def test_can_resolve(self, container: Container) -> None:
        container.register_type(ServiceA)

        assert container.can_resolve(ServiceA)
        assert not container.can_resolve(ServiceB)

    def test_three_implementations_resolve_as_tuple(self, container: Container) -> None:
        container.register_multiple([FirstService, SecondService, ThirdService], IService)

        services = container.resolve(tuple[IService, ...])

        assert [type(service) for service in services] == [FirstService, SecondService, ThirdService]
        assert isinstance(container.resolve(IService), ThirdService)


class TestOpenGenerics:
    def test_open_generic_is_closed_per_request(self, container: Container) -> None:
        container.register_type(Box, IBox)

        box = container.resolve(IBox[int])

        assert isinstance(box, Box)
        assert box.__orig_class__ == Box[int]

    def test_singleton_per_closed_type(self, container: Container) -> None:
        container.register_singleton(Box, IBox)

        assert container.resolve(IBox[int]) is container.resolve(IBox[int])
        assert container.resolve(IBox[int]) is not container.resolve(IBox[str])

    def test_bound_violation_raises(self, container: Container) -> None:
        container.register_type(NumberBox, IBox)

        with pytest.raises(TypeWireInvalidGenericTypeArgumentError):
            container.resolve(IBox[int])


class TestRegistration:
    def test_abstract_concrete_type_is_rejected(self, container: Container) -> None:
        with pytest.raises(TypeWireInvalidRegistrationError, match="abstract"):
            container.register_type(AbstractService)

    def test_non_class_concrete_type_is_rejected(self, container: Container) -> None:
        with pytest.raises(TypeWireInvalidRegistrationError):
            container.register_type("ServiceA")

    def test_incompatible_service_type_is_rejected(self, container: Container) -> None:
        with pytest.raises(TypeWireInvalidRegistrationError):
            container.register_type(ServiceA, IService)

    def test_none_object_is_rejected(self, container: Container) -> None:
        with pytest.raises(TypeWireInvalidRegistrationError):
            container.register_object(None, ServiceA)

    def test_incompatible_object_is_rejected(self, container: Container) -> None:
        with pytest.raises(TypeWireInvalidRegistrationError):
            container.register_object(5, str)

        assert not container.can_resolve(str)

    def test_object_registered_for_its_interface(self, container: Container) -> None:
        service = FirstService()
        container.register_object(service, IService)

        assert container.resolve(IService) is service

    def test_register_multiple_requires_service_type(self, container: Container) -> None:
        with pytest.raises(TypeWireInvalidRegistrationError):
            container.register_multiple([FirstService], None)

    def test_register_object(self, container: Container) -> None:
        service = ServiceA()
        container.register_object(service)

        assert container.resolve(ServiceA) is service

    def test_named_registrations(self, container: Container) -> None:
        """Named requests fall back to the unnamed registration."""
        primary = Connection("primary")
        container.register_object(Connection("default"))
        container.register_object(primary, name="db.primary")

        assert container.resolve(Connection, name="db.primary") is primary
        assert container.resolve(Connection, name="db.primary.replica") is primary
        assert container.resolve(Connection, name="cache").dsn == "default"

    def test_name_flows_to_nested_dependencies(self, container: Container) -> None:
        """Dependencies of a named request are looked up with the same name."""
        reporting = Connection("reporting")
        container.register_object(Connection("default"))
        container.register_object(reporting, name="reporting")
        container.register_type(Repository)

        assert container.resolve(Repository, name="reporting").connection is reporting
        assert container.resolve(Repository).connection.dsn == "default"


class TestDelegates:
    def test_delegate_uses_return_annotation(self, container: Container) -> None:
        def build_connection() -> Connection:
            return Connection("delegate")

        container.register_delegate(build_connection)

        assert container.resolve(Connection).dsn == "delegate"

    def test_delegate_parameters_are_injected(self, container: Container) -> None:
        def build_repository(connection: Connection) -> Repository:
            return Repository(connection)

        container.register_type(Connection)
        container.register_delegate(build_repository)

        assert container.resolve(Repository).connection.dsn == "memory"

    def test_delegate_named_args(self, container: Container) -> None:
        def build_connection(dsn: str) -> Connection:
            return Connection(dsn)

        container.register_delegate(build_connection, named_args={"dsn": "postgres://"})

        assert container.resolve(Connection).dsn == "postgres://"

    def test_delegate_lifetime(self, container: Container) -> None:
        def build_service() -> ServiceA:
            return ServiceA()

        container.register_delegate(build_service, lifetime=Lifetime.SINGLETON)

        assert container.resolve(ServiceA) is container.resolve(ServiceA)

    def test_delegate_without_annotation_is_rejected(self, container: Container) -> None:
        with pytest.raises(TypeWireInvalidRegistrationError, match="annotate"):
            container.register_delegate(lambda: ServiceA())

    def test_delegate_with_explicit_service_type(self, container: Container) -> None:
        container.register_delegate(lambda: ServiceA(), ServiceA)

        assert isinstance(container.resolve(ServiceA), ServiceA)


class TestMemberBinding:
    def test_members_are_not_bound_by_default(self, container: Container) -> None:
        container.register_type(ServiceA)
        container.register_type(ServiceB)
        container.register_type(Handler)

        assert not hasattr(container.resolve(Handler), "service")

    def test_annotated_members_are_bound_when_enabled(self, container: Container) -> None:
        """Only resolvable annotated members are injected."""
        container.register_type(ServiceA)
        container.register_type(ServiceB)
        container.register_type(Handler, member_binding=MemberBindingBehaviour.BIND_ANNOTATED)

        handler = container.resolve(Handler)

        assert isinstance(handler.service, ServiceA)
        assert handler.label == "handler"
        assert not hasattr(handler, "missing")

    def test_member_binding_option(self) -> None:
        options = ContainerOptions()
        options.set(Option.MEMBER_BINDING, MemberBindingBehaviour.BIND_ANNOTATED, for_type=Handler)
        container = Container(options=options)
        container.register_type(ServiceA)
        container.register_type(ServiceB)
        container.register_type(Handler)

        assert isinstance(container.resolve(Handler).service, ServiceA)


class TestOverridingContainer:
    def test_overrides_shadow_inner_registrations(self, container: Container) -> None:
        container.register_type(FirstService, IService)
        overriding = OverridingContainer(container)
        overriding.register_type(SecondService, IService)

        assert isinstance(overriding.resolve(IService), SecondService)
        assert isinstance(container.resolve(IService), FirstService)
        assert overriding.inner is container

    def test_inner_dependencies_use_overrides(self, container: Container) -> None:
        """Services registered only in the inner container see overriding registrations."""
        container.register_type(ServiceA)
        container.register_type(ServiceB)
        replacement = ServiceA()
        overriding = OverridingContainer(container)
        overriding.register_object(replacement)

        assert overriding.resolve(ServiceB).a is replacement
        assert container.resolve(ServiceB).a is not replacement

    def test_singletons_are_shared(self, container: Container) -> None:
        container.register_singleton(ServiceA)
        overriding = OverridingContainer(container)

        assert overriding.resolve(ServiceA) is container.resolve(ServiceA)
        assert overriding.resolve(Container) is overriding

    def test_options_are_copied(self, container: Container) -> None:
        overriding = OverridingContainer(container)
        overriding.options.set(Option.ENABLE_LIST_INJECTION, False)

        assert container.options.get(Option.ENABLE_LIST_INJECTION) is True

    def test_close_leaves_inner_container_open(self, container: Container) -> None:
        overriding = OverridingContainer(container)
        overriding.close()

        assert not container.root_scope.is_disposed

    def test_inner_registrations_after_resolution_are_picked_up(self, container: Container) -> None:
        container.register_type(FirstService, IService)
        overriding = OverridingContainer(container)
        assert isinstance(overriding.resolve(IService), FirstService)

        container.register_type(SecondService, IService)

        assert isinstance(container.resolve(IService), SecondService)
        assert isinstance(overriding.resolve(IService), SecondService)

    def test_inner_registration_fills_a_gap(self, container: Container) -> None:
        overriding = OverridingContainer(container)
        with pytest.raises(TypeWireServiceNotRegisteredError):
            overriding.resolve(ServiceA)

        container.register_type(ServiceA)

        assert isinstance(overriding.resolve(ServiceA), ServiceA)


class TestResolvedTarget:
    def test_fallback_is_used_when_nothing_is_registered(self, container: Container) -> None:
        fallback = FirstService()
        container.register(ResolvedTarget(FirstService, ObjectTarget(fallback)), IService)

        assert container.resolve(IService) is fallback

    def test_registration_wins_over_fallback(self, container: Container) -> None:
        fallback = FirstService()
        container.register(ResolvedTarget(FirstService, ObjectTarget(fallback)), IService)
        assert container.resolve(IService) is fallback

        container.register_type(FirstService)

        resolved = container.resolve(IService)

        assert isinstance(resolved, FirstService)
        assert resolved is not fallback

    def test_without_fallback_resolves_at_call_time(self, container: Container) -> None:
        container.register(ResolvedTarget(FirstService), IService)

        with pytest.raises(TypeWireServiceNotRegisteredError):
            container.resolve(IService)


class TestCompile:
    def test_compile_surfaces_binding_errors(self, container: Container) -> None:
        container.register(ObjectTarget(ServiceA()))
        container.register_type(UntypedHolder)

        with pytest.raises(TypeWireBindingError):
            container.compile()

    def test_compile_logs_summary(self, container: Container, caplog: pytest.LogCaptureFixture) -> None:
        caplog.set_level(logging.INFO, logger="typewire.container")
        container.register_type(ServiceA)
        container.register_type(Box, IBox)

        container.compile()

        assert "Compiled 2 registration(s)" in caplog.text
