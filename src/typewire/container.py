from __future__ import annotations

import collections.abc
import logging
from collections.abc import Callable, Iterable, Mapping
from types import TracebackType
from typing import TYPE_CHECKING, Any, TypeVar, get_args, get_origin, overload

from typing_extensions import Self

from typewire.compilation import CompileContext, TargetCompiler
from typewire.compiled_targets import CompiledTarget, UnresolvedTypeCompiledTarget
from typewire.defaults import DEFAULT_REGISTRATION_LIFETIME
from typewire.exceptions import TypeWireInvalidRegistrationError, TypeWireScopeDisposedError
from typewire.generics import is_open_generic
from typewire.options import ContainerOptions, Option
from typewire.registry import OverridingTargetContainer, TargetContainer
from typewire.resolve_context import ResolveContext
from typewire.scope import ContainerScope, InstanceCache
from typewire.targets import (
    ConstructorTarget,
    DelegateTarget,
    EnumerableTarget,
    FuncTarget,
    GenericConstructorTarget,
    LazyTarget,
    ObjectTarget,
    ScopedTarget,
    SingletonTarget,
    Target,
)
from typewire.types import Lazy, Lifetime, MemberBindingBehaviour, ScopeBehaviour, ScopePreference
from typewire.validators import RegistrationValidator

if TYPE_CHECKING:
    from typewire.configs import ContainerConfig

T = TypeVar("T")

logger = logging.getLogger(__name__)

_COLLECTION_OPTIONS: dict[Any, Option] = {
    tuple: Option.ENABLE_ARRAY_INJECTION,
    list: Option.ENABLE_LIST_INJECTION,
    collections.abc.Collection: Option.ENABLE_COLLECTION_INJECTION,
    collections.abc.Sequence: Option.ENABLE_COLLECTION_INJECTION,
    collections.abc.Iterable: Option.ENABLE_ENUMERABLE_INJECTION,
}


class Container:
    """Dependency injection container for registering and resolving services.

    Registrations produce targets stored in a ``TargetContainer``. The first
    resolution of a ``(type, name)`` pair compiles the matching target; later
    resolutions call the cached compiled target directly.

    Examples:
        .. code-block:: python

            container = Container()
            container.register_type(SqlRepository, Repository)
            container.register_singleton(Settings)

            with container.create_scope() as scope:
                repository = scope.resolve(Repository)

    """

    def __init__(
        self,
        targets: TargetContainer | None = None,
        *,
        options: ContainerOptions | None = None,
        config: ContainerConfig | None = None,
    ) -> None:
        self._targets = targets if targets is not None else TargetContainer()
        self._options = options if options is not None else ContainerOptions()
        self._validator = RegistrationValidator()
        self._compiler = TargetCompiler()
        self._compiled: dict[tuple[Any, str | None], CompiledTarget] = {}
        self._compiled_version = self._targets.version
        self._singletons = InstanceCache()
        self._root_scope = ContainerScope(self)

        self.register(ObjectTarget(self, Container), Container)
        if config is not None:
            config.configure(self)

    @property
    def targets(self) -> TargetContainer:
        return self._targets

    @property
    def options(self) -> ContainerOptions:
        return self._options

    @property
    def singletons(self) -> InstanceCache:
        return self._singletons

    @property
    def root_scope(self) -> ContainerScope:
        return self._root_scope

    def register(self, target: Target, service_type: Any = None, *, name: str | None = None) -> None:
        """Register a target for ``service_type`` (the target's declared type by default).

        Raises:
            TypeWireInvalidRegistrationError: If the target cannot produce
                instances usable as ``service_type``.

        """
        self._targets.register(target, service_type, name=name)
        self._invalidate()

    def register_type(
        self,
        concrete_type: Any,
        service_type: Any = None,
        *,
        lifetime: Lifetime = DEFAULT_REGISTRATION_LIFETIME,
        name: str | None = None,
        named_args: Mapping[str, Any] | None = None,
        member_binding: MemberBindingBehaviour | None = None,
        scope_behaviour: ScopeBehaviour = ScopeBehaviour.IMPLICIT,
        scope_preference: ScopePreference = ScopePreference.CURRENT,
    ) -> None:
        """Register a class (or open generic class) to be constructed on request.

        Args:
            concrete_type: The class to build. Open generic classes are closed
                per request through their generic bases.
            service_type: The contract to register for. Defaults to ``concrete_type``.
            lifetime: Transient, singleton or scoped.
            name: Optional hierarchical name (``"db.primary"``).
            named_args: Explicit constructor arguments by parameter name. Values
                may be plain objects or targets.
            member_binding: Overrides the ``MEMBER_BINDING`` option for this type.
            scope_behaviour: How instances interact with the active scope.
            scope_preference: Which scope tracks instances for disposal.

        Raises:
            TypeWireInvalidRegistrationError: If ``concrete_type`` is not a
                concrete class or does not implement ``service_type``.

        """
        self._validator.validate_concrete_type(concrete_type)
        target_class = GenericConstructorTarget if is_open_generic(concrete_type) else ConstructorTarget
        target = target_class(
            concrete_type,
            named_args=named_args,
            member_binding=member_binding,
            scope_behaviour=scope_behaviour,
            scope_preference=scope_preference,
        )
        self.register(_with_lifetime(target, lifetime), service_type, name=name)

    def register_singleton(self, concrete_type: Any, service_type: Any = None, **kwargs: Any) -> None:
        """Register a type with one instance per closed type for the container's lifetime."""
        self.register_type(concrete_type, service_type, lifetime=Lifetime.SINGLETON, **kwargs)

    def register_scoped(self, concrete_type: Any, service_type: Any = None, **kwargs: Any) -> None:
        """Register a type with one instance per top-level scope."""
        self.register_type(concrete_type, service_type, lifetime=Lifetime.SCOPED, **kwargs)

    def register_object(
        self,
        obj: Any,
        service_type: Any = None,
        *,
        name: str | None = None,
        dispose: bool = False,
    ) -> None:
        """Register an existing object.

        With ``dispose=True`` the object is disposed when the container closes.
        """
        if obj is None:
            msg = "Cannot register None as an object; register a delegate returning None instead."
            raise TypeWireInvalidRegistrationError(msg)
        self.register(ObjectTarget(obj, service_type, dispose=dispose), service_type, name=name)

    def register_delegate(
        self,
        function: Callable[..., Any],
        service_type: Any = None,
        *,
        lifetime: Lifetime = DEFAULT_REGISTRATION_LIFETIME,
        name: str | None = None,
        named_args: Mapping[str, Any] | None = None,
        scope_behaviour: ScopeBehaviour = ScopeBehaviour.IMPLICIT,
    ) -> None:
        """Register a factory function whose parameters are injected.

        The produced type is ``service_type`` or, when omitted, the function's
        return annotation.
        """
        target = DelegateTarget(
            function,
            service_type,
            named_args=named_args,
            scope_behaviour=scope_behaviour,
        )
        self.register(_with_lifetime(target, lifetime), service_type, name=name)

    def register_multiple(
        self,
        concrete_types: Iterable[Any],
        service_type: Any,
        *,
        lifetime: Lifetime = DEFAULT_REGISTRATION_LIFETIME,
    ) -> None:
        """Register several implementations of one contract, in order."""
        self._validator.validate_service_type(service_type)
        for concrete_type in concrete_types:
            self.register_type(concrete_type, service_type, lifetime=lifetime)

    def register_decorator(self, decorator_type: Any, service_type: Any) -> None:
        """Wrap every resolution of ``service_type`` in ``decorator_type``.

        The decorator's constructor must accept the decorated contract. The
        most recently registered decorator is the outermost one.
        """
        self._targets.register_decorator(decorator_type, service_type)
        self._invalidate()

    @overload
    def resolve(self, service_type: type[T], name: str | None = None) -> T: ...

    @overload
    def resolve(self, service_type: Any, name: str | None = None) -> Any: ...

    def resolve(self, service_type: Any, name: str | None = None) -> Any:
        """Resolve an instance of ``service_type``.

        Raises:
            TypeWireServiceNotRegisteredError: If nothing is registered for the type.
            TypeWireBindingError: If the registered target cannot be bound.

        """
        return self.resolve_in_scope(service_type, name=name, scope=self._root_scope)

    def try_resolve(self, service_type: Any, name: str | None = None) -> tuple[bool, Any]:
        """Resolve ``service_type`` if it is registered; ``(False, None)`` otherwise."""
        return self.try_resolve_in_scope(service_type, name=name, scope=self._root_scope)

    def can_resolve(self, service_type: Any, name: str | None = None) -> bool:
        return self.fetch_target(service_type, name) is not None

    def create_scope(self) -> ContainerScope:
        """Create a top-level scope resolving through this container."""
        return self._root_scope.create_child(self)

    def fetch_target(self, service_type: Any, name: str | None = None) -> Target | None:
        """Return the target used to resolve ``service_type``.

        Explicit registrations win. Otherwise collection, ``Callable[[], T]``
        and ``Lazy[T]`` requests get an automatically assembled target when the
        matching option is enabled.
        """
        target = self._targets.fetch(service_type, name)
        if target is not None:
            return target
        return self._auto_target(service_type)

    def resolve_in_scope(self, service_type: Any, *, name: str | None, scope: ContainerScope) -> Any:
        context = ResolveContext(self, service_type, scope, name)
        return self.resolve_in(context)

    def try_resolve_in_scope(
        self,
        service_type: Any,
        *,
        name: str | None,
        scope: ContainerScope,
    ) -> tuple[bool, Any]:
        compiled = self._get_compiled(service_type, name)
        if isinstance(compiled, UnresolvedTypeCompiledTarget):
            return False, None
        return True, self.resolve_in(ResolveContext(self, service_type, scope, name))

    def resolve_in(self, context: ResolveContext) -> Any:
        """Resolve ``context.requested_type`` against the scope carried by ``context``."""
        if context.scope.is_disposed:
            msg = f"Cannot resolve {context.requested_type!r}: {context.scope!r} has already been disposed."
            raise TypeWireScopeDisposedError(msg)
        return self._get_compiled(context.requested_type, context.name)(context)

    def compile(self) -> None:
        """Compile every closed registration up front.

        Resolution compiles lazily, so calling this is optional. It surfaces
        binding errors early and removes first-resolution latency.
        """
        count = 0
        for service_type, name in self._targets.registered_keys():
            if is_open_generic(service_type):
                continue
            self._get_compiled(service_type, name)
            count += 1
        logger.info("Compiled %d registration(s)", count)

    def close(self) -> None:
        """Dispose every scope, singleton and tracked instance owned by the container."""
        logger.debug("Closing container %r", self)
        self._root_scope.close()

    def __enter__(self) -> Self:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_value: BaseException | None,
        traceback: TracebackType | None,
    ) -> None:
        self.close()

    def _get_compiled(self, service_type: Any, name: str | None) -> CompiledTarget:
        if self._targets.version != self._compiled_version:
            self._invalidate()
        key = (service_type, name)
        compiled = self._compiled.get(key)
        if compiled is not None:
            return compiled

        target = self.fetch_target(service_type, name)
        if target is None:
            compiled = UnresolvedTypeCompiledTarget(service_type, name)
        else:
            compiled = self._compiler.compile(target, CompileContext(self, service_type, name=name))
        return self._compiled.setdefault(key, compiled)

    def _auto_target(self, service_type: Any) -> Target | None:
        origin = get_origin(service_type)
        arguments = get_args(service_type)
        if origin is None or not arguments:
            return None

        collection_option = _COLLECTION_OPTIONS.get(origin)
        if collection_option is not None:
            if origin is tuple and (len(arguments) != 2 or arguments[1] is not Ellipsis):  # noqa: PLR2004
                return None
            element_type = arguments[0]
            if not self._options.get(collection_option, element_type):
                return None
            return EnumerableTarget(element_type, self._targets.fetch_compatible(element_type), service_type)

        if origin is collections.abc.Callable:
            if len(arguments) != 2 or arguments[0] != []:  # noqa: PLR2004
                return None
            result_type = arguments[1]
            if self._options.get(Option.ENABLE_AUTO_FUNC_INJECTION, result_type):
                return FuncTarget(result_type)
            return None

        if origin is Lazy and self._options.get(Option.ENABLE_AUTO_LAZY_INJECTION, arguments[0]):
            return LazyTarget(arguments[0])
        return None

    def _invalidate(self) -> None:
        self._compiled_version = self._targets.version
        self._compiled.clear()
        self._compiler.clear()


class OverridingContainer(Container):
    """A container layered over another one.

    Registrations made here shadow the inner container's without changing it.
    Singletons and the root scope are shared with the inner container, which
    owns them: closing an overriding container does nothing, close the inner
    container instead.
    Registrations added to the inner container later are picked up by the
    next resolution.
    """

    def __init__(
        self,
        inner: Container,
        *,
        options: ContainerOptions | None = None,
        config: ContainerConfig | None = None,
    ) -> None:
        self._inner = inner
        super().__init__(
            OverridingTargetContainer(inner.targets),
            options=options if options is not None else inner.options.copy(),
            config=config,
        )
        self._singletons = inner.singletons
        self._root_scope = inner.root_scope

    @property
    def inner(self) -> Container:
        return self._inner

    def close(self) -> None:
        logger.debug("Overriding container %r leaves disposal to %r", self, self._inner)


def _with_lifetime(target: Target, lifetime: Lifetime) -> Target:
    if lifetime is Lifetime.SINGLETON:
        return SingletonTarget(target)
    if lifetime is Lifetime.SCOPED:
        return ScopedTarget(target)
    return target
