from typewire.configs import CombinedContainerConfig, ContainerConfig, RegisterModule, SetOption
from typewire.container import Container, OverridingContainer
from typewire.exceptions import (
    TypeWireBindingError,
    TypeWireConfigurationError,
    TypeWireCyclicDependencyError,
    TypeWireDependencyCycleError,
    TypeWireError,
    TypeWireGenericMappingError,
    TypeWireInvalidGenericTypeArgumentError,
    TypeWireInvalidRegistrationError,
    TypeWireMissingDependencyError,
    TypeWireScopeDisposedError,
    TypeWireServiceNotRegisteredError,
)
from typewire.options import ContainerOptions, Option
from typewire.ordering import Dependant, sort_dependants
from typewire.registry import OverridingTargetContainer, TargetContainer
from typewire.scope import ContainerScope
from typewire.targets import (
    ConstructorTarget,
    DecoratorTarget,
    DelegateTarget,
    EnumerableTarget,
    FuncTarget,
    GenericConstructorTarget,
    LazyTarget,
    ListTarget,
    ObjectTarget,
    ResolvedTarget,
    ScopedTarget,
    SingletonTarget,
    Target,
)
from typewire.types import Lazy, Lifetime, MemberBindingBehaviour, ScopeBehaviour, ScopePreference

__all__ = [
    "CombinedContainerConfig",
    "ConstructorTarget",
    "Container",
    "ContainerConfig",
    "ContainerOptions",
    "ContainerScope",
    "DecoratorTarget",
    "DelegateTarget",
    "Dependant",
    "EnumerableTarget",
    "FuncTarget",
    "GenericConstructorTarget",
    "Lazy",
    "LazyTarget",
    "Lifetime",
    "ListTarget",
    "MemberBindingBehaviour",
    "ObjectTarget",
    "Option",
    "OverridingContainer",
    "OverridingTargetContainer",
    "RegisterModule",
    "ResolvedTarget",
    "ScopeBehaviour",
    "ScopePreference",
    "ScopedTarget",
    "SetOption",
    "SingletonTarget",
    "Target",
    "TargetContainer",
    "TypeWireBindingError",
    "TypeWireConfigurationError",
    "TypeWireCyclicDependencyError",
    "TypeWireDependencyCycleError",
    "TypeWireError",
    "TypeWireGenericMappingError",
    "TypeWireInvalidGenericTypeArgumentError",
    "TypeWireInvalidRegistrationError",
    "TypeWireMissingDependencyError",
    "TypeWireScopeDisposedError",
    "TypeWireServiceNotRegisteredError",
    "sort_dependants",
]
