"""Shared pytest fixtures for typewire tests."""

import pytest

from typewire.container import Container
from typewire.options import ContainerOptions
from typewire.registry import TargetContainer


@pytest.fixture()
def container() -> Container:
    """Default container with default options."""
    return Container()


@pytest.fixture()
def options() -> ContainerOptions:
    """Empty option set, falling back to the defaults."""
    return ContainerOptions()


@pytest.fixture()
def targets() -> TargetContainer:
    """Empty root target registry."""
    return TargetContainer()
