"""Pytest configuration and shared fixtures."""

from collections.abc import Callable
from typing import Any

import logfire
import pytest

from tasktree.domain.task import ContainerTask, LeafTask, TaskPriority, build_task


@pytest.fixture(scope="session", autouse=True)
def quiet_logfire() -> None:
    """Keep spans local during tests."""
    logfire.configure(send_to_logfire=False, console=False)


@pytest.fixture
def leaf_props() -> dict[str, Any]:
    """Valid property bag for a leaf task."""
    return {
        "kind": "leaf",
        "title": "Write migration",
        "subtitle": "Schema v2",
        "description": "Add the estimates columns",
        "priority": TaskPriority.MEDIUM,
        "points": 5,
        "estimated_days": 2,
    }


@pytest.fixture
def container_props() -> dict[str, Any]:
    """Valid property bag for an empty container task."""
    return {
        "kind": "container",
        "title": "Release 2.0",
        "subtitle": "Q3 milestone",
        "description": "Everything needed to ship 2.0",
        "capacity": 3,
    }


@pytest.fixture
def make_leaf(leaf_props: dict[str, Any]) -> Callable[..., LeafTask]:
    """Factory for leaf tasks; keyword arguments override the base props."""

    def _make(**overrides: Any) -> LeafTask:
        task = build_task({**leaf_props, **overrides})
        assert isinstance(task, LeafTask)
        return task

    return _make


@pytest.fixture
def make_container(container_props: dict[str, Any]) -> Callable[..., ContainerTask]:
    """Factory for container tasks; keyword arguments override the base props."""

    def _make(**overrides: Any) -> ContainerTask:
        task = build_task({**container_props, **overrides})
        assert isinstance(task, ContainerTask)
        return task

    return _make
