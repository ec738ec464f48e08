"""Pytest configuration and fixtures for unit tests."""

import pytest

from tasktree.core.task_store import InMemoryTaskStore


@pytest.fixture
def store() -> InMemoryTaskStore:
    """Provides a fresh InMemoryTaskStore for each test."""
    return InMemoryTaskStore()
