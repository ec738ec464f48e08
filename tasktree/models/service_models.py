"""Pydantic models for service layer return types.

These models give the service boundary typed results instead of raw store
dictionaries.
"""

from typing import Any

from pydantic import BaseModel

from tasktree.domain.task import TaskSummary


class TaskDetails(BaseModel):
    """Stored snapshot of a task together with its derived summary."""

    task: dict[str, Any]
    summary: TaskSummary


class TaskPage(BaseModel):
    """One page of task snapshots with pagination metadata."""

    items: list[dict[str, Any]]
    page: int
    per_page: int
    total: int
    total_pages: int
