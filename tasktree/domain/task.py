"""Task domain models and enums (leaf and container variants)."""

from collections.abc import Mapping
from datetime import datetime
from enum import StrEnum
from typing import Any, ClassVar, Literal

from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from tasktree.core.errors import CapacityExceededError, DuplicateSubtaskError, InvalidFieldError


class TaskKind(StrEnum):
    """Which variant of task a property bag or snapshot describes."""

    LEAF = "leaf"
    CONTAINER = "container"


class TaskStatus(StrEnum):
    """Task lifecycle state."""

    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


class TaskPriority(StrEnum):
    """Relative urgency of a leaf task."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


REQUIRED_TEXT_FIELDS = ("title", "subtitle", "description")
LEAF_ONLY_FIELDS = frozenset({"priority", "points", "estimated_days", "parent_id"})
CONTAINER_ONLY_FIELDS = frozenset({"capacity", "subtasks", "subtask_ids"})


class _TaskFields(BaseModel):
    """Fields and checks shared by both task variants."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    foreign_fields: ClassVar[frozenset[str]] = frozenset()

    id: int | None = Field(default=None, description="Identity assigned by the store, absent until persisted")
    title: str = Field(..., description="Task title")
    subtitle: str = Field(..., description="Short line shown under the title")
    description: str = Field(..., description="Detailed task description")
    due_date: datetime | None = Field(default=None, description="Optional deadline")
    status: TaskStatus = Field(default=TaskStatus.PENDING, description="Current lifecycle state")
    completed: bool = Field(default=False, description="Set once the task reaches COMPLETED")

    @model_validator(mode="before")
    @classmethod
    def _check_field_set(cls, data: Any) -> Any:
        if not isinstance(data, Mapping):
            return data

        for name in REQUIRED_TEXT_FIELDS:
            value = data.get(name)
            if value is None or (isinstance(value, str) and not value.strip()):
                raise InvalidFieldError(name, "must not be empty")

        foreign = sorted(cls.foreign_fields & data.keys())
        if foreign:
            kind = cls.model_fields["kind"].default
            raise InvalidFieldError(foreign[0], f"not allowed on a {kind} task")

        return data

    @model_validator(mode="after")
    def _check_completion(self) -> "_TaskFields":
        if self.status == TaskStatus.COMPLETED and not self.completed:
            raise InvalidFieldError("completed", "a task in status completed must be flagged as completed")
        if self.completed and self.status != TaskStatus.COMPLETED:
            raise InvalidFieldError("completed", f"cannot be set while the status is {self.status}")
        return self


class LeafTask(_TaskFields):
    """Atomic unit of work carrying effort estimates."""

    foreign_fields: ClassVar[frozenset[str]] = CONTAINER_ONLY_FIELDS

    kind: Literal["leaf"] = "leaf"
    priority: TaskPriority = Field(default=TaskPriority.LOW, description="Relative urgency")
    points: int = Field(default=0, description="Effort points")
    estimated_days: int = Field(default=0, description="Estimated duration in days")
    parent_id: int | None = Field(default=None, description="Identity of the owning container, if any")

    @model_validator(mode="after")
    def _check_estimates(self) -> "LeafTask":
        if self.points < 0:
            raise InvalidFieldError("points", "must not be negative")
        if self.estimated_days < 0:
            raise InvalidFieldError("estimated_days", "must not be negative")
        return self


class ContainerTask(_TaskFields):
    """Project made of a bounded, ordered collection of leaf tasks."""

    foreign_fields: ClassVar[frozenset[str]] = LEAF_ONLY_FIELDS | {"subtask_ids"}

    kind: Literal["container"] = "container"
    capacity: int = Field(default=0, description="Maximum number of attached sub-tasks")
    subtasks: tuple[LeafTask, ...] = Field(default=(), description="Attached leaf tasks in insertion order")

    @model_validator(mode="before")
    @classmethod
    def _reject_nested_containers(cls, data: Any) -> Any:
        if isinstance(data, Mapping):
            for subtask in data.get("subtasks") or ():
                if isinstance(subtask, ContainerTask) or (
                    isinstance(subtask, Mapping) and subtask.get("kind") == TaskKind.CONTAINER
                ):
                    raise InvalidFieldError("subtasks", "a container task cannot be nested")
        return data

    @model_validator(mode="after")
    def _check_subtasks(self) -> "ContainerTask":
        if self.capacity < 0:
            raise InvalidFieldError("capacity", "must not be negative")
        if len(self.subtasks) > self.capacity:
            raise CapacityExceededError(limit=self.capacity, current=len(self.subtasks))

        seen: set[int] = set()
        for subtask in self.subtasks:
            if subtask.id is None:
                continue
            if subtask.id in seen:
                raise DuplicateSubtaskError(subtask.id)
            seen.add(subtask.id)
        return self


Task = LeafTask | ContainerTask


class TaskSummary(BaseModel):
    """Aggregate view over a task and, for containers, its sub-tasks."""

    model_config = ConfigDict(frozen=True)

    total: int
    completed: int
    pending: int
    points: int
    estimated_days: int
    progress: int


def build_task(props: Mapping[str, Any]) -> Task:
    """Construct a task from a property bag.

    The bag must name its variant under ``kind``. Shape errors reported by
    pydantic are re-raised as InvalidFieldError naming the first bad field.

    Raises:
        InvalidFieldError: If a field is missing, malformed, or violates an invariant
        CapacityExceededError: If more sub-tasks are supplied than the capacity allows
    """
    model: type[LeafTask] | type[ContainerTask]
    match props.get("kind"):
        case TaskKind.LEAF:
            model = LeafTask
        case TaskKind.CONTAINER:
            model = ContainerTask
        case other:
            raise InvalidFieldError("kind", f"unknown task kind {other!r}")

    data = {**props, "kind": model.model_fields["kind"].default}
    try:
        return model.model_validate(data)
    except ValidationError as e:
        error = e.errors()[0]
        field = ".".join(str(part) for part in error["loc"]) or "task"
        raise InvalidFieldError(field, error["msg"]) from e
