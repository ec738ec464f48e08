"""Domain models, construction, and snapshots."""

from tasktree.domain.snapshot import rehydrate, to_snapshot
from tasktree.domain.task import (
    ContainerTask,
    LeafTask,
    Task,
    TaskKind,
    TaskPriority,
    TaskStatus,
    TaskSummary,
    build_task,
)


__all__ = [
    "ContainerTask",
    "LeafTask",
    "Task",
    "TaskKind",
    "TaskPriority",
    "TaskStatus",
    "TaskSummary",
    "build_task",
    "rehydrate",
    "to_snapshot",
]
