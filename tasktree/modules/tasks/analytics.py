"""Derived progress and summary views over tasks."""

from collections.abc import Iterable

from tasktree.core.config import constants
from tasktree.domain.task import ContainerTask, LeafTask, Task, TaskStatus, TaskSummary


def _percentage(part: int, whole: int) -> int:
    """Integer percentage rounded half up; 0 for an empty whole."""
    if whole == 0:
        return 0
    return (200 * part + whole) // (2 * whole)


def _count_completed(subtasks: Iterable[LeafTask]) -> int:
    return sum(1 for subtask in subtasks if subtask.status == TaskStatus.COMPLETED)


def progress(task: Task) -> int:
    """Return progress as a 0-100 percentage.

    Leaves report by status; containers report the share of completed sub-tasks.
    """
    match task:
        case LeafTask(status=TaskStatus.COMPLETED):
            return constants.PROGRESS_COMPLETE
        case LeafTask(status=TaskStatus.IN_PROGRESS):
            return constants.PROGRESS_IN_PROGRESS
        case LeafTask():
            return constants.PROGRESS_NOT_STARTED
        case ContainerTask(subtasks=subtasks):
            return _percentage(_count_completed(subtasks), len(subtasks))


def summary(task: Task) -> TaskSummary:
    """Aggregate counts, effort and progress for a task.

    A leaf counts as a single unit, pending until its status is COMPLETED.
    """
    match task:
        case LeafTask():
            done = 1 if task.status == TaskStatus.COMPLETED else 0
            return TaskSummary(
                total=1,
                completed=done,
                pending=1 - done,
                points=task.points,
                estimated_days=task.estimated_days,
                progress=progress(task),
            )
        case ContainerTask():
            total = len(task.subtasks)
            done = _count_completed(task.subtasks)
            return TaskSummary(
                total=total,
                completed=done,
                pending=total - done,
                points=sum(subtask.points for subtask in task.subtasks),
                estimated_days=sum(subtask.estimated_days for subtask in task.subtasks),
                progress=progress(task),
            )
