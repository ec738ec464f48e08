"""Pure state transition functions for task lifecycle management.

Tasks move PENDING -> IN_PROGRESS -> COMPLETED with no skipping and no way
back. Every function returns a new task; the argument is never modified.
"""

import logging

from tasktree.core.errors import InvalidTransitionError
from tasktree.domain.task import ContainerTask, LeafTask, Task, TaskStatus


logger = logging.getLogger(__name__)


def start(task: Task) -> Task:
    """Move a pending task to IN_PROGRESS.

    Starting a container also starts every attached sub-task, whatever state
    the sub-task was in.

    Raises:
        InvalidTransitionError: If the task is already in progress or completed
    """
    match task.status:
        case TaskStatus.IN_PROGRESS:
            raise InvalidTransitionError(task.status, "already in progress")
        case TaskStatus.COMPLETED:
            raise InvalidTransitionError(task.status, "already completed")

    match task:
        case LeafTask():
            started = task.model_copy(update={"status": TaskStatus.IN_PROGRESS})
        case ContainerTask():
            subtasks = tuple(
                subtask.model_copy(update={"status": TaskStatus.IN_PROGRESS, "completed": False})
                for subtask in task.subtasks
            )
            started = task.model_copy(update={"status": TaskStatus.IN_PROGRESS, "subtasks": subtasks})

    logger.debug("Started %s task %s", task.kind, task.id)
    return started


def complete(task: Task) -> Task:
    """Move an in-progress task to COMPLETED.

    A container completes only once every attached sub-task is completed.

    Raises:
        InvalidTransitionError: If the task was never started, is already
            completed, or is a container with unfinished sub-tasks
    """
    match task.status:
        case TaskStatus.PENDING:
            raise InvalidTransitionError(task.status, "cannot complete before starting")
        case TaskStatus.COMPLETED:
            raise InvalidTransitionError(task.status, "already completed")

    if isinstance(task, ContainerTask) and any(
        subtask.status != TaskStatus.COMPLETED for subtask in task.subtasks
    ):
        raise InvalidTransitionError(task.status, "pending sub-tasks remain")

    logger.debug("Completed %s task %s", task.kind, task.id)
    return task.model_copy(update={"status": TaskStatus.COMPLETED, "completed": True})
