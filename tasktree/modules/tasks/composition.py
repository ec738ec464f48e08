"""Composition rules between containers and leaf tasks, and structural cloning."""

import logging
from collections.abc import Mapping
from typing import Any

from tasktree.core.errors import CapacityExceededError, DuplicateSubtaskError, InvalidFieldError
from tasktree.domain.task import ContainerTask, LeafTask, Task, TaskStatus, build_task


logger = logging.getLogger(__name__)


# Lifecycle and structure are never copied from overrides
CLONE_PROTECTED_FIELDS = frozenset({"id", "kind", "status", "completed", "subtasks", "subtask_ids"})


def add_subtask(container: Task, subtask: Task) -> ContainerTask:
    """Attach a leaf task to a pending container.

    When the container already has an identity, the attached leaf records it
    as its parent.

    Raises:
        InvalidFieldError: If the target isn't a pending container, the sub-task
            is a container, or the sub-task belongs to another container
        DuplicateSubtaskError: If the sub-task identity is already attached
        CapacityExceededError: If the container is full
    """
    if not isinstance(container, ContainerTask):
        raise InvalidFieldError("subtasks", "a leaf task carries no sub-tasks")
    if container.status != TaskStatus.PENDING:
        raise InvalidFieldError("status", f"sub-tasks cannot be added to a task that is {container.status}")
    if isinstance(subtask, ContainerTask):
        raise InvalidFieldError("subtasks", "a container task cannot be nested")
    if subtask.id is not None and any(attached.id == subtask.id for attached in container.subtasks):
        raise DuplicateSubtaskError(subtask.id)
    if subtask.parent_id is not None and subtask.parent_id != container.id:
        raise InvalidFieldError("parent_id", f"task {subtask.id} already belongs to container {subtask.parent_id}")
    if len(container.subtasks) >= container.capacity:
        raise CapacityExceededError(limit=container.capacity, current=len(container.subtasks))

    if container.id is not None:
        subtask = subtask.model_copy(update={"parent_id": container.id})

    logger.debug("Attached task %s to container %s", subtask.id, container.id)
    return container.model_copy(update={"subtasks": (*container.subtasks, subtask)})


def clone(task: Task, overrides: Mapping[str, Any] | None = None) -> Task:
    """Copy a task into a fresh, unpersisted, pending task.

    Every static field is copied, then replaced by any key present in
    ``overrides``. Container sub-tasks are cloned the same way. The result is
    validated exactly like a newly constructed task.

    Raises:
        InvalidFieldError: If an override targets identity, lifecycle or
            structure, or produces an invalid task
        CapacityExceededError: If an overridden capacity is below the sub-task count
    """
    overrides = dict(overrides or {})
    protected = sorted(CLONE_PROTECTED_FIELDS & overrides.keys())
    if protected:
        raise InvalidFieldError(protected[0], "cannot be overridden when cloning")

    props = task.model_dump(exclude={"id", "status", "completed", "subtasks"})
    match task:
        case LeafTask():
            props["parent_id"] = None
        case ContainerTask():
            props["subtasks"] = [clone(subtask) for subtask in task.subtasks]

    props.update(overrides)
    return build_task(props)
