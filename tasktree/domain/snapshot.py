"""Flat, storage-ready task snapshots and rehydration from them."""

from collections.abc import Iterable, Mapping
from typing import Any

from tasktree.core.errors import InvalidFieldError
from tasktree.domain.task import ContainerTask, LeafTask, Task, TaskKind, build_task


# Bookkeeping the store stamps onto a snapshot; never part of the entity
STORE_METADATA_FIELDS = frozenset({"created", "updated"})


def to_snapshot(task: Task) -> dict[str, Any]:
    """Return the JSON-compatible snapshot of a task.

    Containers carry the ordered identities of their sub-tasks under
    ``subtask_ids``; the sub-tasks themselves are snapshotted separately.

    Raises:
        InvalidFieldError: If a container holds a sub-task that has no identity yet
    """
    match task:
        case LeafTask():
            return task.model_dump(mode="json")
        case ContainerTask():
            if any(subtask.id is None for subtask in task.subtasks):
                raise InvalidFieldError("subtasks", "sub-tasks must be stored before their container")
            snapshot = task.model_dump(mode="json", exclude={"subtasks"})
            snapshot["subtask_ids"] = [subtask.id for subtask in task.subtasks]
            return snapshot


def rehydrate(
    snapshot: Mapping[str, Any],
    subtasks: Iterable[Mapping[str, Any] | LeafTask] | None = None,
) -> Task:
    """Rebuild a task read back from storage.

    Args:
        snapshot: Stored snapshot, including its identity
        subtasks: For a container, the resolved sub-task snapshots (or leaf
            tasks) for every identity listed in ``subtask_ids``, in any order

    Returns:
        The reconstructed task, sub-tasks ordered as in ``subtask_ids``

    Raises:
        InvalidFieldError: If the snapshot is malformed or its sub-tasks don't match
    """
    data = {key: value for key, value in snapshot.items() if key not in STORE_METADATA_FIELDS}
    if data.get("id") is None:
        raise InvalidFieldError("id", "a stored snapshot must carry an identity")

    if data.get("kind") != TaskKind.CONTAINER:
        if subtasks:
            raise InvalidFieldError("subtasks", "a leaf task carries no sub-tasks")
        return build_task(data)

    subtask_ids = list(data.pop("subtask_ids", None) or [])
    resolved: dict[int, LeafTask] = {}
    for raw in subtasks or ():
        subtask = raw if isinstance(raw, LeafTask | ContainerTask) else rehydrate(raw)
        if isinstance(subtask, ContainerTask):
            raise InvalidFieldError("subtasks", "a container task cannot be nested")
        resolved[subtask.id] = subtask

    missing = [subtask_id for subtask_id in subtask_ids if subtask_id not in resolved]
    if missing:
        raise InvalidFieldError("subtask_ids", f"unresolved sub-task identities {missing}")
    unexpected = sorted(set(resolved) - set(subtask_ids))
    if unexpected:
        raise InvalidFieldError("subtasks", f"sub-tasks {unexpected} are not listed in subtask_ids")

    data["subtasks"] = [resolved[subtask_id] for subtask_id in subtask_ids]
    return build_task(data)
