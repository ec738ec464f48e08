"""Task service: load, mutate and persist tasks through the snapshot store.

Every mutating operation holds per-identity locks for the whole
load -> mutate -> persist sequence. Locks are always taken container first,
then its sub-tasks, so two operations never wait on each other in a cycle.
A mutated task that fails to persist is dropped and the store keeps the
snapshots it had before the call.
"""

import asyncio
import logging
import weakref
from collections import defaultdict
from collections.abc import AsyncIterator, Mapping
from contextlib import AsyncExitStack, asynccontextmanager
from typing import Any

from tasktree.core.config import settings
from tasktree.core.errors import InvalidFieldError
from tasktree.core.logging import log_with_task_context, span
from tasktree.core.task_store import InMemoryTaskStore
from tasktree.domain.snapshot import rehydrate, to_snapshot
from tasktree.domain.task import ContainerTask, LeafTask, Task, TaskKind, build_task
from tasktree.models.service_models import TaskDetails, TaskPage
from tasktree.modules.tasks import analytics, composition, state_machine


logger = logging.getLogger(__name__)


# Set by the service itself, never by a create payload
SERVICE_MANAGED_FIELDS = frozenset({"id", "parent_id", "subtasks", "created", "updated"})

# Changed only by start and complete; a new task is always pending
LIFECYCLE_FIELDS = frozenset({"status", "completed"})

# Changed only through transitions, composition or deletion
UPDATE_PROTECTED_FIELDS = SERVICE_MANAGED_FIELDS | LIFECYCLE_FIELDS | {"kind", "subtask_ids"}

_locks: "weakref.WeakKeyDictionary[InMemoryTaskStore, defaultdict[int, asyncio.Lock]]" = weakref.WeakKeyDictionary()


@asynccontextmanager
async def _locked(store: InMemoryTaskStore, *task_ids: int) -> AsyncIterator[None]:
    """Hold the locks for the given identities, acquired in the order given."""
    registry = _locks.setdefault(store, defaultdict(asyncio.Lock))
    async with AsyncExitStack() as stack:
        for task_id in dict.fromkeys(task_ids):
            await stack.enter_async_context(registry[task_id])
        yield


async def _load(store: InMemoryTaskStore, task_id: int) -> Task:
    snapshot = await store.get_record(task_id)
    subtasks = await store.get_records(snapshot.get("subtask_ids") or [])
    return rehydrate(snapshot, subtasks)


@asynccontextmanager
async def _locked_task(store: InMemoryTaskStore, task_id: int) -> AsyncIterator[Task]:
    """Lock a task, and for a container every sub-task, then yield it freshly loaded."""
    async with AsyncExitStack() as stack:
        await stack.enter_async_context(_locked(store, task_id))
        snapshot = await store.get_record(task_id)
        # subtask_ids can't change while the container lock is held
        await stack.enter_async_context(_locked(store, *(snapshot.get("subtask_ids") or [])))
        yield await _load(store, task_id)


def _with_subtasks(task: Task) -> list[Task]:
    if isinstance(task, ContainerTask):
        return [task, *task.subtasks]
    return [task]


async def _persist(store: InMemoryTaskStore, *tasks: Task) -> None:
    """Write task snapshots, restoring every previous snapshot if any write fails."""
    previous = [await store.get_record(task.id) for task in tasks]
    try:
        for task in tasks:
            await store.update_record(task.id, to_snapshot(task))
    except Exception:
        logger.exception("Persisting tasks %s failed, restoring previous snapshots", [task.id for task in tasks])
        for record in previous:
            await store.update_record(record["id"], record)
        raise


async def _insert(store: InMemoryTaskStore, task: Task) -> Task:
    """Store a new task, storing identity-less sub-tasks first and wiring parent references."""
    created: list[int] = []
    attached: list[int] = []
    try:
        if isinstance(task, LeafTask):
            record = await store.create_record(to_snapshot(task))
            return rehydrate(record)

        subtasks: list[LeafTask] = []
        for subtask in task.subtasks:
            if subtask.id is None:
                subtask_record = await store.create_record(to_snapshot(subtask))
                created.append(subtask_record["id"])
                subtask = rehydrate(subtask_record)
            subtasks.append(subtask)

        record = await store.create_record(to_snapshot(task.model_copy(update={"subtasks": tuple(subtasks)})))
        created.append(record["id"])

        parented = []
        for subtask in subtasks:
            await store.update_record(subtask.id, {"parent_id": record["id"]})
            attached.append(subtask.id)
            parented.append(subtask.model_copy(update={"parent_id": record["id"]}))
        return rehydrate(record, parented)
    except Exception:
        logger.exception("Storing new %s task failed, removing partial records", task.kind)
        for subtask_id in attached:
            if subtask_id not in created:
                await store.update_record(subtask_id, {"parent_id": None})
        for record_id in created:
            await store.delete_record(record_id)
        raise


async def create_task(*, store: InMemoryTaskStore, props: Mapping[str, Any]) -> Task:
    """Create and store a new task.

    Args:
        store: Snapshot store
        props: Property bag naming its ``kind``; a container may list stored
            leaf identities under ``subtask_ids`` and falls back to the
            configured default capacity

    Returns:
        The stored task, with its identity

    Raises:
        InvalidFieldError: If the bag is invalid or a listed sub-task can't be
            attached; status and completed are never accepted
        CapacityExceededError: If more sub-tasks are listed than the capacity allows
        TaskNotFoundError: If a listed sub-task doesn't exist
    """
    with span("task_service.create_task"):
        props = dict(props)
        managed = sorted(SERVICE_MANAGED_FIELDS & props.keys())
        if managed:
            raise InvalidFieldError(managed[0], "is set by the task service")
        lifecycle = sorted(LIFECYCLE_FIELDS & props.keys())
        if lifecycle:
            raise InvalidFieldError(lifecycle[0], "a new task always starts pending")

        subtask_ids = list(props.pop("subtask_ids", None) or [])
        if props.get("kind") == TaskKind.CONTAINER:
            props.setdefault("capacity", settings.default_subtask_capacity)
        elif subtask_ids:
            raise InvalidFieldError("subtask_ids", f"not allowed on a {props.get('kind')} task")

        task = build_task(props)
        async with _locked(store, *subtask_ids):
            for subtask_id in subtask_ids:
                task = composition.add_subtask(task, await _load(store, subtask_id))
            created = await _insert(store, task)

        log_with_task_context(logger, "info", "Created task", task_id=created.id, kind=created.kind)
        return created


async def get_task(*, store: InMemoryTaskStore, task_id: int) -> Task:
    """Load a stored task, with its sub-tasks for a container.

    Raises:
        TaskNotFoundError: If the task doesn't exist
    """
    with span("task_service.get_task"):
        return await _load(store, task_id)


async def get_task_details(*, store: InMemoryTaskStore, task_id: int) -> TaskDetails:
    """Return the stored snapshot of a task with its summary.

    Raises:
        TaskNotFoundError: If the task doesn't exist
    """
    with span("task_service.get_task_details"):
        snapshot = await store.get_record(task_id)
        subtasks = await store.get_records(snapshot.get("subtask_ids") or [])
        task = rehydrate(snapshot, subtasks)
        return TaskDetails(task=snapshot, summary=analytics.summary(task))


async def list_tasks(
    *,
    store: InMemoryTaskStore,
    page: int = 1,
    per_page: int | None = None,
    **filters: Any,
) -> TaskPage:
    """List task snapshots, newest first.

    Args:
        store: Snapshot store
        page: 1-based page number
        per_page: Page size; defaults to the configured size and is capped at the configured maximum
        **filters: Snapshot fields that must match exactly (e.g. status="pending", kind="leaf")

    Raises:
        InvalidFieldError: If page or per_page is below 1
    """
    with span("task_service.list_tasks"):
        if page < 1:
            raise InvalidFieldError("page", "must be at least 1")
        if per_page is None:
            per_page = settings.default_page_size
        if per_page < 1:
            raise InvalidFieldError("per_page", "must be at least 1")
        per_page = min(per_page, settings.max_page_size)

        result = await store.list_records(page=page, per_page=per_page, **filters)
        return TaskPage.model_validate(result.model_dump())


async def update_task(*, store: InMemoryTaskStore, task_id: int, changes: Mapping[str, Any]) -> Task:
    """Rebuild a stored task with changed static fields.

    The whole task is validated again; identity, variant, lifecycle and
    sub-tasks can't be changed this way.

    Raises:
        InvalidFieldError: If a protected field is named or the result is invalid
        CapacityExceededError: If the capacity drops below the attached sub-task count
        TaskNotFoundError: If the task doesn't exist
    """
    with span("task_service.update_task"):
        changes = dict(changes)
        protected = sorted(UPDATE_PROTECTED_FIELDS & changes.keys())
        if protected:
            raise InvalidFieldError(protected[0], "cannot be changed by an update")

        async with _locked_task(store, task_id) as task:
            updated = build_task({**task.model_dump(), **changes})
            await _persist(store, updated)

        logger.info("Updated task %s (%s)", task_id, ", ".join(sorted(changes)) or "no changes")
        return updated


async def _delete_leaf(store: InMemoryTaskStore, task_id: int, parent_id: int | None) -> None:
    """Delete a leaf under its own lock and its container's, retrying if the container changes meanwhile."""
    while True:
        lock_ids = [task_id] if parent_id is None else [parent_id, task_id]
        async with _locked(store, *lock_ids):
            current = (await store.get_record(task_id)).get("parent_id")
            if current == parent_id:
                if parent_id is not None:
                    parent = await store.get_record(parent_id)
                    remaining = [sid for sid in parent.get("subtask_ids") or [] if sid != task_id]
                    await store.update_record(parent_id, {"subtask_ids": remaining})
                await store.delete_record(task_id)
                return
        logger.debug("Task %s moved from container %s to %s before deletion, retrying", task_id, parent_id, current)
        parent_id = current


async def delete_task(*, store: InMemoryTaskStore, task_id: int) -> None:
    """Delete a stored task, keeping container and leaf references consistent.

    Deleting a container detaches its sub-tasks; deleting an attached leaf
    removes it from its container.

    Raises:
        TaskNotFoundError: If the task doesn't exist
    """
    with span("task_service.delete_task"):
        snapshot = await store.get_record(task_id)

        if snapshot["kind"] == TaskKind.CONTAINER:
            async with _locked_task(store, task_id) as container:
                for subtask in container.subtasks:
                    await store.update_record(subtask.id, {"parent_id": None})
                await store.delete_record(task_id)
        else:
            await _delete_leaf(store, task_id, snapshot.get("parent_id"))

        _locks.get(store, {}).pop(task_id, None)
        logger.info("Deleted task %s", task_id)


async def start_task(*, store: InMemoryTaskStore, task_id: int) -> Task:
    """Start a stored task; starting a container starts its sub-tasks too.

    Raises:
        InvalidTransitionError: If the task isn't pending
        TaskNotFoundError: If the task doesn't exist
    """
    with span("task_service.start_task"):
        async with _locked_task(store, task_id) as task:
            started = state_machine.start(task)
            await _persist(store, *_with_subtasks(started))

        log_with_task_context(logger, "info", "Started task", task_id=task_id, kind=started.kind)
        return started


async def complete_task(*, store: InMemoryTaskStore, task_id: int) -> Task:
    """Complete a stored task; a container needs every sub-task completed first.

    Raises:
        InvalidTransitionError: If the task isn't in progress or has unfinished sub-tasks
        TaskNotFoundError: If the task doesn't exist
    """
    with span("task_service.complete_task"):
        async with _locked_task(store, task_id) as task:
            completed = state_machine.complete(task)
            await _persist(store, completed)

        log_with_task_context(logger, "info", "Completed task", task_id=task_id, kind=completed.kind)
        return completed


async def add_subtask(*, store: InMemoryTaskStore, container_id: int, subtask_id: int) -> ContainerTask:
    """Attach a stored leaf task to a stored pending container.

    Raises:
        InvalidFieldError: If the container isn't a pending container or the task can't be attached
        DuplicateSubtaskError: If the task is already attached
        CapacityExceededError: If the container is full
        TaskNotFoundError: If either task doesn't exist
    """
    with span("task_service.add_subtask"):
        async with _locked_task(store, container_id) as container:
            # Reject bad pairings on an unlocked read; past this point the task is a detached leaf
            composition.add_subtask(container, await _load(store, subtask_id))

            async with _locked(store, subtask_id):
                updated = composition.add_subtask(container, await _load(store, subtask_id))
                await _persist(store, updated, updated.subtasks[-1])

        logger.info("Attached task %s to container %s", subtask_id, container_id)
        return updated


async def clone_task(
    *,
    store: InMemoryTaskStore,
    task_id: int,
    overrides: Mapping[str, Any] | None = None,
) -> Task:
    """Clone a stored task into a new pending task, sub-tasks included.

    Raises:
        InvalidFieldError: If the overrides are invalid
        CapacityExceededError: If an overridden capacity is below the sub-task count
        TaskNotFoundError: If the task doesn't exist
    """
    with span("task_service.clone_task"):
        async with _locked_task(store, task_id) as task:
            cloned = composition.clone(task, overrides)

        created = await _insert(store, cloned)
        log_with_task_context(logger, "info", "Cloned task", task_id=created.id, source_id=task_id)
        return created
