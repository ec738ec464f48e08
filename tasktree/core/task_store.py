"""In-memory snapshot store used as the task persistence adapter."""

import copy
import logging
import math
from collections.abc import Iterable
from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel

from tasktree.core.config import constants
from tasktree.core.errors import StoreError, TaskNotFoundError


logger = logging.getLogger(__name__)


def _now() -> str:
    return datetime.now(UTC).isoformat().replace("+00:00", "Z")


class SnapshotPage(BaseModel):
    """One page of stored snapshots."""

    items: list[dict[str, Any]]
    page: int
    per_page: int
    total: int
    total_pages: int


class InMemoryTaskStore:
    """Pure Python snapshot store keyed by integer task identity.

    Stores the flat snapshots produced by ``to_snapshot`` and hands back deep
    copies, so callers can never reach stored state by reference. Supports
    basic CRUD, equality filtering and pagination.
    """

    def __init__(self) -> None:
        """Initialize an empty store."""
        self._records: dict[int, dict[str, Any]] = {}
        self._id_counter = constants.FIRST_TASK_ID

    async def create_record(self, data: dict[str, Any]) -> dict[str, Any]:
        """Store a new snapshot under a freshly assigned identity.

        Args:
            data: Snapshot to store; any ``id`` it carries is replaced

        Returns:
            The stored record with id, created, and updated fields

        Raises:
            StoreError: If data is not a dictionary
        """
        if not isinstance(data, dict):
            raise StoreError(f"Data must be a dictionary, got {type(data)}")

        record_id = self._id_counter
        self._id_counter += 1

        now = _now()
        record = {**copy.deepcopy(data), "id": record_id, "created": now, "updated": now}
        self._records[record_id] = record
        logger.debug("Stored task %s", record_id)

        return copy.deepcopy(record)

    async def get_record(self, record_id: int) -> dict[str, Any]:
        """Get a stored snapshot by identity.

        Raises:
            TaskNotFoundError: If nothing is stored under the identity
        """
        if record_id not in self._records:
            raise TaskNotFoundError(record_id)
        return copy.deepcopy(self._records[record_id])

    async def get_records(self, record_ids: Iterable[int]) -> list[dict[str, Any]]:
        """Get several stored snapshots, in the order requested.

        Raises:
            TaskNotFoundError: For the first identity that isn't stored
        """
        return [await self.get_record(record_id) for record_id in record_ids]

    async def update_record(self, record_id: int, data: dict[str, Any]) -> dict[str, Any]:
        """Merge fields into a stored snapshot.

        Args:
            record_id: Identity of the snapshot to update
            data: Fields to overwrite; ``id`` and ``created`` are preserved

        Returns:
            The updated record

        Raises:
            StoreError: If data is not a dictionary
            TaskNotFoundError: If nothing is stored under the identity
        """
        if not isinstance(data, dict):
            raise StoreError(f"Data must be a dictionary, got {type(data)}")
        if record_id not in self._records:
            raise TaskNotFoundError(record_id)

        record = self._records[record_id]
        changes = {key: value for key, value in copy.deepcopy(data).items() if key not in {"id", "created"}}
        record.update(changes)
        record["updated"] = _now()

        return copy.deepcopy(record)

    async def delete_record(self, record_id: int) -> bool:
        """Delete a stored snapshot.

        Returns:
            True on success

        Raises:
            TaskNotFoundError: If nothing is stored under the identity
        """
        if record_id not in self._records:
            raise TaskNotFoundError(record_id)
        del self._records[record_id]
        logger.debug("Deleted task %s", record_id)
        return True

    async def list_records(self, *, page: int = 1, per_page: int = 10, **filters: Any) -> SnapshotPage:
        """List stored snapshots, newest identity first.

        Args:
            page: 1-based page number
            per_page: Page size
            **filters: Field/value pairs a snapshot must equal to be included

        Raises:
            StoreError: If page or per_page is below 1
        """
        if page < 1 or per_page < 1:
            raise StoreError(f"Invalid page window: page={page}, per_page={per_page}")

        matching = [
            record
            for _, record in sorted(self._records.items(), reverse=True)
            if all(record.get(field) == value for field, value in filters.items())
        ]
        start = (page - 1) * per_page
        return SnapshotPage(
            items=copy.deepcopy(matching[start : start + per_page]),
            page=page,
            per_page=per_page,
            total=len(matching),
            total_pages=math.ceil(len(matching) / per_page),
        )
