"""SQLite-backed task mirror."""

import logging
import uuid
from datetime import datetime, timedelta
from typing import Any

import aiosqlite

from task_follower.core.dates import parse_stored, to_stored
from task_follower.core.db_client import get_connection, row_to_dict
from task_follower.core.errors import RepositoryError
from task_follower.domain.task import Task, TaskKey, TaskStatus


logger = logging.getLogger(__name__)

_DATETIME_FIELDS = (
    "created_at",
    "updated_at",
    "start_date",
    "due_date",
    "completed_at",
    "blocked_at",
    "last_sent",
    "last_reported",
)

_COLUMNS = (
    "id",
    "sheet_id",
    "project",
    "row_number",
    "description",
    "priority",
    "points",
    "status",
    "status_label",
    "milestone",
    "notes",
    "owner_id",
    "owner_name",
    "owner_channel",
    "manager_id",
    "manager_name",
    "manager_channel",
    *_DATETIME_FIELDS,
)

# Columns an upsert never overwrites on conflict
_IMMUTABLE_ON_CONFLICT = {"id", "sheet_id", "project", "row_number", "created_at"}

# Not completed by status nor by a sticky completion stamp
_ACTIVE_CLAUSE = "status != 'completed' AND completed_at IS NULL"


def _to_record(task: Task) -> dict[str, Any]:
    record = task.model_dump(include=set(_COLUMNS))
    record["status"] = task.status.value
    for field in _DATETIME_FIELDS:
        record[field] = to_stored(getattr(task, field))
    return record


def _from_record(record: dict[str, Any]) -> Task:
    data = dict(record)
    for field in _DATETIME_FIELDS:
        data[field] = parse_stored(data.get(field))
    data["status"] = TaskStatus(data["status"])
    return Task(**data)


class SqliteTaskRepository:
    """Task storage keyed by (sheet_id, project, row_number)."""

    def __init__(self, *, db_path: str | None = None) -> None:
        self._db_path = db_path

    async def _fetch_all(self, query: str, params: tuple[Any, ...] = ()) -> list[Task]:
        try:
            conn = await get_connection(db_path=self._db_path)
            cursor = await conn.execute(query, params)
            rows = await cursor.fetchall()
        except aiosqlite.Error as e:
            logger.error("task_query_failed", extra={"error": str(e)})
            raise RepositoryError(f"Failed to query tasks: {e}") from e
        return [_from_record(row_to_dict(row)) for row in rows]

    async def _fetch_one(self, query: str, params: tuple[Any, ...]) -> Task | None:
        tasks = await self._fetch_all(query, params)
        return tasks[0] if tasks else None

    async def find_by_key(self, key: TaskKey) -> Task | None:
        return await self._fetch_one(
            "SELECT * FROM tasks WHERE sheet_id = ? AND project = ? AND row_number = ?",
            (key.sheet_id, key.project, key.row_number),
        )

    async def get_by_id(self, task_id: str) -> Task | None:
        return await self._fetch_one("SELECT * FROM tasks WHERE id = ?", (task_id,))

    async def upsert(self, task: Task) -> Task:
        """Insert or update a task by its composite key.

        A new row gets a surrogate id. On conflict every mutable column is
        overwritten, so callers pass the fully merged task.

        Raises:
            RepositoryError: If the write fails
        """
        record = _to_record(task)
        if not record["id"]:
            record["id"] = uuid.uuid4().hex

        columns = ", ".join(_COLUMNS)
        placeholders = ", ".join("?" for _ in _COLUMNS)
        updates = ", ".join(f"{col} = excluded.{col}" for col in _COLUMNS if col not in _IMMUTABLE_ON_CONFLICT)
        query = (
            f"INSERT INTO tasks ({columns}) VALUES ({placeholders}) "  # noqa: S608 - columns are constants
            f"ON CONFLICT(sheet_id, project, row_number) DO UPDATE SET {updates}"
        )

        try:
            conn = await get_connection(db_path=self._db_path)
            await conn.execute(query, tuple(record[col] for col in _COLUMNS))
            await conn.commit()
        except aiosqlite.Error as e:
            logger.error("task_upsert_failed", extra={"task_key": str(task.key), "error": str(e)})
            raise RepositoryError(f"Failed to upsert task {task.key}: {e}") from e

        stored = await self.find_by_key(task.key)
        if stored is None:
            raise RepositoryError(f"Task {task.key} vanished after upsert")
        return stored

    async def list_by_sheet(self, sheet_id: str) -> list[Task]:
        return await self._fetch_all(
            "SELECT * FROM tasks WHERE sheet_id = ? ORDER BY project, row_number",
            (sheet_id,),
        )

    async def list_by_project(self, project: str, *, sheet_id: str | None = None) -> list[Task]:
        if sheet_id is None:
            return await self._fetch_all(
                "SELECT * FROM tasks WHERE project = ? ORDER BY sheet_id, row_number",
                (project,),
            )
        return await self._fetch_all(
            "SELECT * FROM tasks WHERE project = ? AND sheet_id = ? ORDER BY row_number",
            (project, sheet_id),
        )

    async def list_overdue(self, now: datetime) -> list[Task]:
        """Incomplete tasks whose due date has passed."""
        return await self._fetch_all(
            f"SELECT * FROM tasks WHERE due_date IS NOT NULL AND due_date < ? AND {_ACTIVE_CLAUSE} "  # noqa: S608
            "ORDER BY due_date",
            (to_stored(now),),
        )

    async def list_due_soon(self, now: datetime, days: int) -> list[Task]:
        """Incomplete tasks due within the next `days` days."""
        return await self._fetch_all(
            f"SELECT * FROM tasks WHERE due_date IS NOT NULL AND due_date >= ? AND due_date <= ? "  # noqa: S608
            f"AND {_ACTIVE_CLAUSE} ORDER BY due_date",
            (to_stored(now), to_stored(now + timedelta(days=days))),
        )

    async def list_blocked(self) -> list[Task]:
        """Tasks whose current status is blocked; blocked_at alone only records when blocking began."""
        return await self._fetch_all("SELECT * FROM tasks WHERE status = 'blocked' ORDER BY blocked_at")

    async def update_last_reported(self, task_id: str, when: datetime) -> None:
        try:
            conn = await get_connection(db_path=self._db_path)
            await conn.execute("UPDATE tasks SET last_reported = ? WHERE id = ?", (to_stored(when), task_id))
            await conn.commit()
        except aiosqlite.Error as e:
            logger.error("update_last_reported_failed", extra={"task_id": task_id, "error": str(e)})
            raise RepositoryError(f"Failed to update task {task_id}: {e}") from e

    async def unblock(self, task_id: str) -> Task | None:
        """Clear the blocked stamp; the only way blocked_at is ever cleared."""
        try:
            conn = await get_connection(db_path=self._db_path)
            cursor = await conn.execute(
                "UPDATE tasks SET blocked_at = NULL, "
                "status = CASE WHEN status = 'blocked' THEN 'open' ELSE status END WHERE id = ?",
                (task_id,),
            )
            await conn.commit()
        except aiosqlite.Error as e:
            logger.error("unblock_failed", extra={"task_id": task_id, "error": str(e)})
            raise RepositoryError(f"Failed to unblock task {task_id}: {e}") from e

        if cursor.rowcount == 0:
            return None
        logger.info("Task unblocked", extra={"task_id": task_id})
        return await self.get_by_id(task_id)
