"""Registered spreadsheets the service follows."""

import logging
from datetime import UTC, datetime

import aiosqlite

from task_follower.core.dates import parse_stored, to_stored
from task_follower.core.db_client import get_connection
from task_follower.core.errors import RepositoryError
from task_follower.domain.sheet import Sheet


logger = logging.getLogger(__name__)


class SqliteSheetRegistry:
    """Sheet registrations; deleting one cascades to its tasks."""

    def __init__(self, *, db_path: str | None = None) -> None:
        self._db_path = db_path

    async def list_sheets(self) -> list[Sheet]:
        try:
            conn = await get_connection(db_path=self._db_path)
            cursor = await conn.execute("SELECT sheet_id, name, created_at FROM sheets ORDER BY created_at, sheet_id")
            rows = await cursor.fetchall()
        except aiosqlite.Error as e:
            raise RepositoryError(f"Failed to list sheets: {e}") from e
        return [
            Sheet(sheet_id=row["sheet_id"], name=row["name"], created_at=parse_stored(row["created_at"]))
            for row in rows
        ]

    async def get_sheet(self, sheet_id: str) -> Sheet | None:
        sheets = await self.list_sheets()
        return next((sheet for sheet in sheets if sheet.sheet_id == sheet_id), None)

    async def register(self, sheet_id: str, name: str = "") -> Sheet:
        """Register a sheet; registering twice only updates the name."""
        now = datetime.now(UTC)
        try:
            conn = await get_connection(db_path=self._db_path)
            await conn.execute(
                "INSERT INTO sheets (sheet_id, name, created_at) VALUES (?, ?, ?) "
                "ON CONFLICT(sheet_id) DO UPDATE SET name = excluded.name",
                (sheet_id, name, to_stored(now)),
            )
            await conn.commit()
        except aiosqlite.Error as e:
            raise RepositoryError(f"Failed to register sheet {sheet_id}: {e}") from e

        logger.info("Sheet registered", extra={"sheet_id": sheet_id})
        sheet = await self.get_sheet(sheet_id)
        return sheet or Sheet(sheet_id=sheet_id, name=name, created_at=now)

    async def remove(self, sheet_id: str) -> bool:
        """Delete a registration and, by cascade, every mirrored task of the sheet."""
        try:
            conn = await get_connection(db_path=self._db_path)
            cursor = await conn.execute("DELETE FROM sheets WHERE sheet_id = ?", (sheet_id,))
            await conn.commit()
        except aiosqlite.Error as e:
            raise RepositoryError(f"Failed to remove sheet {sheet_id}: {e}") from e

        removed = cursor.rowcount > 0
        if removed:
            logger.info("Sheet removed", extra={"sheet_id": sheet_id})
        return removed
