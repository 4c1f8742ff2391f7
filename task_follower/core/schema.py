"""SQLite schema for the task mirror (code-first)."""

import logging

from task_follower.core.db_client import get_connection


logger = logging.getLogger(__name__)


TABLE_SCHEMAS: dict[str, str] = {
    "sheets": """CREATE TABLE IF NOT EXISTS sheets (
        sheet_id TEXT PRIMARY KEY,
        name TEXT NOT NULL DEFAULT '',
        created_at TEXT NOT NULL
    )""",
    "tasks": """CREATE TABLE IF NOT EXISTS tasks (
        id TEXT PRIMARY KEY,
        sheet_id TEXT NOT NULL REFERENCES sheets(sheet_id) ON DELETE CASCADE,
        project TEXT NOT NULL,
        row_number INTEGER NOT NULL,
        description TEXT NOT NULL DEFAULT '',
        priority TEXT NOT NULL DEFAULT '',
        points TEXT NOT NULL DEFAULT '',
        status TEXT NOT NULL DEFAULT 'open' CHECK (status IN ('open', 'completed', 'blocked')),
        status_label TEXT NOT NULL DEFAULT '',
        milestone TEXT NOT NULL DEFAULT '',
        notes TEXT NOT NULL DEFAULT '',
        owner_id TEXT NOT NULL DEFAULT '',
        owner_name TEXT NOT NULL DEFAULT '',
        owner_channel TEXT,
        manager_id TEXT NOT NULL DEFAULT '',
        manager_name TEXT NOT NULL DEFAULT '',
        manager_channel TEXT,
        created_at TEXT,
        updated_at TEXT,
        start_date TEXT,
        due_date TEXT,
        completed_at TEXT,
        blocked_at TEXT,
        last_sent TEXT,
        last_reported TEXT,
        UNIQUE(sheet_id, project, row_number)
    )""",
}

INDEXES: list[str] = [
    "CREATE INDEX IF NOT EXISTS idx_tasks_sheet_project ON tasks (sheet_id, project)",
    "CREATE INDEX IF NOT EXISTS idx_tasks_due_date ON tasks (due_date)",
    "CREATE INDEX IF NOT EXISTS idx_tasks_status ON tasks (status)",
]


async def init_db(*, db_path: str | None = None) -> None:
    """Create tables and indexes if they do not exist."""
    conn = await get_connection(db_path=db_path)
    for table_name, ddl in TABLE_SCHEMAS.items():
        await conn.execute(ddl)
        logger.debug("Ensured table", extra={"table": table_name})
    for index in INDEXES:
        await conn.execute(index)
    await conn.commit()
    logger.info("Database schema initialized", extra={"tables": list(TABLE_SCHEMAS)})
