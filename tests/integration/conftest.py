"""Pytest configuration and fixtures for integration tests."""

from collections.abc import AsyncGenerator
from pathlib import Path

import pytest

from task_follower.core.db_client import close_connection
from task_follower.core.schema import init_db
from task_follower.services.sheet_registry import SqliteSheetRegistry
from task_follower.services.task_repository import SqliteTaskRepository


@pytest.fixture
async def db_path(tmp_path: Path) -> AsyncGenerator[str, None]:
    """A freshly initialized SQLite file per test."""
    path = str(tmp_path / "tasks.db")
    await init_db(db_path=path)
    yield path
    await close_connection(db_path=path)


@pytest.fixture
async def registry(db_path: str) -> SqliteSheetRegistry:
    registry = SqliteSheetRegistry(db_path=db_path)
    await registry.register("sheet-1", "Website")
    return registry


@pytest.fixture
def repository(db_path: str, registry: SqliteSheetRegistry) -> SqliteTaskRepository:
    return SqliteTaskRepository(db_path=db_path)
