"""Ports (interfaces) for the collaborators the sync engine depends on.

Services depend on these Protocols rather than on the concrete Sheets,
Telegram and SQLite implementations, which keeps them swappable and lets
tests plug in in-memory fakes.
"""

from datetime import datetime
from typing import Protocol

from pydantic import BaseModel

from task_follower.domain.contact import Contact
from task_follower.domain.sheet import Sheet
from task_follower.domain.task import Task, TaskKey


class MessageAction(BaseModel):
    """An interactive button attached to an outbound message."""

    label: str
    payload: str


class SourceReader(Protocol):
    """Reads the externally edited spreadsheet."""

    async def list_project_tabs(self, sheet_id: str) -> list[str]: ...

    async def read_rows(self, sheet_id: str, tab: str) -> list[list[str]]:
        """Header row followed by data rows."""
        ...


class IdentityDirectory(Protocol):
    """Source of truth linking people to their messaging channel."""

    async def list_all(self) -> list[Contact]: ...


class TaskRepository(Protocol):
    """Durable task mirror keyed by (sheet_id, project, row_number)."""

    async def find_by_key(self, key: TaskKey) -> Task | None: ...

    async def get_by_id(self, task_id: str) -> Task | None: ...

    async def upsert(self, task: Task) -> Task: ...

    async def list_by_sheet(self, sheet_id: str) -> list[Task]: ...

    async def list_by_project(self, project: str, *, sheet_id: str | None = None) -> list[Task]: ...

    async def list_overdue(self, now: datetime) -> list[Task]: ...

    async def list_due_soon(self, now: datetime, days: int) -> list[Task]: ...

    async def list_blocked(self) -> list[Task]: ...

    async def update_last_reported(self, task_id: str, when: datetime) -> None: ...

    async def unblock(self, task_id: str) -> Task | None: ...


class SheetRegistry(Protocol):
    """Registered spreadsheets."""

    async def list_sheets(self) -> list[Sheet]: ...


class MessagingGateway(Protocol):
    """Send-only messaging channel."""

    async def send(self, address: str, text: str) -> str:
        """Send text, returning the message id. Raises DeliveryError."""
        ...

    async def send_with_action(self, address: str, text: str, action: MessageAction) -> str: ...

    async def answer_action(self, action_id: str, text: str) -> None: ...
