"""Pytest configuration and shared fixtures."""

from collections.abc import Callable
from datetime import UTC, datetime, timedelta
from zoneinfo import ZoneInfo

import pytest

from task_follower.domain.contact import Contact
from task_follower.domain.task import Task


@pytest.fixture
def tz() -> ZoneInfo:
    return ZoneInfo("Europe/Istanbul")


@pytest.fixture
def now() -> datetime:
    """Monday 2025-01-13, 12:00 in Istanbul."""
    return datetime(2025, 1, 13, 9, 0, tzinfo=UTC)


@pytest.fixture
def members() -> list[Contact]:
    """Directory entries matching CONTACTS_TAB."""
    return [
        Contact(person_id="101", name="Alice Smith", channel_address="1001", channel_handle="alice"),
        Contact(person_id="102", name="Bob Jones", channel_address="1002", channel_handle="bob"),
        Contact(person_id="103", name="Carol White", channel_address="1003"),
    ]


@pytest.fixture
def task_factory(now: datetime) -> Callable[..., Task]:
    """Factory fixture for tasks owned by Bob and managed by Alice."""

    def _create_task(**kwargs) -> Task:
        defaults = {
            "sheet_id": "sheet-1",
            "project": "Website",
            "row_number": 1,
            "description": "Design homepage",
            "priority": "High",
            "points": "3",
            "owner_id": "102",
            "owner_name": "Bob Jones",
            "owner_channel": "1002",
            "manager_id": "101",
            "manager_name": "Alice Smith",
            "manager_channel": "1001",
            "due_date": now + timedelta(days=7),
        }
        defaults.update(kwargs)
        return Task(**defaults)

    return _create_task
