"""Pytest configuration and fixtures for unit tests."""

from unittest.mock import AsyncMock
from zoneinfo import ZoneInfo

import pytest
from fastapi.testclient import TestClient

from task_follower.core.admin_notifier import AdminNotifier
from task_follower.core.bootstrap import Services
from task_follower.core.directory_cache import DirectoryCache
from task_follower.core.scheduler_tracker import JobTracker
from task_follower.domain.contact import Contact
from task_follower.main import app
from task_follower.models.service_models import ReconcileOutcome
from task_follower.services.escalation_service import EscalationService
from task_follower.services.notification_service import NotificationDispatcher
from task_follower.services.reconciler import Reconciler
from task_follower.services.sync_driver import SyncDriver
from tests.unit.mocks import (
    InMemorySheetRegistry,
    InMemoryTaskRepository,
    RecordingGateway,
    ScriptedSourceReader,
    StaticDirectory,
)


@pytest.fixture
def repository() -> InMemoryTaskRepository:
    """Provides a fresh in-memory task mirror for each test."""
    return InMemoryTaskRepository()


@pytest.fixture
def gateway() -> RecordingGateway:
    return RecordingGateway()


@pytest.fixture
def reader() -> ScriptedSourceReader:
    return ScriptedSourceReader()


@pytest.fixture
def static_directory(members: list[Contact]) -> StaticDirectory:
    return StaticDirectory(members)


@pytest.fixture
def directory(static_directory: StaticDirectory) -> DirectoryCache:
    return DirectoryCache(static_directory, ttl_seconds=300)


@pytest.fixture
def dispatcher(gateway: RecordingGateway, tz: ZoneInfo) -> NotificationDispatcher:
    return NotificationDispatcher(gateway, tz=tz)


@pytest.fixture
def escalation(repository: InMemoryTaskRepository, gateway: RecordingGateway, tz: ZoneInfo) -> EscalationService:
    return EscalationService(
        repository,
        gateway,
        tz=tz,
        threshold_days=2,
        batch_size=5,
        batch_delay_seconds=0,
    )


@pytest.fixture
def reconciler(
    reader: ScriptedSourceReader,
    repository: InMemoryTaskRepository,
    directory: DirectoryCache,
    dispatcher: NotificationDispatcher,
    escalation: EscalationService,
    tz: ZoneInfo,
) -> Reconciler:
    return Reconciler(
        reader,
        repository,
        directory,
        dispatcher,
        escalation,
        tz=tz,
        contacts_tab="contacts",
    )


@pytest.fixture
def services(
    repository: InMemoryTaskRepository,
    gateway: RecordingGateway,
    directory: DirectoryCache,
    escalation: EscalationService,
    tz: ZoneInfo,
) -> Services:
    """Service graph over in-memory collaborators; the reconciler is mocked out."""
    registry = InMemorySheetRegistry(["sheet-1"])
    reconciler = AsyncMock()
    reconciler.reconcile.side_effect = lambda sheet_id, now: ReconcileOutcome(sheet_id=sheet_id)
    driver = SyncDriver(
        reconciler,
        escalation,
        registry,
        repository,
        AdminNotifier(gateway, ["9001"]),
        tz=tz,
        work_hours_start=8,
        work_hours_end=22,
        max_sheets_per_tick=5,
        tick_budget_seconds=25,
    )
    return Services(
        repository=repository,
        registry=registry,
        directory=directory,
        escalation=escalation,
        driver=driver,
        tracker=JobTracker(),
        gateway=gateway,
    )


@pytest.fixture
def client(services: Services, monkeypatch: pytest.MonkeyPatch) -> TestClient:
    """Test client with services attached; the lifespan (scheduler, SQLite) is not run."""
    monkeypatch.setattr(app.state, "services", services, raising=False)
    return TestClient(app)
