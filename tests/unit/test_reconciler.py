"""Tests for sheet reconciliation against the task mirror."""

from collections.abc import Callable
from datetime import datetime, timedelta
from zoneinfo import ZoneInfo

import pytest

from task_follower.core.errors import SourceReadError
from task_follower.domain.task import DeltaKind, Task, TaskKey, TaskStatus
from task_follower.services.reconciler import Reconciler, classify_delta
from tests.unit.mocks import (
    CONTACTS_TAB,
    TASK_HEADER,
    InMemoryTaskRepository,
    RecordingGateway,
    ScriptedSourceReader,
    project_sheet,
    task_row,
)


SHEET = "sheet-1"


def key(row_number: int, project: str = "Website") -> TaskKey:
    return TaskKey(sheet_id=SHEET, project=project, row_number=row_number)


@pytest.mark.unit
class TestClassifyDelta:
    def test_missing_data_wins(self, task_factory: Callable[..., Task]):
        assert classify_delta(task_factory(points=""), None) is DeltaKind.MISSING_DATA

    def test_new(self, task_factory: Callable[..., Task]):
        assert classify_delta(task_factory(), None) is DeltaKind.NEW

    def test_owner_changed(self, task_factory: Callable[..., Task]):
        stored = task_factory(id="t1")
        candidate = task_factory(owner_id="103", owner_name="Carol White")

        assert classify_delta(candidate, stored) is DeltaKind.OWNER_CHANGED

    def test_unknown_owners_compared_by_name(self, task_factory: Callable[..., Task]):
        stored = task_factory(id="t1", owner_id="0", owner_name="Dave Brown", owner_channel=None)

        same = task_factory(owner_id="0", owner_name="dave brown", owner_channel=None)
        other = task_factory(owner_id="0", owner_name="Erin Gray", owner_channel=None)

        assert classify_delta(same, stored) is DeltaKind.UNCHANGED
        assert classify_delta(other, stored) is DeltaKind.OWNER_CHANGED

    def test_due_date_compared_as_instant(self, task_factory: Callable[..., Task], now: datetime):
        stored = task_factory(id="t1", due_date=now)

        shifted = task_factory(due_date=now.astimezone(ZoneInfo("Asia/Tokyo")))
        moved = task_factory(due_date=now + timedelta(days=1))

        assert classify_delta(shifted, stored) is DeltaKind.UNCHANGED
        assert classify_delta(moved, stored) is DeltaKind.DUE_DATE_CHANGED


@pytest.mark.unit
class TestReconcile:
    async def test_new_rows_are_mirrored_and_owners_notified(
        self,
        reconciler: Reconciler,
        reader: ScriptedSourceReader,
        repository: InMemoryTaskRepository,
        gateway: RecordingGateway,
        now: datetime,
    ):
        reader.sheets[SHEET] = project_sheet(
            Website=[
                task_row("Alice Smith", "Plan sprint", due="2025-01-25"),
                task_row("Bob Jones", "Design homepage"),
            ]
        )

        outcome = await reconciler.reconcile(SHEET, now)

        assert outcome.projects == 1
        assert outcome.rows == 2
        assert outcome.created == 2
        assert outcome.notifications == 2
        assert outcome.deltas == {DeltaKind.NEW: 2}

        bob = await repository.find_by_key(key(2))
        assert bob is not None
        assert bob.id
        assert bob.owner_id == "102"
        assert bob.owner_channel == "1002"
        # The first row's owner manages the project
        assert bob.manager_name == "Alice Smith"
        assert bob.manager_channel == "1001"
        assert bob.last_sent == now
        assert bob.created_at == now
        assert bob.status is TaskStatus.OPEN

        assert len(gateway.messages_to("1002")) == 1
        assert "New task" in gateway.messages_to("1002")[0]
        assert "Design homepage" in gateway.messages_to("1002")[0]

    async def test_second_pass_is_idempotent(
        self,
        reconciler: Reconciler,
        reader: ScriptedSourceReader,
        repository: InMemoryTaskRepository,
        gateway: RecordingGateway,
        now: datetime,
    ):
        reader.sheets[SHEET] = project_sheet(Website=[task_row("Bob Jones", "Design homepage")])
        await reconciler.reconcile(SHEET, now)
        first = await repository.find_by_key(key(1))

        later = now + timedelta(hours=1)
        outcome = await reconciler.reconcile(SHEET, later)

        assert outcome.created == 0
        assert outcome.updated == 1
        assert outcome.notifications == 0
        assert outcome.deltas == {DeltaKind.UNCHANGED: 1}
        assert len(repository.all()) == 1
        assert len(gateway.sent) == 1

        second = await repository.find_by_key(key(1))
        assert second.id == first.id
        assert second.created_at == now
        assert second.updated_at == later
        assert second.last_sent == now

    async def test_reminder_after_a_day(
        self,
        reconciler: Reconciler,
        reader: ScriptedSourceReader,
        gateway: RecordingGateway,
        now: datetime,
    ):
        reader.sheets[SHEET] = project_sheet(Website=[task_row("Bob Jones", "Design homepage")])
        await reconciler.reconcile(SHEET, now)

        await reconciler.reconcile(SHEET, now + timedelta(hours=25))

        messages = gateway.messages_to("1002")
        assert len(messages) == 2
        assert "Task reminder" in messages[1]

    async def test_blank_rows_do_not_count_as_positions(
        self,
        reconciler: Reconciler,
        reader: ScriptedSourceReader,
        repository: InMemoryTaskRepository,
        now: datetime,
    ):
        reader.sheets[SHEET] = project_sheet(
            Website=[
                task_row("Alice Smith", "Plan sprint"),
                [""] * len(TASK_HEADER),
                task_row("Bob Jones", "Design homepage"),
            ]
        )

        outcome = await reconciler.reconcile(SHEET, now)

        assert outcome.rows == 2
        bob = await repository.find_by_key(key(2))
        assert bob.description == "Design homepage"

    async def test_manager_column_overrides_default(
        self,
        reconciler: Reconciler,
        reader: ScriptedSourceReader,
        repository: InMemoryTaskRepository,
        now: datetime,
    ):
        reader.sheets[SHEET] = {
            "contacts": CONTACTS_TAB,
            "Website": [
                [*TASK_HEADER, "Manager"],
                [*task_row("Bob Jones", "Design homepage"), "Carol White"],
            ],
        }

        await reconciler.reconcile(SHEET, now)

        task = await repository.find_by_key(key(1))
        assert task.manager_id == "103"
        assert task.manager_channel == "1003"

    async def test_missing_data_is_reported_once_per_interval(
        self,
        reconciler: Reconciler,
        reader: ScriptedSourceReader,
        repository: InMemoryTaskRepository,
        gateway: RecordingGateway,
        now: datetime,
    ):
        reader.sheets[SHEET] = project_sheet(
            Website=[
                task_row("Alice Smith", "Plan sprint"),
                task_row("Bob Jones", "Design homepage", points=""),
            ]
        )

        def reports() -> list[str]:
            return [text for text in gateway.messages_to("1001") if "missing data" in text]

        outcome = await reconciler.reconcile(SHEET, now)

        assert outcome.missing_data_reports == 1
        assert outcome.deltas[DeltaKind.MISSING_DATA] == 1
        assert len(reports()) == 1
        assert "points" in reports()[0]
        assert gateway.messages_to("1002") == []

        bob = await repository.find_by_key(key(2))
        assert bob.last_reported == now
        assert bob.last_sent is None

        await reconciler.reconcile(SHEET, now + timedelta(hours=1))
        assert len(reports()) == 1

        await reconciler.reconcile(SHEET, now + timedelta(hours=25))
        assert len(reports()) == 2

    async def test_filling_in_due_date_sends_new_task(
        self,
        reconciler: Reconciler,
        reader: ScriptedSourceReader,
        repository: InMemoryTaskRepository,
        gateway: RecordingGateway,
        now: datetime,
    ):
        reader.sheets[SHEET] = project_sheet(
            Website=[
                task_row("Alice Smith", "Plan sprint"),
                task_row("Bob Jones", "Design homepage", due=""),
            ]
        )
        await reconciler.reconcile(SHEET, now)
        assert gateway.messages_to("1002") == []

        reader.sheets[SHEET]["Website"][2] = task_row("Bob Jones", "Design homepage", due="2025-01-20")
        outcome = await reconciler.reconcile(SHEET, now + timedelta(hours=1))

        assert outcome.deltas == {DeltaKind.UNCHANGED: 1, DeltaKind.DUE_DATE_CHANGED: 1}
        messages = gateway.messages_to("1002")
        assert len(messages) == 1
        assert "New task" in messages[0]
        assert (await repository.find_by_key(key(2))).last_sent == now + timedelta(hours=1)

    async def test_row_without_owner_is_kept(
        self,
        reconciler: Reconciler,
        reader: ScriptedSourceReader,
        repository: InMemoryTaskRepository,
        now: datetime,
    ):
        reader.sheets[SHEET] = project_sheet(
            Website=[
                task_row("Alice Smith", "Plan sprint"),
                task_row("", "Write copy"),
            ]
        )

        outcome = await reconciler.reconcile(SHEET, now)

        assert outcome.deltas[DeltaKind.MISSING_DATA] == 1
        orphan = await repository.find_by_key(key(2))
        assert orphan is not None
        assert orphan.missing_fields() == ["owner"]

    async def test_reassignment_notifies_new_owner_immediately(
        self,
        reconciler: Reconciler,
        reader: ScriptedSourceReader,
        repository: InMemoryTaskRepository,
        gateway: RecordingGateway,
        now: datetime,
    ):
        reader.sheets[SHEET] = project_sheet(Website=[task_row("Bob Jones", "Design homepage")])
        await reconciler.reconcile(SHEET, now)

        reader.sheets[SHEET]["Website"][1] = task_row("Carol White", "Design homepage")
        outcome = await reconciler.reconcile(SHEET, now + timedelta(hours=1))

        assert outcome.deltas == {DeltaKind.OWNER_CHANGED: 1}
        assert len(gateway.messages_to("1003")) == 1
        assert "New task" in gateway.messages_to("1003")[0]
        task = await repository.find_by_key(key(1))
        assert task.owner_id == "103"
        assert task.last_sent == now + timedelta(hours=1)

    async def test_due_dates_are_compared_by_value(
        self,
        reconciler: Reconciler,
        reader: ScriptedSourceReader,
        gateway: RecordingGateway,
        now: datetime,
    ):
        reader.sheets[SHEET] = project_sheet(Website=[task_row("Bob Jones", "Design homepage", due="2025-01-20")])
        await reconciler.reconcile(SHEET, now)

        for hours, written in ((1, "20 January 2025"), (2, "45677")):
            reader.sheets[SHEET]["Website"][1] = task_row("Bob Jones", "Design homepage", due=written)
            outcome = await reconciler.reconcile(SHEET, now + timedelta(hours=hours))
            assert outcome.deltas == {DeltaKind.UNCHANGED: 1}

        assert len(gateway.messages_to("1002")) == 1

        reader.sheets[SHEET]["Website"][1] = task_row("Bob Jones", "Design homepage", due="2025-01-22")
        outcome = await reconciler.reconcile(SHEET, now + timedelta(hours=3))

        assert outcome.deltas == {DeltaKind.DUE_DATE_CHANGED: 1}
        messages = gateway.messages_to("1002")
        assert len(messages) == 2
        assert "Due date updated" in messages[1]

    async def test_completion_is_sticky(
        self,
        reconciler: Reconciler,
        reader: ScriptedSourceReader,
        repository: InMemoryTaskRepository,
        gateway: RecordingGateway,
        now: datetime,
    ):
        reader.sheets[SHEET] = project_sheet(
            Website=[task_row("Bob Jones", "Design homepage", status="Completed", due="2025-01-01")]
        )
        await reconciler.reconcile(SHEET, now)

        task = await repository.find_by_key(key(1))
        assert task.status is TaskStatus.COMPLETED
        assert task.completed_at == now

        # Reopened in the sheet; the completion stamp stays and nothing is sent
        reader.sheets[SHEET]["Website"][1] = task_row("Bob Jones", "Design homepage", due="2025-01-01")
        await reconciler.reconcile(SHEET, now + timedelta(days=2))

        task = await repository.find_by_key(key(1))
        assert task.completed_at == now
        assert task.is_completed
        assert gateway.sent == []

    async def test_blocked_task_is_stamped_and_silent(
        self,
        reconciler: Reconciler,
        reader: ScriptedSourceReader,
        repository: InMemoryTaskRepository,
        gateway: RecordingGateway,
        now: datetime,
    ):
        reader.sheets[SHEET] = project_sheet(Website=[task_row("Bob Jones", "Design homepage", status="blocked")])

        await reconciler.reconcile(SHEET, now)
        await reconciler.reconcile(SHEET, now + timedelta(hours=2))

        task = await repository.find_by_key(key(1))
        assert task.status is TaskStatus.BLOCKED
        assert task.blocked_at == now
        assert gateway.sent == []

    async def test_future_start_date_suppresses_sends(
        self,
        reconciler: Reconciler,
        reader: ScriptedSourceReader,
        repository: InMemoryTaskRepository,
        gateway: RecordingGateway,
        now: datetime,
    ):
        reader.sheets[SHEET] = project_sheet(
            Website=[task_row("Bob Jones", "Design homepage", start="2025-02-01", due="2025-02-10")]
        )

        await reconciler.reconcile(SHEET, now)

        task = await repository.find_by_key(key(1))
        assert task.last_sent is None
        assert gateway.sent == []

    async def test_unknown_owner_gets_placeholder_id(
        self,
        reconciler: Reconciler,
        reader: ScriptedSourceReader,
        repository: InMemoryTaskRepository,
        gateway: RecordingGateway,
        now: datetime,
    ):
        reader.sheets[SHEET] = project_sheet(Website=[task_row("Dave Brown", "Design homepage")])

        await reconciler.reconcile(SHEET, now)

        task = await repository.find_by_key(key(1))
        assert task.owner_id == "0"
        assert task.owner_channel is None
        assert task.last_sent == now
        assert gateway.sent == []

    async def test_unreadable_contacts_tab_means_empty_roster(
        self,
        reconciler: Reconciler,
        reader: ScriptedSourceReader,
        repository: InMemoryTaskRepository,
        now: datetime,
    ):
        sheet = project_sheet(Website=[task_row("Bob Jones", "Design homepage")])
        del sheet["contacts"]
        reader.sheets[SHEET] = sheet

        outcome = await reconciler.reconcile(SHEET, now)

        assert outcome.created == 1
        task = await repository.find_by_key(key(1))
        assert task.owner_id == "0"

    async def test_unreadable_tab_is_skipped(
        self,
        reconciler: Reconciler,
        reader: ScriptedSourceReader,
        repository: InMemoryTaskRepository,
        now: datetime,
    ):
        reader.sheets[SHEET] = project_sheet(
            Website=[task_row("Bob Jones", "Design homepage")],
            Mobile=[task_row("Carol White", "Ship beta")],
        )
        reader.failing_tabs.add("Website")

        outcome = await reconciler.reconcile(SHEET, now)

        assert outcome.failed_tabs == ["Website"]
        assert outcome.projects == 1
        assert await repository.find_by_key(key(1, "Mobile")) is not None
        assert await repository.find_by_key(key(1, "Website")) is None

    async def test_unreadable_sheet_raises(
        self,
        reconciler: Reconciler,
        reader: ScriptedSourceReader,
        now: datetime,
    ):
        reader.sheets[SHEET] = project_sheet(Website=[task_row("Bob Jones", "Design homepage")])
        reader.failing_sheets.add(SHEET)

        with pytest.raises(SourceReadError):
            await reconciler.reconcile(SHEET, now)

    async def test_failed_writes_are_counted(
        self,
        reconciler: Reconciler,
        reader: ScriptedSourceReader,
        repository: InMemoryTaskRepository,
        now: datetime,
    ):
        reader.sheets[SHEET] = project_sheet(
            Website=[task_row("Alice Smith", "Plan sprint"), task_row("Bob Jones", "Design homepage")]
        )
        repository.fail_upserts = True

        outcome = await reconciler.reconcile(SHEET, now)

        assert outcome.failed_rows == 2
        assert outcome.created == 0
        assert repository.all() == []

    async def test_late_task_escalates_to_project_peers(
        self,
        reconciler: Reconciler,
        reader: ScriptedSourceReader,
        repository: InMemoryTaskRepository,
        gateway: RecordingGateway,
        now: datetime,
    ):
        reader.sheets[SHEET] = project_sheet(
            Website=[
                task_row("Alice Smith", "Plan sprint", due="2025-01-25"),
                task_row("Bob Jones", "Design homepage", due="2025-01-10"),
            ]
        )
        first = await reconciler.reconcile(SHEET, now - timedelta(hours=25))
        assert first.escalations == 0

        outcome = await reconciler.reconcile(SHEET, now)

        assert outcome.escalations == 1
        assert "Late task" in gateway.messages_to("1002")[-1]
        bob = await repository.find_by_key(key(2))
        assert bob.last_reported == now
        [(peer, action)] = gateway.actions()
        assert peer == "1001"
        assert action.payload == f"shame:{bob.id}"

        # Within the interval nothing is re-sent or re-escalated
        again = await reconciler.reconcile(SHEET, now + timedelta(hours=1))
        assert again.escalations == 0
        assert len(gateway.actions()) == 1
