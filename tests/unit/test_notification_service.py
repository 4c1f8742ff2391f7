"""Tests for the notification rules and the dispatcher."""

from collections.abc import Callable
from datetime import datetime, timedelta

import pytest

from task_follower.core.errors import DeliveryError, DeliveryErrorCategory
from task_follower.domain.task import DeltaKind, SendKind, Task, TaskStatus
from task_follower.services.notification_service import (
    NotificationDispatcher,
    has_not_begun,
    inactive_reason,
)
from tests.unit.mocks import RecordingGateway


@pytest.mark.unit
class TestActivity:
    def test_start_date_within_skew_has_begun(self, task_factory: Callable[..., Task], now: datetime):
        task = task_factory(start_date=now + timedelta(minutes=9))

        assert has_not_begun(task, now) is False

    def test_start_date_beyond_skew_has_not_begun(self, task_factory: Callable[..., Task], now: datetime):
        task = task_factory(start_date=now + timedelta(minutes=11))

        assert has_not_begun(task, now) is True

    def test_inactive_reasons(self, task_factory: Callable[..., Task], now: datetime):
        assert inactive_reason(task_factory(status=TaskStatus.COMPLETED), now) == "completed"
        assert inactive_reason(task_factory(completed_at=now - timedelta(days=1)), now) == "completed"
        assert inactive_reason(task_factory(status=TaskStatus.BLOCKED), now) == "blocked"
        assert inactive_reason(task_factory(start_date=now + timedelta(days=3)), now) == "not_started"
        assert inactive_reason(task_factory(), now) is None


@pytest.mark.unit
class TestDecide:
    def test_new_task_gets_new_message(
        self, dispatcher: NotificationDispatcher, task_factory: Callable[..., Task], now: datetime
    ):
        decision = dispatcher.decide(task_factory(), DeltaKind.NEW, None, now)

        assert decision.send is SendKind.NEW
        assert decision.reason == "first_notification"

    def test_recent_send_is_suppressed(
        self, dispatcher: NotificationDispatcher, task_factory: Callable[..., Task], now: datetime
    ):
        stored = task_factory(id="t1", last_sent=now - timedelta(hours=23))

        decision = dispatcher.decide(task_factory(), DeltaKind.UNCHANGED, stored, now)

        assert decision.send is SendKind.NONE
        assert decision.reason == "sent_recently"

    def test_reminder_after_interval(
        self, dispatcher: NotificationDispatcher, task_factory: Callable[..., Task], now: datetime
    ):
        stored = task_factory(id="t1", last_sent=now - timedelta(hours=24))

        decision = dispatcher.decide(task_factory(), DeltaKind.UNCHANGED, stored, now)

        assert decision.send is SendKind.REMINDER

    def test_late_after_interval_when_overdue(
        self, dispatcher: NotificationDispatcher, task_factory: Callable[..., Task], now: datetime
    ):
        overdue = task_factory(due_date=now - timedelta(days=1))
        stored = overdue.model_copy(update={"id": "t1", "last_sent": now - timedelta(hours=25)})

        decision = dispatcher.decide(overdue, DeltaKind.UNCHANGED, stored, now)

        assert decision.send is SendKind.LATE

    def test_owner_change_overrides_interval(
        self, dispatcher: NotificationDispatcher, task_factory: Callable[..., Task], now: datetime
    ):
        stored = task_factory(id="t1", last_sent=now - timedelta(minutes=5))
        candidate = task_factory(owner_id="103", owner_name="Carol White", owner_channel="1003")

        decision = dispatcher.decide(candidate, DeltaKind.OWNER_CHANGED, stored, now)

        assert decision.send is SendKind.NEW

    def test_due_date_change_overrides_interval(
        self, dispatcher: NotificationDispatcher, task_factory: Callable[..., Task], now: datetime
    ):
        stored = task_factory(id="t1", last_sent=now - timedelta(minutes=5))
        candidate = task_factory(due_date=now + timedelta(days=10))

        decision = dispatcher.decide(candidate, DeltaKind.DUE_DATE_CHANGED, stored, now)

        assert decision.send is SendKind.UPDATED

    def test_first_send_after_due_date_filled_in_is_new(
        self, dispatcher: NotificationDispatcher, task_factory: Callable[..., Task], now: datetime
    ):
        stored = task_factory(id="t1", due_date=None, last_reported=now - timedelta(hours=2))
        candidate = task_factory(due_date=now + timedelta(days=7))

        decision = dispatcher.decide(candidate, DeltaKind.DUE_DATE_CHANGED, stored, now)

        assert decision.send is SendKind.NEW

    def test_completed_task_gets_nothing(
        self, dispatcher: NotificationDispatcher, task_factory: Callable[..., Task], now: datetime
    ):
        candidate = task_factory(status=TaskStatus.COMPLETED, due_date=now - timedelta(days=5))

        decision = dispatcher.decide(candidate, DeltaKind.DUE_DATE_CHANGED, task_factory(id="t1"), now)

        assert decision.send is SendKind.NONE
        assert decision.reason == "completed"

    def test_future_start_gets_nothing(
        self, dispatcher: NotificationDispatcher, task_factory: Callable[..., Task], now: datetime
    ):
        candidate = task_factory(start_date=now + timedelta(days=2))

        decision = dispatcher.decide(candidate, DeltaKind.NEW, None, now)

        assert decision.send is SendKind.NONE
        assert decision.reason == "not_started"

    def test_missing_data_reports_to_manager(
        self, dispatcher: NotificationDispatcher, task_factory: Callable[..., Task], now: datetime
    ):
        decision = dispatcher.decide(task_factory(points=""), DeltaKind.MISSING_DATA, None, now)

        assert decision.send is SendKind.NONE
        assert decision.report_missing_data is True

    def test_missing_data_report_gated_by_interval(
        self, dispatcher: NotificationDispatcher, task_factory: Callable[..., Task], now: datetime
    ):
        stored = task_factory(id="t1", points="", last_reported=now - timedelta(hours=2))

        decision = dispatcher.decide(task_factory(points=""), DeltaKind.MISSING_DATA, stored, now)

        assert decision.report_missing_data is False

    def test_missing_data_on_completed_task_is_not_reported(
        self, dispatcher: NotificationDispatcher, task_factory: Callable[..., Task], now: datetime
    ):
        candidate = task_factory(points="", status=TaskStatus.COMPLETED)

        decision = dispatcher.decide(candidate, DeltaKind.MISSING_DATA, None, now)

        assert decision.report_missing_data is False


@pytest.mark.unit
class TestDispatch:
    async def test_sends_to_owner_and_stamps(
        self,
        dispatcher: NotificationDispatcher,
        gateway: RecordingGateway,
        task_factory: Callable[..., Task],
        now: datetime,
    ):
        result = await dispatcher.dispatch(task_factory(), DeltaKind.NEW, None, now)

        assert result.delivered is True
        assert result.last_sent == now
        assert len(gateway.messages_to("1002")) == 1
        assert "New task" in gateway.messages_to("1002")[0]

    async def test_sheet_values_are_html_escaped(
        self,
        dispatcher: NotificationDispatcher,
        gateway: RecordingGateway,
        task_factory: Callable[..., Task],
        now: datetime,
    ):
        await dispatcher.dispatch(task_factory(description="Fix <b> & <i> tags"), DeltaKind.NEW, None, now)

        assert "Fix &lt;b&gt; &amp; &lt;i&gt; tags" in gateway.messages_to("1002")[0]

    async def test_unreachable_owner_is_skipped_but_stamped(
        self,
        dispatcher: NotificationDispatcher,
        gateway: RecordingGateway,
        task_factory: Callable[..., Task],
        now: datetime,
    ):
        result = await dispatcher.dispatch(task_factory(owner_channel=None), DeltaKind.NEW, None, now)

        assert result.delivered is False
        assert result.last_sent == now
        assert gateway.sent == []

    async def test_delivery_failure_is_reported_to_manager(
        self,
        dispatcher: NotificationDispatcher,
        gateway: RecordingGateway,
        task_factory: Callable[..., Task],
        now: datetime,
    ):
        gateway.failures["1002"] = DeliveryError(DeliveryErrorCategory.CHANNEL_BLOCKED, "bot was blocked by the user")

        result = await dispatcher.dispatch(task_factory(), DeltaKind.NEW, None, now)

        assert result.delivered is False
        assert result.delivery_error == "channel_blocked"
        assert result.last_sent == now
        manager_messages = gateway.messages_to("1001")
        assert len(manager_messages) == 1
        assert "Bob Jones" in manager_messages[0]
        assert "blocked the bot" in manager_messages[0]

    async def test_failure_not_reported_when_manager_is_owner(
        self,
        dispatcher: NotificationDispatcher,
        gateway: RecordingGateway,
        task_factory: Callable[..., Task],
        now: datetime,
    ):
        gateway.failures["1002"] = DeliveryError(DeliveryErrorCategory.UNKNOWN, "boom")
        task = task_factory(manager_id="102", manager_name="Bob Jones", manager_channel="1002")

        result = await dispatcher.dispatch(task, DeltaKind.NEW, None, now)

        assert result.delivery_error == "unknown"
        assert gateway.sent == []

    async def test_missing_data_report_goes_to_manager(
        self,
        dispatcher: NotificationDispatcher,
        gateway: RecordingGateway,
        task_factory: Callable[..., Task],
        now: datetime,
    ):
        result = await dispatcher.dispatch(task_factory(points="", priority=""), DeltaKind.MISSING_DATA, None, now)

        assert result.last_reported == now
        assert result.last_sent is None
        report = gateway.messages_to("1001")[0]
        assert "missing data" in report
        assert "points" in report
        assert "priority" in report
        assert gateway.messages_to("1002") == []

    async def test_missing_data_without_manager_channel_is_not_stamped(
        self,
        dispatcher: NotificationDispatcher,
        gateway: RecordingGateway,
        task_factory: Callable[..., Task],
        now: datetime,
    ):
        task = task_factory(points="", manager_channel=None)

        result = await dispatcher.dispatch(task, DeltaKind.MISSING_DATA, None, now)

        assert result.last_reported is None
        assert gateway.sent == []

    async def test_updated_due_date_mentions_previous_date(
        self,
        dispatcher: NotificationDispatcher,
        gateway: RecordingGateway,
        task_factory: Callable[..., Task],
        now: datetime,
    ):
        stored = task_factory(id="t1", due_date=now + timedelta(days=7), last_sent=now - timedelta(hours=1))
        candidate = task_factory(due_date=now + timedelta(days=9))

        await dispatcher.dispatch(candidate, DeltaKind.DUE_DATE_CHANGED, stored, now)

        message = gateway.messages_to("1002")[0]
        assert "Due date updated" in message
        assert "2025-01-20" in message
        assert "2025-01-22" in message
