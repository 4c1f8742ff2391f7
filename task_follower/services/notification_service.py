"""Notification dispatcher for owner- and manager-facing task messages."""

import logging
from datetime import datetime, timedelta
from zoneinfo import ZoneInfo

from task_follower.core import message_templates
from task_follower.core.config import constants
from task_follower.core.errors import DeliveryError, describe_delivery_error
from task_follower.core.logging import log_with_task_context
from task_follower.core.ports import MessagingGateway
from task_follower.domain.task import DeltaKind, SendKind, Task, TaskStatus
from task_follower.models.service_models import Decision, DispatchResult


logger = logging.getLogger(__name__)


def has_not_begun(task: Task, now: datetime) -> bool:
    """Start date lies further in the future than the allowed skew."""
    if task.start_date is None:
        return False
    return task.start_date > now + timedelta(minutes=constants.START_DATE_SKEW_MINUTES)


def inactive_reason(task: Task, now: datetime) -> str | None:
    """Why a task gets no owner-facing sends this pass, or None if it is active."""
    if task.is_completed:
        return "completed"
    if task.status is TaskStatus.BLOCKED:
        return "blocked"
    if has_not_begun(task, now):
        return "not_started"
    return None


class NotificationDispatcher:
    """Decides and sends at most one owner-facing message per task per pass.

    The decision is a pure function of the candidate, its delta and the
    stored timestamps; `dispatch` performs the sends and returns the new
    stamps for the caller to persist.
    """

    def __init__(
        self,
        gateway: MessagingGateway,
        *,
        tz: ZoneInfo,
        interval_hours: int = constants.NOTIFICATION_INTERVAL_HOURS,
    ) -> None:
        self._gateway = gateway
        self._tz = tz
        self._interval = timedelta(hours=interval_hours)

    def decide(self, candidate: Task, delta: DeltaKind, stored: Task | None, now: datetime) -> Decision:
        """Apply the notification rules in priority order.

        Args:
            candidate: Task built from the current sheet row
            delta: Classified change against the stored mirror
            stored: Stored mirror, or None for a new row
            now: Current instant

        Returns:
            Decision with the owner-facing send kind and whether a
            missing-data report is due
        """
        last_sent = stored.last_sent if stored else None
        last_reported = stored.last_reported if stored else None
        inactive = inactive_reason(candidate, now)

        if delta is DeltaKind.MISSING_DATA:
            report_due = inactive is None and (last_reported is None or now - last_reported >= self._interval)
            return Decision(send=SendKind.NONE, report_missing_data=report_due, reason="missing_data")

        if inactive is not None:
            return Decision(send=SendKind.NONE, reason=inactive)

        # Reassignment and rescheduling override the 24-hour suppression
        if delta is DeltaKind.OWNER_CHANGED:
            return Decision(send=SendKind.NEW, reason="owner_changed")
        # An owner who was never told about the task gets it as new, not as an update
        if last_sent is None:
            return Decision(send=SendKind.NEW, reason="first_notification")
        if delta is DeltaKind.DUE_DATE_CHANGED:
            return Decision(send=SendKind.UPDATED, reason="due_date_changed")

        if now - last_sent < self._interval:
            return Decision(send=SendKind.NONE, reason="sent_recently")
        if candidate.due_date is not None and candidate.due_date < now:
            return Decision(send=SendKind.LATE, reason="overdue")
        return Decision(send=SendKind.REMINDER, reason="reminder")

    def _render(self, kind: SendKind, candidate: Task, stored: Task | None) -> str:
        if kind is SendKind.NEW:
            return message_templates.new_task(candidate, self._tz)
        if kind is SendKind.LATE:
            return message_templates.late_task(candidate, self._tz)
        if kind is SendKind.UPDATED:
            return message_templates.updated_due_date(candidate, stored, self._tz)
        return message_templates.task_reminder(candidate, self._tz)

    async def dispatch(self, candidate: Task, delta: DeltaKind, stored: Task | None, now: datetime) -> DispatchResult:
        """Decide, send, and report delivery failures to the manager.

        Delivery failures are caught here and never propagate. `last_sent`
        is stamped whenever a send is attempted, so an unreachable or
        failing owner is retried only after the interval elapses.
        """
        decision = self.decide(candidate, delta, stored, now)
        result = DispatchResult(decision=decision)

        if decision.report_missing_data:
            result.last_reported = await self._send_missing_data_report(candidate, now)

        if decision.send is SendKind.NONE:
            return result

        result.last_sent = now
        if not candidate.owner_channel:
            log_with_task_context(
                logger,
                "debug",
                "Owner unreachable, skipping notification",
                sheet_id=candidate.sheet_id,
                project=candidate.project,
                row_number=candidate.row_number,
                owner=candidate.owner_name,
            )
            return result

        text = self._render(decision.send, candidate, stored)
        try:
            await self._gateway.send(candidate.owner_channel, text)
            result.delivered = True
            log_with_task_context(
                logger,
                "info",
                "Owner notified",
                sheet_id=candidate.sheet_id,
                project=candidate.project,
                row_number=candidate.row_number,
                kind=decision.send.value,
            )
        except DeliveryError as e:
            result.delivery_error = e.category.value
            log_with_task_context(
                logger,
                "warning",
                "Owner notification failed",
                sheet_id=candidate.sheet_id,
                project=candidate.project,
                row_number=candidate.row_number,
                kind=decision.send.value,
                error=str(e),
            )
            await self._report_delivery_failure(candidate, e)

        return result

    async def _send_missing_data_report(self, candidate: Task, now: datetime) -> datetime | None:
        """Send the missing-data report to the manager; returns the stamp if attempted."""
        if not candidate.manager_channel:
            logger.debug("No reachable manager for missing-data report", extra={"task_key": str(candidate.key)})
            return None

        text = message_templates.missing_data(candidate, candidate.missing_fields())
        try:
            await self._gateway.send(candidate.manager_channel, text)
        except DeliveryError as e:
            logger.warning(
                "Missing-data report failed",
                extra={"task_key": str(candidate.key), "error": str(e)},
            )
        return now

    async def _report_delivery_failure(self, candidate: Task, error: DeliveryError) -> None:
        manager_channel = candidate.manager_channel
        if not manager_channel or manager_channel == candidate.owner_channel:
            return

        text = message_templates.delivery_failed(
            task=candidate,
            recipient_name=candidate.owner_name or "the task owner",
            reason=describe_delivery_error(error.category),
        )
        try:
            await self._gateway.send(manager_channel, text)
        except DeliveryError as e:
            logger.warning(
                "Delivery-failure report to manager failed",
                extra={"task_key": str(candidate.key), "error": str(e)},
            )
