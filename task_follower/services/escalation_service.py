"""Peer escalation ("shame") for tasks that stay overdue."""

import asyncio
import logging
from datetime import UTC, datetime, timedelta
from zoneinfo import ZoneInfo

from task_follower.core import message_templates
from task_follower.core.config import constants
from task_follower.core.dates import local_date
from task_follower.core.errors import DeliveryError
from task_follower.core.logging import span
from task_follower.core.ports import MessageAction, MessagingGateway, TaskRepository
from task_follower.domain.task import Task
from task_follower.models.service_models import ActionOutcome, EscalationResult, SweepResult


logger = logging.getLogger(__name__)


def action_payload(task_id: str) -> str:
    """Callback payload carried by the "send shame" button."""
    return f"{constants.ESCALATION_ACTION_PREFIX}:{task_id}"


def parse_action_payload(payload: str) -> str | None:
    """Extract the task id from a "send shame" payload, or None if it is not one."""
    prefix, sep, task_id = payload.partition(":")
    if prefix != constants.ESCALATION_ACTION_PREFIX or not sep or not task_id:
        return None
    return task_id


class EscalationService:
    """Recruits project peers to nudge owners of long-overdue tasks."""

    def __init__(
        self,
        repository: TaskRepository,
        gateway: MessagingGateway,
        *,
        tz: ZoneInfo,
        threshold_days: int,
        batch_size: int,
        batch_delay_seconds: float,
    ) -> None:
        self._repository = repository
        self._gateway = gateway
        self._tz = tz
        self._threshold = timedelta(days=threshold_days)
        self._batch_size = max(1, batch_size)
        self._batch_delay_seconds = batch_delay_seconds

    def is_delayed(self, task: Task, now: datetime) -> bool:
        """Incomplete and overdue by at least the escalation threshold."""
        if task.due_date is None or task.is_completed:
            return False
        return now - task.due_date >= self._threshold

    def escalated_today(self, task: Task, now: datetime) -> bool:
        """Whether `last_reported` falls on the current local calendar day."""
        if task.last_reported is None:
            return False
        return local_date(task.last_reported, self._tz) == local_date(now, self._tz)

    async def _project_peers(self, task: Task) -> dict[str, str]:
        """Distinct reachable owners and managers of the project, minus the task owner.

        Returns:
            Telegram chat id -> display name
        """
        project_tasks = await self._repository.list_by_project(task.project, sheet_id=task.sheet_id)
        excluded_id = task.owner_id if task.owner_id != constants.UNKNOWN_PERSON_ID else None

        peers: dict[str, str] = {}
        for other in project_tasks:
            for person_id, name, channel in (
                (other.owner_id, other.owner_name, other.owner_channel),
                (other.manager_id, other.manager_name, other.manager_channel),
            ):
                if not channel or channel in peers:
                    continue
                if channel == task.owner_channel or (excluded_id and person_id == excluded_id):
                    continue
                peers[channel] = name
        return peers

    async def notify_peers(self, task_id: str, now: datetime | None = None) -> EscalationResult:
        """Send the escalation request to every project peer of a delayed task.

        Stale triggers (task gone, completed or no longer past the threshold)
        are discarded. Recipients are notified in small concurrent batches;
        individual failures are counted, never raised.

        Args:
            task_id: Surrogate id of the task
            now: Current instant (defaults to the wall clock)

        Returns:
            EscalationResult with delivery counts
        """
        now = now or datetime.now(UTC)
        with span("escalation_service.notify_peers"):
            try:
                task = await self._repository.get_by_id(task_id)
                if task is None:
                    return EscalationResult(task_id=task_id, success=False, error="Task not found")
                if not self.is_delayed(task, now):
                    return EscalationResult(task_id=task_id, success=False, error="Task is not delayed")

                peers = await self._project_peers(task)
            except Exception as e:
                logger.error("Escalation lookup failed", extra={"task_id": task_id, "error": str(e)})
                return EscalationResult(task_id=task_id, success=False, error=str(e))

            if not peers:
                logger.info("No project peers to notify", extra={"task_id": task_id, "project": task.project})
                return EscalationResult(task_id=task_id, success=True)

            days_overdue = (now - task.due_date).days
            text = message_templates.escalation_request(task, days_overdue)
            action = MessageAction(label=message_templates.ESCALATION_BUTTON_LABEL, payload=action_payload(task_id))

            channels = list(peers)
            notified = 0
            failed = 0
            for start in range(0, len(channels), self._batch_size):
                if start:
                    await asyncio.sleep(self._batch_delay_seconds)
                batch = channels[start : start + self._batch_size]
                results = await asyncio.gather(
                    *(self._gateway.send_with_action(channel, text, action) for channel in batch),
                    return_exceptions=True,
                )
                for channel, outcome in zip(batch, results, strict=True):
                    if isinstance(outcome, BaseException):
                        failed += 1
                        level = logging.WARNING if isinstance(outcome, DeliveryError) else logging.ERROR
                        logger.log(
                            level,
                            "Escalation request failed",
                            extra={"task_id": task_id, "chat_id": channel, "error": str(outcome)},
                        )
                    else:
                        notified += 1

            logger.info(
                "Escalation requests sent",
                extra={"task_id": task_id, "project": task.project, "notified": notified, "failed": failed},
            )
            return EscalationResult(task_id=task_id, success=True, notified=notified, failed=failed)

    async def escalate_if_due(self, task: Task, now: datetime | None = None) -> EscalationResult | None:
        """Escalate once per local calendar day and stamp `last_reported`.

        Returns:
            The escalation result, or None when the task was not eligible
        """
        now = now or datetime.now(UTC)
        if task.id is None or not self.is_delayed(task, now):
            return None
        if self.escalated_today(task, now):
            logger.debug("Task already escalated today", extra={"task_id": task.id})
            return None

        result = await self.notify_peers(task.id, now)
        if result.success:
            await self._repository.update_last_reported(task.id, now)
        return result

    async def process_delayed_tasks(self, now: datetime | None = None) -> SweepResult:
        """Escalate every task overdue past the threshold, at most once per day each."""
        now = now or datetime.now(UTC)
        with span("escalation_service.process_delayed_tasks"):
            try:
                overdue = await self._repository.list_overdue(now)
            except Exception as e:
                logger.error("Escalation sweep failed to list overdue tasks", extra={"error": str(e)})
                return SweepResult(success=False, error=str(e))

            candidates = [task for task in overdue if self.is_delayed(task, now)]
            sweep = SweepResult(candidates=len(candidates))
            for task in candidates:
                if self.escalated_today(task, now):
                    sweep.skipped_today += 1
                    continue
                try:
                    result = await self.escalate_if_due(task, now)
                except Exception as e:
                    logger.error("Escalation failed", extra={"task_id": task.id, "error": str(e)})
                    continue
                if result is not None and result.success:
                    sweep.processed += 1
                    sweep.total_notifications += result.notified

            logger.info(
                "Escalation sweep finished",
                extra={
                    "candidates": sweep.candidates,
                    "processed": sweep.processed,
                    "skipped_today": sweep.skipped_today,
                    "notifications": sweep.total_notifications,
                },
            )
            return sweep

    async def handle_action(
        self,
        task_id: str,
        acting_person_id: str | None,
        acting_channel: str | None = None,
    ) -> ActionOutcome:
        """Handle a peer pressing "send shame".

        Self-escalation is rejected when the actor matches the owner either by
        person id or by chat id.

        Args:
            task_id: Task the button was attached to
            acting_person_id: Membership number of the actor, if known
            acting_channel: Telegram chat id of the actor

        Returns:
            ActionOutcome whose message is shown to the actor
        """
        with span("escalation_service.handle_action"):
            try:
                task = await self._repository.get_by_id(task_id)
            except Exception as e:
                logger.error("Escalation action lookup failed", extra={"task_id": task_id, "error": str(e)})
                return ActionOutcome(success=False, message=message_templates.ACTION_ERROR)

            if task is None:
                return ActionOutcome(success=False, message=message_templates.ACTION_TASK_NOT_FOUND)
            if task.is_completed:
                return ActionOutcome(success=False, message=message_templates.ACTION_TASK_COMPLETED)

            same_person = (
                bool(acting_person_id)
                and acting_person_id != constants.UNKNOWN_PERSON_ID
                and acting_person_id == task.owner_id
            )
            same_channel = bool(acting_channel) and acting_channel == task.owner_channel
            if same_person or same_channel:
                logger.info("Self-escalation rejected", extra={"task_id": task_id})
                return ActionOutcome(success=False, message=message_templates.ACTION_SELF)

            if not task.owner_channel:
                return ActionOutcome(success=False, message=message_templates.ACTION_OWNER_UNREACHABLE)

            try:
                await self._gateway.send(task.owner_channel, message_templates.shame_message(task))
            except DeliveryError as e:
                logger.warning("Shame message failed", extra={"task_id": task_id, "error": str(e)})
                return ActionOutcome(success=False, message=message_templates.ACTION_SEND_FAILED)

            logger.info("Shame message delivered", extra={"task_id": task_id})
            return ActionOutcome(success=True, message=message_templates.ACTION_SENT, owner_notified=True)
