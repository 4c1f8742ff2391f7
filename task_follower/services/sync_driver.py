"""Timer-driven entry point: working hours, bounded sheet batches, manual triggers."""

import asyncio
import logging
import time
from collections import deque
from collections.abc import Callable, Iterable
from datetime import UTC, datetime
from typing import Any
from zoneinfo import ZoneInfo

from task_follower.core import message_templates
from task_follower.core.admin_notifier import AdminNotifier
from task_follower.core.config import constants
from task_follower.core.logging import span
from task_follower.core.ports import SheetRegistry, TaskRepository
from task_follower.models.service_models import (
    AttentionReport,
    SheetFailure,
    SweepResult,
    SyncSummary,
    TickResult,
)
from task_follower.services.escalation_service import EscalationService
from task_follower.services.reconciler import Reconciler


logger = logging.getLogger(__name__)

SYNC_SCHEDULE = "sync"
ESCALATION_SCHEDULE = "escalation_sweep"
ATTENTION_REPORT_SCHEDULE = "attention_report"


class SheetWorkQueue:
    """Pending sheet ids for the sync path.

    A tick drains a prefix and the rest waits for the next tick. A sheet is
    removed once attempted, whether it succeeded or not, so one broken sheet
    never blocks the others.
    """

    def __init__(self) -> None:
        self._pending: deque[str] = deque()

    def __len__(self) -> int:
        return len(self._pending)

    def refill(self, sheet_ids: Iterable[str]) -> None:
        for sheet_id in sheet_ids:
            if sheet_id not in self._pending:
                self._pending.append(sheet_id)

    def peek(self) -> str | None:
        return self._pending[0] if self._pending else None

    def mark_done(self, sheet_id: str) -> None:
        if self._pending and self._pending[0] == sheet_id:
            self._pending.popleft()
        elif sheet_id in self._pending:
            self._pending.remove(sheet_id)

    def discard(self, sheet_id: str) -> None:
        """Drop a sheet that is no longer registered."""
        if sheet_id in self._pending:
            self._pending.remove(sheet_id)

    def snapshot(self) -> list[str]:
        return list(self._pending)


class SyncDriver:
    """Dispatches timer ticks and manual triggers; never raises past its boundary."""

    def __init__(
        self,
        reconciler: Reconciler,
        escalation: EscalationService,
        registry: SheetRegistry,
        repository: TaskRepository,
        notifier: AdminNotifier,
        *,
        tz: ZoneInfo,
        work_hours_start: int,
        work_hours_end: int,
        max_sheets_per_tick: int,
        tick_budget_seconds: float,
        queue: SheetWorkQueue | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._reconciler = reconciler
        self._escalation = escalation
        self._registry = registry
        self._repository = repository
        self._notifier = notifier
        self._tz = tz
        self._work_hours_start = work_hours_start
        self._work_hours_end = work_hours_end
        self._max_sheets_per_tick = max(1, max_sheets_per_tick)
        self._tick_budget_seconds = tick_budget_seconds
        self._queue = queue or SheetWorkQueue()
        self._clock = clock
        self._sync_lock = asyncio.Lock()
        self._last_tick: dict[str, str] = {}

    @property
    def queue(self) -> SheetWorkQueue:
        return self._queue

    def is_within_working_hours(self, now: datetime) -> bool:
        """Hour in [start, end) in the configured time zone, not the host's."""
        local_hour = now.astimezone(self._tz).hour
        return self._work_hours_start <= local_hour < self._work_hours_end

    def get_health_status(self) -> dict[str, Any]:
        return {
            "pending_sheets": len(self._queue),
            "sync_running": self._sync_lock.locked(),
            "last_ticks": dict(self._last_tick),
        }

    async def handle_tick(self, schedule_id: str, now: datetime | None = None) -> TickResult:
        """Run the work behind a schedule id.

        Args:
            schedule_id: One of the sync, escalation sweep or attention report ids
            now: Current instant (defaults to the wall clock)

        Returns:
            TickResult; exceptions are converted into a failed result
        """
        now = now or datetime.now(UTC)
        self._last_tick[schedule_id] = now.isoformat()
        try:
            if schedule_id == SYNC_SCHEDULE:
                if not self.is_within_working_hours(now):
                    logger.debug("Sync tick outside working hours", extra={"at": now.isoformat()})
                    return TickResult(schedule_id=schedule_id, action="outside_working_hours")
                summary = await self.run_sync_tick(now)
                return TickResult(
                    schedule_id=schedule_id,
                    action="skipped" if summary.skipped else "sync",
                    success=summary.failed == 0,
                    error="; ".join(f"{f.sheet_id}: {f.error}" for f in summary.failures) or None,
                    sync=summary,
                )

            if schedule_id == ESCALATION_SCHEDULE:
                sweep = await self.run_escalation_sweep(now)
                return TickResult(
                    schedule_id=schedule_id,
                    action="escalation_sweep",
                    success=sweep.success,
                    error=sweep.error,
                    sweep=sweep,
                )

            if schedule_id == ATTENTION_REPORT_SCHEDULE:
                report = await self.send_attention_report(now)
                return TickResult(schedule_id=schedule_id, action="attention_report", report=report)

            logger.warning("Ignoring unknown schedule", extra={"schedule_id": schedule_id})
            return TickResult(schedule_id=schedule_id, action="ignored")
        except Exception as e:
            logger.exception("Tick failed", extra={"schedule_id": schedule_id})
            return TickResult(schedule_id=schedule_id, action="failed", success=False, error=str(e))

    async def run_sync_tick(self, now: datetime | None = None) -> SyncSummary:
        """Reconcile a bounded prefix of the pending sheets.

        The queue is refilled from the registry when empty. At most
        `max_sheets_per_tick` sheets are processed, and no new sheet is
        started once the tick budget is spent. A tick that finds another
        sync running skips.
        """
        now = now or datetime.now(UTC)
        if self._sync_lock.locked():
            logger.info("Sync already running, skipping tick")
            return SyncSummary(skipped=True, reason="sync_in_progress", remaining=len(self._queue))

        async with self._sync_lock:
            with span("sync_driver.run_sync_tick"):
                if not len(self._queue):
                    sheets = await self._registry.list_sheets()
                    self._queue.refill(sheet.sheet_id for sheet in sheets)
                    if not len(self._queue):
                        return SyncSummary(reason="no_sheets")

                summary = SyncSummary()
                started = self._clock()
                while len(self._queue) and summary.processed + summary.failed < self._max_sheets_per_tick:
                    elapsed = self._clock() - started
                    if summary.processed + summary.failed and elapsed >= self._tick_budget_seconds:
                        summary.reason = "budget_exhausted"
                        break
                    sheet_id = self._queue.peek()
                    await self._reconcile_into(summary, sheet_id, now)
                    self._queue.mark_done(sheet_id)

                summary.remaining = len(self._queue)
                logger.info(
                    "Sync tick finished",
                    extra={"processed": summary.processed, "failed": summary.failed, "remaining": summary.remaining},
                )
                return summary

    async def _reconcile_into(self, summary: SyncSummary, sheet_id: str, now: datetime) -> None:
        try:
            outcome = await self._reconciler.reconcile(sheet_id, now)
        except Exception as e:
            summary.failed += 1
            summary.failures.append(SheetFailure(sheet_id=sheet_id, error=str(e)))
            logger.error("Sheet reconciliation failed", extra={"sheet_id": sheet_id, "error": str(e)})
            return
        summary.processed += 1
        summary.outcomes.append(outcome)

    async def reconcile_sheet(self, sheet_id: str, now: datetime | None = None) -> SyncSummary:
        """Manually reconcile one registered sheet, waiting for a running sync."""
        now = now or datetime.now(UTC)
        summary = SyncSummary()
        try:
            sheets = await self._registry.list_sheets()
        except Exception as e:
            logger.error("Failed to list sheets", extra={"error": str(e)})
            return SyncSummary(failed=1, failures=[SheetFailure(sheet_id=sheet_id, error=str(e))])

        if sheet_id not in {sheet.sheet_id for sheet in sheets}:
            return SyncSummary(failed=1, failures=[SheetFailure(sheet_id=sheet_id, error="Sheet is not registered")])

        async with self._sync_lock:
            await self._reconcile_into(summary, sheet_id, now)
        return summary

    async def reconcile_all(self, now: datetime | None = None) -> SyncSummary:
        """Manually reconcile every registered sheet, ignoring the per-tick bounds."""
        now = now or datetime.now(UTC)
        summary = SyncSummary()
        try:
            sheets = await self._registry.list_sheets()
        except Exception as e:
            logger.error("Failed to list sheets", extra={"error": str(e)})
            return SyncSummary(reason=f"registry unavailable: {e}")

        async with self._sync_lock:
            for sheet in sheets:
                await self._reconcile_into(summary, sheet.sheet_id, now)
        logger.info("Manual sync finished", extra={"processed": summary.processed, "failed": summary.failed})
        return summary

    async def run_escalation_sweep(self, now: datetime | None = None) -> SweepResult:
        try:
            return await self._escalation.process_delayed_tasks(now)
        except Exception as e:
            logger.error("Escalation sweep failed", extra={"error": str(e)})
            return SweepResult(success=False, error=str(e))

    async def send_attention_report(self, now: datetime | None = None) -> AttentionReport:
        """Send the overdue / due soon / blocked summary to the admin chats."""
        now = now or datetime.now(UTC)
        with span("sync_driver.send_attention_report"):
            overdue = await self._repository.list_overdue(now)
            due_soon = await self._repository.list_due_soon(now, constants.DUE_SOON_DAYS)
            blocked = await self._repository.list_blocked()

            report = AttentionReport(overdue=len(overdue), due_soon=len(due_soon), blocked=len(blocked))
            if not (overdue or due_soon or blocked):
                logger.info("Nothing needs attention, skipping report")
                return report

            text = message_templates.attention_report(overdue=overdue, due_soon=due_soon, blocked=blocked, tz=self._tz)
            report.sent_to = await self._notifier.broadcast(text)
            logger.info("Attention report sent", extra={"report": report.model_dump()})
            return report
