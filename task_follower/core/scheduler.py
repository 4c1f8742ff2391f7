"""Scheduler for the sync, escalation sweep and attention report ticks."""

import logging

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger

from task_follower.core.config import settings
from task_follower.core.scheduler_tracker import JobTracker
from task_follower.services.sync_driver import (
    ATTENTION_REPORT_SCHEDULE,
    ESCALATION_SCHEDULE,
    SYNC_SCHEDULE,
    SyncDriver,
)


logger = logging.getLogger(__name__)

# Global scheduler instance
scheduler = AsyncIOScheduler(timezone=settings.timezone)

# schedule id -> (cron setting, job name, attempts per tick)
SCHEDULED_JOBS: dict[str, tuple[str, str, int]] = {
    # The next sync tick is only minutes away, so a failing one is not retried
    SYNC_SCHEDULE: (settings.sync_schedule, "Reconcile Registered Sheets", 1),
    ESCALATION_SCHEDULE: (settings.escalation_schedule, "Escalate Delayed Tasks", 3),
    ATTENTION_REPORT_SCHEDULE: (settings.attention_report_schedule, "Send Attention Report", 3),
}


async def run_scheduled_tick(driver: SyncDriver, tracker: JobTracker, schedule_id: str, max_retries: int) -> None:
    """Run one tick through the job tracker; a failed TickResult counts as a failed attempt."""

    async def job() -> None:
        result = await driver.handle_tick(schedule_id)
        if not result.success:
            raise RuntimeError(result.error or f"{schedule_id} tick failed")

    await tracker.run_with_retry(job, schedule_id, max_retries=max_retries)


def start_scheduler(driver: SyncDriver, tracker: JobTracker) -> None:
    """Register all jobs and start the scheduler.

    This should be called during FastAPI app startup.
    """
    logger.info("Starting scheduler")

    for schedule_id, (cron, name, max_retries) in SCHEDULED_JOBS.items():
        scheduler.add_job(
            run_scheduled_tick,
            trigger=CronTrigger.from_crontab(cron, timezone=settings.timezone),
            args=[driver, tracker, schedule_id, max_retries],
            id=schedule_id,
            name=name,
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )
        logger.info("Scheduled %s job: %s (%s)", schedule_id, cron, settings.timezone)

    scheduler.start()
    logger.info("Scheduler started successfully")


def stop_scheduler() -> None:
    """Stop the scheduler.

    This should be called during FastAPI app shutdown.
    """
    if not scheduler.running:
        return
    logger.info("Stopping scheduler")
    scheduler.shutdown(wait=True)
    logger.info("Scheduler stopped")
