"""Job execution tracking and monitoring for scheduled jobs."""

import asyncio
import logging
from collections import deque
from collections.abc import Awaitable, Callable
from datetime import UTC, datetime
from typing import Any

from task_follower.core.admin_notifier import AdminNotifier
from task_follower.core.config import constants


logger = logging.getLogger(__name__)


class JobTracker:
    """Track job execution history and health status (in memory)."""

    def __init__(self, notifier: AdminNotifier | None = None) -> None:
        self._notifier = notifier
        self._storage: dict[str, dict[str, Any]] = {}
        self._dead_letter_queue: deque[tuple[str, str, str]] = deque(maxlen=constants.TRACKER_DEAD_LETTER_QUEUE_MAXLEN)

    def _job(self, job_name: str) -> dict[str, Any]:
        return self._storage.setdefault(job_name, {})

    def record_job_start(self, job_name: str) -> None:
        self._job(job_name)["current_run"] = datetime.now(UTC).isoformat()

    def record_job_success(self, job_name: str) -> None:
        job = self._job(job_name)
        job["last_success"] = datetime.now(UTC).isoformat()
        job["consecutive_failures"] = 0
        job["success_count"] = job.get("success_count", 0) + 1
        job.pop("current_run", None)

    def record_job_failure(self, job_name: str, error: str) -> int:
        """Record failed job execution.

        Args:
            job_name: Name of the scheduled job
            error: Error message

        Returns:
            Number of consecutive failures including this one
        """
        job = self._job(job_name)
        job["last_failure"] = datetime.now(UTC).isoformat()
        job["last_error"] = error[:500]  # Truncate long errors
        job["consecutive_failures"] = job.get("consecutive_failures", 0) + 1
        job["failure_count"] = job.get("failure_count", 0) + 1
        job.pop("current_run", None)
        return job["consecutive_failures"]

    def get_job_status(self, job_name: str) -> dict[str, Any]:
        """Get job execution status.

        Args:
            job_name: Name of the scheduled job

        Returns:
            Dict with job status information
        """
        job_data = self._storage.get(job_name, {})
        return {
            "job_name": job_name,
            "last_success": job_data.get("last_success"),
            "last_failure": job_data.get("last_failure"),
            "last_error": job_data.get("last_error"),
            "consecutive_failures": job_data.get("consecutive_failures", 0),
            "success_count": job_data.get("success_count", 0),
            "failure_count": job_data.get("failure_count", 0),
            "currently_running": "current_run" in job_data,
            "current_run_started": job_data.get("current_run"),
        }

    def add_to_dead_letter_queue(self, job_name: str, error: str, context: str) -> None:
        """Add persistently failed job to dead letter queue."""
        self._dead_letter_queue.append((job_name, error, context))
        logger.error(
            "Job added to dead letter queue",
            extra={"job_name": job_name, "error": error, "context": context},
        )

    def get_dead_letter_queue(self) -> list[dict[str, str]]:
        return [
            {"job_name": job_name, "error": error, "context": context}
            for job_name, error, context in self._dead_letter_queue
        ]

    async def _notify(self, message: str, *, key: str) -> None:
        if self._notifier is not None:
            await self._notifier.notify_admins(message=message, severity="critical", key=key)

    async def run_with_retry(
        self,
        job_func: Callable[[], Awaitable[None]],
        job_name: str,
        max_retries: int = 3,
        base_delay: float = 2.0,
    ) -> bool:
        """Execute a job with retry logic and exponential backoff.

        Args:
            job_func: Async function to execute; raising marks the attempt failed
            job_name: Name of the job for tracking
            max_retries: Maximum number of attempts
            base_delay: Base delay in seconds for exponential backoff

        Returns:
            True if an attempt succeeded
        """
        self.record_job_start(job_name)

        last_error = None
        for attempt in range(max_retries):
            try:
                logger.info("Executing %s (attempt %d/%d)", job_name, attempt + 1, max_retries)
                await job_func()
                self.record_job_success(job_name)
                logger.info("%s completed successfully", job_name)
                return True
            except Exception as e:
                last_error = str(e)
                logger.error("%s failed on attempt %d/%d: %s", job_name, attempt + 1, max_retries, last_error)
                if attempt < max_retries - 1:
                    delay = base_delay**attempt
                    logger.info("Retrying %s in %.1fs", job_name, delay)
                    await asyncio.sleep(delay)

        # All retries exhausted - record failure
        error_msg = f"Failed after {max_retries} attempts: {last_error}"
        consecutive_failures = self.record_job_failure(job_name, error_msg)
        logger.error(
            "%s failed after all retry attempts",
            job_name,
            extra={"error": error_msg, "consecutive_failures": consecutive_failures},
        )

        if consecutive_failures >= constants.TRACKER_ALERT_AFTER_FAILURES:
            self.add_to_dead_letter_queue(
                job_name=job_name,
                error=last_error or "Unknown error",
                context=f"Failed {consecutive_failures} consecutive times",
            )
            await self._notify(
                f"Scheduled job '{job_name}' has {consecutive_failures} consecutive failures: {last_error}",
                key=f"job:{job_name}",
            )
        return False
