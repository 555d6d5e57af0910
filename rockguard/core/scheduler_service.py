"""
Periodic job scheduling on APScheduler's asyncio scheduler.

One SchedulerService per MonitoringService; it only runs in-memory interval
jobs (personnel simulation ticks and trend sampling).
"""
import logging
from typing import Any, Callable, Dict

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

logger = logging.getLogger(__name__)


class SchedulerService:
    """Thin wrapper owning an AsyncIOScheduler."""

    def __init__(self):
        self.scheduler = AsyncIOScheduler()

    def register_interval(
        self,
        job_id: str,
        func: Callable[..., Any],
        seconds: float,
        name: str = None,
    ) -> bool:
        """
        Register (or replace) an interval job.

        Returns:
            True if registered successfully
        """
        try:
            existing_job = self.scheduler.get_job(job_id)
            if existing_job:
                self.scheduler.remove_job(job_id)

            self.scheduler.add_job(
                func,
                trigger=IntervalTrigger(seconds=seconds),
                id=job_id,
                name=name or job_id,
                replace_existing=True,
                max_instances=1,
                coalesce=True,
            )
            logger.info(f"Registered job: {name or job_id} (every {seconds}s)")
            return True
        except Exception as e:
            logger.error(f"Failed to register job {job_id}: {e}")
            return False

    def unregister(self, job_id: str) -> bool:
        existing_job = self.scheduler.get_job(job_id)
        if existing_job:
            self.scheduler.remove_job(job_id)
            logger.info(f"Unregistered job {job_id}")
            return True
        return False

    def start(self) -> None:
        """Start the scheduler if not already running."""
        if not self.scheduler.running:
            self.scheduler.start()
            logger.info("Scheduler started")

    def stop(self) -> None:
        """Stop the scheduler."""
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)
            logger.info("Scheduler stopped")

    def status(self) -> Dict[str, Any]:
        """Get current scheduler status."""
        jobs = []
        for job in self.scheduler.get_jobs():
            next_run = getattr(job, "next_run_time", None)
            jobs.append({
                "id": job.id,
                "name": job.name,
                "next_run": next_run.isoformat() if next_run else None,
                "trigger": str(job.trigger)
            })

        return {
            "running": self.scheduler.running,
            "job_count": len(jobs),
            "jobs": jobs
        }
