"""Scheduler for playback polling and token refresh."""

import logging
from datetime import datetime
from typing import Callable, Optional

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger

from .errors import UpstreamTransient

logger = logging.getLogger(__name__)

POLL_JOB_ID = "playback_poll"
TOKEN_JOB_ID = "token_refresh"


class PlaybackScheduler:
    """Runs the poll cycle and the token refresh on fixed intervals."""

    def __init__(
        self,
        poll_function: Callable,
        token_refresh_function: Optional[Callable] = None,
        poll_interval_seconds: int = 5,
        token_refresh_minutes: int = 50,
    ):
        """Initialize scheduler.

        Args:
            poll_function: Called every poll interval with no arguments
            token_refresh_function: Called at start-up and every refresh interval
            poll_interval_seconds: Seconds between polls
            token_refresh_minutes: Minutes between token refreshes
        """
        self.poll_function = poll_function
        self.token_refresh_function = token_refresh_function
        self.poll_interval_seconds = poll_interval_seconds
        self.token_refresh_minutes = token_refresh_minutes

        self.scheduler = BackgroundScheduler(daemon=True)

    def start(self, paused: bool = False) -> None:
        """Start the scheduler."""
        try:
            self.scheduler.add_job(
                self._safe_run,
                trigger=IntervalTrigger(seconds=self.poll_interval_seconds),
                args=["Playback poll", self.poll_function],
                id=POLL_JOB_ID,
                name="Playback Poll",
                max_instances=1,
                coalesce=True,
                replace_existing=True,
            )

            if self.token_refresh_function is not None:
                self.scheduler.add_job(
                    self._safe_run,
                    trigger=IntervalTrigger(minutes=self.token_refresh_minutes),
                    args=["Token refresh", self.token_refresh_function],
                    id=TOKEN_JOB_ID,
                    name="Token Refresh",
                    max_instances=1,
                    coalesce=True,
                    replace_existing=True,
                    next_run_time=datetime.now(),
                )

            self.scheduler.start(paused=paused)
            logger.info(
                f"Scheduler started: polling every {self.poll_interval_seconds}s, "
                f"refreshing token every {self.token_refresh_minutes} min"
            )

        except Exception as e:
            logger.error(f"Failed to start scheduler: {e}")
            raise

    def stop(self) -> None:
        """Stop the scheduler gracefully."""
        try:
            if self.scheduler.running:
                logger.info("Stopping scheduler...")
                self.scheduler.shutdown(wait=True)
                logger.info("Scheduler stopped")
        except Exception as e:
            logger.error(f"Error stopping scheduler: {e}")

    def _safe_run(self, name: str, function: Callable) -> None:
        """Run one cycle; a failure is logged and the next cycle still runs."""
        try:
            function()
        except UpstreamTransient as e:
            logger.warning(f"{name} skipped: {e}")
        except Exception as e:
            logger.error(f"Error in {name.lower()}: {e}", exc_info=True)

    def get_next_run_time(self, job_id: str = POLL_JOB_ID) -> Optional[str]:
        job = self.scheduler.get_job(job_id)
        if job and job.next_run_time:
            return str(job.next_run_time)
        return None

    def is_running(self) -> bool:
        return self.scheduler.running
