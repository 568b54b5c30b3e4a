"""Daemon loop for periodic backups.

The scheduler is single threaded. Each cycle it:

1. picks the job with the earliest `next_run()`
2. sleeps until that time (the loop's suspension point)
3. if a daily window is configured, sleeps until the window is open
4. runs the backup; any failure stops the daemon
5. refreshes the job's last run from its newest snapshot

Jobs are re-sorted on every cycle, which is fine for tens of jobs.
"""

from __future__ import annotations

import time
from datetime import datetime, timedelta
from typing import Callable, List, Optional, Sequence

from backend.services.automation.schedule_timing import compute_window_wait
from backend.services.restic.errors import CommandError
from backend.services.restic.job_runtime import JobRuntime, local_now
from cli.logging_config import get_logger
from models.job_config import BackupTimeRange

logger = get_logger(__name__)


class BackupScheduler:
    """Run jobs forever, one at a time, in order of their next due time."""

    def __init__(
        self,
        jobs: Sequence[JobRuntime],
        *,
        period: Optional[BackupTimeRange] = None,
        clock: Callable[[], datetime] = local_now,
        sleep: Callable[[float], None] = time.sleep,
    ):
        """Initialize the scheduler.

        Args:
            jobs: Job runtimes to schedule.
            period: Optional daily window in which backups may start.
            clock: Returns the current, timezone-aware time.
            sleep: Blocking sleep taking seconds.
        """

        self.jobs: List[JobRuntime] = list(jobs)
        self.period = period
        self.clock = clock
        self.sleep = sleep
        self.completed_runs = 0

    def prime(self) -> None:
        """Load each job's last run. Failures are logged and ignored."""

        for job in self.jobs:
            try:
                job.update_last_run()
            except CommandError as exc:
                logger.warning("[%s]\tCould not fetch last snapshot: %s", job.name, exc)

    def next_job(self) -> JobRuntime:
        """Return the job that is due first."""

        self.jobs.sort(key=lambda job: job.next_run())
        return self.jobs[0]

    def window_wait(self) -> timedelta:
        if self.period is None:
            return timedelta(0)
        return compute_window_wait(
            now=self.clock(),
            start=self.period.backup_start_time,
            end=self.period.backup_end_time,
        )

    def _sleep_for(self, delay: timedelta) -> None:
        seconds = delay.total_seconds()
        if seconds > 0:
            self.sleep(seconds)

    def run_once(self) -> JobRuntime:
        """Wait for the next due job and back it up.

        Returns:
            JobRuntime: The job that ran.

        Raises:
            CommandError: When the backup fails.
        """

        job = self.next_job()
        delay = job.next_run() - self.clock()
        if delay > timedelta(0):
            logger.info("[%s]\tNext backup at %s", job.name, job.next_run().isoformat(timespec="seconds"))
        self._sleep_for(delay)

        wait = self.window_wait()
        if wait > timedelta(0):
            logger.info("Outside of backup period, waiting %s", wait)
            self._sleep_for(wait)

        started_at = self.clock()
        try:
            job.backup()
        except CommandError as exc:
            logger.error("[%s]\tBackup failed: %s", job.name, exc)
            raise
        self.completed_runs += 1

        try:
            job.update_last_run()
        except CommandError as exc:
            logger.warning("[%s]\tCould not refresh last snapshot: %s", job.name, exc)
            job.set_last_run(started_at)
        return job

    def run_forever(self, max_runs: Optional[int] = None) -> int:
        """Run the daemon loop.

        Args:
            max_runs: Stop after this many backups (None runs forever).

        Returns:
            int: Number of completed backups.

        Raises:
            CommandError: On the first failed backup.
            ValueError: When there are no jobs.
        """

        if not self.jobs:
            raise ValueError("No jobs configured")

        logger.info("Backup daemon started with %s job(s)", len(self.jobs))
        self.prime()
        while max_runs is None or self.completed_runs < max_runs:
            self.run_once()
        return self.completed_runs
