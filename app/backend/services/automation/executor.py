"""Execution entry points for backup jobs.

This module contains the orchestration to:
- Run one job, all jobs, or a dry run of one job, collecting per-job results
- Check the restic binary and every job's repository
- Enter daemon mode
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional

from backend.services.automation.scheduler import BackupScheduler
from backend.services.restic.client import check_restic
from backend.services.restic.errors import CommandError
from backend.services.restic.job_runtime import JobRuntime, local_now
from cli.logging_config import get_logger
from models.job_config import BackupConfig, GlobalDefaults, JobRecord
from models.restic_messages import BackupSummary

logger = get_logger(__name__)


@dataclass
class JobRunResult:
    """Outcome of one job."""

    job_name: str
    status: str
    summary: Optional[BackupSummary] = None
    snapshot_count: Optional[int] = None
    error: Optional[str] = None

    @property
    def success(self) -> bool:
        return self.status == "success"


@dataclass
class RunReport:
    """Per-job results plus aggregate counts."""

    started_at: datetime
    results: List[JobRunResult] = field(default_factory=list)

    @property
    def failed(self) -> int:
        return sum(1 for r in self.results if not r.success)

    @property
    def succeeded(self) -> int:
        return sum(1 for r in self.results if r.success)


class JobExecutor:
    """Execute configured backup jobs."""

    def __init__(self, defaults: GlobalDefaults, records: List[JobRecord]):
        """Initialize the executor.

        Args:
            defaults: Global defaults.
            records: Job records, already validated.

        Raises:
            MissingBackendConfig: When a job's backend cannot be resolved.
            MissingConfigValue: When a job lacks a required backend field.
        """

        self.defaults = defaults
        self.jobs: Dict[str, JobRuntime] = {}
        for record in records:
            self.jobs[record.name] = JobRuntime(record, defaults)

    @classmethod
    def from_config(cls, config: BackupConfig) -> "JobExecutor":
        return cls(config.global_, list(config.job))

    def get_job(self, name: str) -> JobRuntime:
        job = self.jobs.get(name)
        if job is None:
            raise ValueError(f"Unknown job: {name}")
        return job

    def _execute(self, job: JobRuntime, *, dry_run: bool = False) -> JobRunResult:
        try:
            summary = job.dry_run() if dry_run else job.backup()
        except CommandError as exc:
            logger.error("[%s]\tBackup failed: %s", job.name, exc)
            return JobRunResult(job_name=job.name, status="failed", error=str(exc))
        return JobRunResult(job_name=job.name, status="success", summary=summary)

    def run_job(self, name: str) -> RunReport:
        """Back up a single job now.

        Args:
            name: Job name.

        Returns:
            RunReport: Report with one result.
        """

        report = RunReport(started_at=local_now())
        report.results.append(self._execute(self.get_job(name)))
        return report

    def dry_run(self, name: str) -> RunReport:
        """Dry-run a single job with per-item output."""

        report = RunReport(started_at=local_now())
        report.results.append(self._execute(self.get_job(name), dry_run=True))
        return report

    def run_all(self) -> RunReport:
        """Back up every job once, continuing past failures.

        Returns:
            RunReport: One result per job.
        """

        report = RunReport(started_at=local_now())
        for name in sorted(self.jobs):
            report.results.append(self._execute(self.jobs[name]))

        if report.failed:
            logger.error("%s of %s job(s) failed", report.failed, len(report.results))
        else:
            logger.info("All %s job(s) finished", len(report.results))
        return report

    def check(self) -> RunReport:
        """Verify the restic binary and query every job's snapshots.

        Returns:
            RunReport: One result per job carrying the snapshot count.

        Raises:
            CommandError: When the restic binary itself is unusable.
        """

        version = check_restic(self.defaults.restic_binary)
        logger.info("Using %s", version)

        report = RunReport(started_at=local_now())
        for name in sorted(self.jobs):
            job = self.jobs[name]
            try:
                snapshots = job.snapshots()
            except CommandError as exc:
                logger.error("[%s]\tCheck failed: %s", name, exc)
                report.results.append(JobRunResult(job_name=name, status="failed", error=str(exc)))
                continue
            logger.info("[%s]\tCheck ok, found %s snapshots", name, len(snapshots))
            report.results.append(JobRunResult(job_name=name, status="success", snapshot_count=len(snapshots)))
        return report

    def run_daemon(self, max_runs: Optional[int] = None) -> int:
        """Enter daemon mode.

        Args:
            max_runs: Stop after this many backups (None runs forever).

        Returns:
            int: Number of completed backups.

        Raises:
            CommandError: On the first failed backup.
        """

        scheduler = BackupScheduler(list(self.jobs.values()), period=self.defaults.period)
        return scheduler.run_forever(max_runs=max_runs)
