"""Runtime state and execution of a single backup job.

A `JobRuntime` wraps an immutable `JobRecord` with the scheduling state that
changes while the process runs:

- `last_run`: time of the newest snapshot, None if unknown or none exist
- the cached next run, invalidated on every `last_run` write
- whether the repository is known to be initialized

A repository that answers a snapshot query with zero snapshots counts as
initialized but empty; only a `NotInitialized` answer triggers `restic init`.
"""

from __future__ import annotations

from datetime import datetime
from typing import Callable, List, Optional

from backend.services.automation.schedule_timing import compute_next_run_at
from backend.services.restic.backend_resolver import ResolvedBackend, resolve_backend
from backend.services.restic.client import ResticClient
from backend.services.restic.errors import CommandError, NotInitialized
from backend.services.restic.hooks import run_post_hooks, run_pre_hooks
from backend.services.restic.session import BackupSession
from backend.services.restic.workspace import BackupWorkspace
from cli.logging_config import get_logger
from models.job_config import GlobalDefaults, JobRecord
from models.restic_messages import BackupSummary, Snapshot

logger = get_logger(__name__)


def local_now() -> datetime:
    return datetime.now().astimezone()


class JobRuntime:
    """One job's scheduling state and backup orchestration."""

    def __init__(
        self,
        record: JobRecord,
        defaults: GlobalDefaults,
        *,
        clock: Callable[[], datetime] = local_now,
    ):
        """Initialize the runtime.

        Args:
            record: Job record.
            defaults: Global defaults.
            clock: Returns the current, timezone-aware time.

        Raises:
            MissingBackendConfig: When backend defaults are required but absent.
            MissingConfigValue: When a required backend field is missing.
        """

        self.record = record
        self.defaults = defaults
        self.clock = clock
        self.backend: ResolvedBackend = resolve_backend(record, defaults)
        self.client = ResticClient(record.name, defaults, self.backend)

        self._last_run: Optional[datetime] = None
        self._next_run: Optional[datetime] = None
        self._initialized = False

    def __repr__(self) -> str:
        return f"JobRuntime(name={self.name!r}, last_run={self._last_run!r})"

    @property
    def name(self) -> str:
        return self.record.name

    @property
    def verbose(self) -> bool:
        return self.defaults.verbose > 0

    @property
    def last_run(self) -> Optional[datetime]:
        return self._last_run

    @property
    def initialized(self) -> bool:
        return self._initialized

    def interval(self) -> int:
        """Backup interval in minutes."""

        if self.record.interval is not None:
            return self.record.interval
        return self.defaults.default_interval

    def set_last_run(self, last_run: Optional[datetime]) -> None:
        """Record a new last run and invalidate the cached next run."""

        self._last_run = last_run
        self._next_run = None

    def next_run(self) -> datetime:
        """Time of the next expected backup run.

        Returns:
            datetime: `last_run + interval`, or the current time when no last run
            is known. The value is cached until `last_run` changes.
        """

        if self._next_run is None:
            if self._last_run is not None:
                self._next_run = compute_next_run_at(reference=self._last_run, interval_minutes=self.interval())
            else:
                self._next_run = self.clock()
        return self._next_run

    def snapshots(self, latest: Optional[int] = None) -> List[Snapshot]:
        """Query snapshots and update `last_run` from the newest one.

        Args:
            latest: Only query the newest N snapshots.

        Returns:
            List[Snapshot]: Snapshots, oldest first.

        Raises:
            NotInitialized: When the repository is not initialized.
            CommandError: On any other failure.
        """

        snapshots = self.client.snapshots(latest)
        self._initialized = True
        self.set_last_run(snapshots[-1].time if snapshots else None)
        return snapshots

    def update_last_run(self) -> None:
        """Refresh `last_run` from the newest snapshot."""

        self.snapshots(1)

    def init_repository(self) -> None:
        """Initialize the repository and re-query its state once."""

        self.client.init()
        self.snapshots(1)

    def assert_initialized(self) -> None:
        """Make sure the repository exists, initializing it if necessary.

        Raises:
            NotInitialized: When the repository is still not initialized after `init`.
            CommandError: On any other failure.
        """

        if self._initialized:
            return
        try:
            self.update_last_run()
        except NotInitialized:
            if self.verbose:
                logger.info("[%s]\tRepository not initialized", self.name)
            self.init_repository()

    def backup(self) -> BackupSummary:
        """Run a backup.

        Returns:
            BackupSummary: restic's summary.

        Raises:
            CommandError: On backup or hook failure.
        """

        logger.info("[%s]\tStarting backup", self.name)
        summary = self._run(dry_run=False)
        logger.info("[%s]\tBackup finished. %s", self.name, summary)
        if self.verbose:
            logger.info("[%s]\tBackup Details: %r", self.name, summary)
        return summary

    def dry_run(self) -> BackupSummary:
        """Run `restic backup --dry-run` with per-item output."""

        logger.info("[%s]\tStarting dry run", self.name)
        return self._run(dry_run=True)

    def _run(self, *, dry_run: bool) -> BackupSummary:
        with BackupWorkspace(self.record, self.defaults.scratch_dir) as workspace:
            try:
                summary = self._backup_phase(workspace, dry_run=dry_run)
            except Exception:
                try:
                    run_post_hooks(self.record, self.defaults, workspace)
                except CommandError as post_exc:
                    logger.error("[%s]\tFailed to perform post-command: %s", self.name, post_exc)
                raise
            run_post_hooks(self.record, self.defaults, workspace)
            return summary

    def _backup_phase(self, workspace: BackupWorkspace, *, dry_run: bool) -> BackupSummary:
        self.assert_initialized()
        run_pre_hooks(self.record, self.defaults, workspace)

        base, env = self.client.command("backup", quiet=False)
        argv = BackupSession.build_args(
            base,
            excludes=self.record.excludes,
            paths=workspace.backup_paths(),
            dry_run=dry_run,
            verbose=self.verbose,
        )
        session = BackupSession(
            job_name=self.name,
            backend_kind=self.backend.kind,
            verbose=self.verbose,
            dry_run=dry_run,
            progress=self.defaults.progress,
            progress_min_interval=self.defaults.progress_min_interval,
        )
        summary = session.run(argv, env)
        workspace.mark_success()
        return summary
