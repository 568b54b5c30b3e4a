"""Per-run scratch workspace for a backup job.

The workspace holds generated artifacts (database dumps) that are backed up
alongside the job's configured paths. The directory is created lazily, on the
first request, and removed when the `with` block exits, whatever the outcome.
"""

from __future__ import annotations

import shutil
from pathlib import Path
from typing import List, Optional

from backend.services.restic.errors import IoError
from models.job_config import JobRecord


class BackupWorkspace:
    """Scratch directory, backup targets and success flag of one backup run."""

    def __init__(self, job: JobRecord, scratch_root: Path):
        """Initialize the workspace.

        Args:
            job: Job record; its paths seed the backup targets.
            scratch_root: Directory under which the scratch directory is created.
        """

        self.job = job
        self.scratch_root = Path(scratch_root)
        self.success = False
        self._temp_dir: Optional[Path] = None
        self._targets: List[Path] = [Path(p) for p in job.paths]

    def __enter__(self) -> "BackupWorkspace":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.cleanup()

    @property
    def path(self) -> Path:
        return self.scratch_root / f"{self.job.name}_scratchspace"

    def temp_dir(self) -> Path:
        """Return the scratch directory, creating it on first use.

        Returns:
            Path: Scratch directory.

        Raises:
            IoError: When the path exists but is not a directory, or cannot be created.
        """

        if self._temp_dir is None:
            path = self.path
            if path.exists():
                if not path.is_dir():
                    raise IoError(f"Creating temporary scratchspace directory at {path} failed, already a file?!")
            else:
                try:
                    path.mkdir(parents=True)
                except OSError as exc:
                    raise IoError(f"Creating scratchspace directory at {path}: {exc}") from exc
            self._temp_dir = path
        return self._temp_dir

    def backup_paths(self) -> List[Path]:
        return list(self._targets)

    def register_backup_target(self, path: Path) -> None:
        """Add a generated file to the backup targets."""

        self._targets.append(Path(path))

    def mark_success(self) -> None:
        self.success = True

    def cleanup(self) -> None:
        """Remove the scratch directory if it was created.

        Removal errors propagate unchanged.
        """

        if self._temp_dir is not None:
            shutil.rmtree(self._temp_dir)
            self._temp_dir = None
