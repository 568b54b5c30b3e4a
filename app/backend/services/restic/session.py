"""Streaming execution of `restic backup --json`.

stdout is consumed line by line on the calling thread; stderr is drained by a
dedicated reader thread so neither pipe can fill up and stall the child.

Each stdout line is a JSON message (see `models.restic_messages`). Lines
starting with `Fatal` are classified into `NotInitialized` or `ResticError`.
After stdout closes the process is reaped and the collected stderr plus the
exit code are classified the same way. A clean exit without a `summary`
message is a failure.
"""

from __future__ import annotations

import json
import logging
import subprocess
import threading
import time
from pathlib import Path
from typing import Callable, Dict, IO, List, Optional, Sequence

from pydantic import ValidationError

from backend.services.restic.classification import classify_failure, is_fatal
from backend.services.restic.errors import CommandError, InvalidResponse, IoError, ResticError
from backend.services.restic.formatting import format_size
from backend.services.restic.output import echo_line
from cli.logging_config import get_logger
from models.restic_messages import (
    BackupStatus,
    BackupStatusIntermediate,
    BackupSummary,
    BackupVerboseStatus,
    MESSAGE_TYPES,
    parse_status,
)

logger = get_logger(__name__)

PROGRAM = "RESTIC"


class ProgressThrottle:
    """Decide which intermediate progress records are worth printing.

    A record is emitted when its integer percent differs from the last emitted
    one and, if `min_interval` is set, at least that many seconds passed.
    """

    def __init__(self, min_interval: float = 0.0, clock: Callable[[], float] = time.monotonic):
        self.min_interval = min_interval
        self.clock = clock
        self.last_percent = 0
        self._last_emit: Optional[float] = None

    def should_emit(self, percent: int) -> bool:
        if percent == self.last_percent:
            return False
        now = self.clock()
        if self.min_interval and self._last_emit is not None and now - self._last_emit < self.min_interval:
            return False
        self.last_percent = percent
        self._last_emit = now
        return True


class _StderrReader(threading.Thread):
    """Collect stderr lines in the background."""

    def __init__(self, stream: IO[str]):
        super().__init__(daemon=True)
        self.stream = stream
        self.lines: List[str] = []

    def run(self) -> None:
        for line in self.stream:
            self.lines.append(line.rstrip("\n"))
        self.stream.close()


class BackupSession:
    """One `restic backup` invocation.

    Attributes:
        job_name: Job name used as output prefix.
        backend_kind: Backend kind for not-initialized classification.
        verbose: Echo raw tool output and per-item status.
        dry_run: Per-item status is always echoed.
        progress: Print intermediate progress.
    """

    def __init__(
        self,
        *,
        job_name: str,
        backend_kind: str,
        verbose: bool = False,
        dry_run: bool = False,
        progress: bool = True,
        progress_min_interval: float = 0.0,
    ):
        self.job_name = job_name
        self.backend_kind = backend_kind
        self.verbose = verbose
        self.dry_run = dry_run
        self.progress = progress
        self.throttle = ProgressThrottle(progress_min_interval)
        self.summary: Optional[BackupSummary] = None

    @staticmethod
    def build_args(
        base: Sequence[str],
        *,
        excludes: Sequence[str],
        paths: Sequence[Path],
        dry_run: bool = False,
        verbose: bool = False,
    ) -> List[str]:
        """Append backup options to a command base.

        Backup paths are always the final argument group.

        Args:
            base: `[restic, "backup", "--json", ...backend options]`.
            excludes: Exclude patterns.
            paths: Backup targets.
            dry_run: Add `--verbose --dry-run`.
            verbose: Add `--verbose`.

        Returns:
            List[str]: Complete argument vector.
        """

        argv = list(base)
        if dry_run:
            argv += ["--verbose", "--dry-run"]
        elif verbose:
            argv.append("--verbose")
        for pattern in excludes:
            argv += ["-e", pattern]
        argv += [str(p) for p in paths]
        return argv

    def run(self, argv: Sequence[str], env: Dict[str, str]) -> BackupSummary:
        """Spawn restic and stream its output.

        Args:
            argv: Complete argument vector.
            env: Process environment.

        Returns:
            BackupSummary: The summary restic reported.

        Raises:
            IoError: When restic cannot be started.
            NotInitialized: When the repository is not initialized.
            ResticError: On any other restic failure, or when no summary arrived.
            InvalidResponse: On malformed JSON.
        """

        if self.verbose:
            logger.info("[%s]\tCMD: %s", self.job_name, " ".join(argv))
        try:
            process = subprocess.Popen(
                list(argv),
                env=env,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                encoding="utf-8",
                errors="replace",
                bufsize=1,
            )
        except OSError as exc:
            raise IoError(f"Failed to start {argv[0]}: {exc}") from exc

        assert process.stdout is not None and process.stderr is not None
        stderr_reader = _StderrReader(process.stderr)
        stderr_reader.start()

        error: Optional[CommandError] = None
        try:
            for raw in process.stdout:
                line = raw.strip()
                if not line:
                    continue
                try:
                    self.handle_line(line)
                except CommandError as exc:
                    error = exc
                    break
            # keep the child from blocking on a full pipe after an early error
            for _ in process.stdout:
                pass
        finally:
            process.stdout.close()
            returncode = process.wait()
            stderr_reader.join()

        if error is not None:
            raise error

        self.check_stderr(stderr_reader.lines, returncode)

        if self.summary is None:
            raise ResticError("No backup summary received from restic", returncode)
        return self.summary

    def handle_line(self, line: str) -> None:
        """Process one stdout line.

        Args:
            line: Stripped stdout line.

        Raises:
            NotInitialized: On a not-initialized `Fatal` line.
            ResticError: On any other `Fatal` line.
            InvalidResponse: On malformed JSON.
        """

        if is_fatal(line):
            error = classify_failure(line, backend=self.backend_kind)
            if isinstance(error, ResticError):
                echo_line(self.job_name, PROGRAM, line, level=logging.ERROR)
            elif self.verbose:
                echo_line(self.job_name, PROGRAM, line)
            raise error

        if self.verbose:
            echo_line(self.job_name, PROGRAM, line, level=logging.DEBUG)

        try:
            data = json.loads(line)
        except json.JSONDecodeError as exc:
            echo_line(self.job_name, PROGRAM, line, level=logging.ERROR)
            raise InvalidResponse(f"{exc}: {line}") from exc
        if not isinstance(data, dict):
            raise InvalidResponse(line)

        message_type = data.get("message_type")
        try:
            if message_type == "status":
                self._on_status(parse_status(data))
            elif message_type in MESSAGE_TYPES:
                message = MESSAGE_TYPES[message_type].model_validate(data)
                if isinstance(message, BackupSummary):
                    self.summary = message
                else:
                    self._on_verbose_status(message)
            else:
                logger.warning("[%s]\tIgnoring unknown restic message type %r", self.job_name, message_type)
        except ValidationError as exc:
            raise InvalidResponse(str(exc)) from exc

    def _on_verbose_status(self, status: BackupVerboseStatus) -> None:
        if not (self.dry_run or self.verbose):
            return
        if status.action == "unchanged":
            logger.info('[%s]\tUnchanged "%s"', self.job_name, status.item)
        elif status.action in ("new", "changed"):
            unit, size = format_size(status.data_size)
            label = "New" if status.action == "new" else "Changed"
            logger.info('[%s]\t%s "%s" %s %s', self.job_name, label, status.item, size, unit)
        else:
            logger.warning("[%s]\tUnknown restic action '%s'", self.job_name, status.action)

    def _on_status(self, status: BackupStatus) -> None:
        if not self.progress or not isinstance(status, BackupStatusIntermediate):
            return
        percent = int(status.percent_done * 100)
        if self.throttle.should_emit(percent):
            logger.info(
                "[%s]\tBackup %s%% finished, %s files finished",
                self.job_name,
                percent,
                status.files_done,
            )

    def check_stderr(self, lines: Sequence[str], returncode: int) -> None:
        """Classify stderr and the exit code once the process has exited.

        Args:
            lines: Collected stderr lines.
            returncode: Process exit code.

        Raises:
            NotInitialized: When stderr carries the not-initialized signature.
            ResticError: On a `Fatal` line or a non-zero exit code.
        """

        fatal = [line for line in lines if is_fatal(line)]
        if not fatal and returncode == 0:
            if self.verbose:
                for line in lines:
                    echo_line(self.job_name, PROGRAM, line, stderr=True)
            return

        error = classify_failure("\n".join(lines), backend=self.backend_kind, exit_code=returncode)
        if isinstance(error, ResticError):
            for line in lines:
                echo_line(self.job_name, PROGRAM, line, stderr=True, level=logging.ERROR)
            error = ResticError(fatal[0].strip() if fatal else "", returncode)
        elif self.verbose:
            for line in lines:
                echo_line(self.job_name, PROGRAM, line, stderr=True)
        raise error
