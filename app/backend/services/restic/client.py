"""Non-streaming restic invocations.

`snapshots`, `init` and `version` finish quickly and print little, so they are
run with `subprocess.run` and inspected once the process exits. The streaming
`backup` operation lives in `backend.services.restic.session`.
"""

from __future__ import annotations

import logging
import os
import subprocess
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from pydantic import ValidationError

from backend.services.restic.backend_resolver import ResolvedBackend
from backend.services.restic.classification import classify_failure, is_fatal
from backend.services.restic.errors import InvalidResponse, IoError, ResticError
from backend.services.restic.output import echo_output
from cli.logging_config import get_logger
from models.job_config import GlobalDefaults
from models.restic_messages import Snapshot, SnapshotList

logger = get_logger(__name__)

PROGRAM = "RESTIC"


class ResticClient:
    """Build and run restic commands for one job."""

    def __init__(self, job_name: str, defaults: GlobalDefaults, backend: ResolvedBackend):
        """Initialize the client.

        Args:
            job_name: Job name, used as output prefix.
            defaults: Global defaults (binary path, verbosity).
            backend: Resolved backend of the job.
        """

        self.job_name = job_name
        self.defaults = defaults
        self.backend = backend

    @property
    def verbose(self) -> bool:
        return self.defaults.verbose > 0

    def command(self, operation: str, *, quiet: bool) -> Tuple[List[str], Dict[str, str]]:
        """Build the argument vector and environment for an operation.

        Args:
            operation: restic sub-command, e.g. `snapshots`.
            quiet: Add `-q`.

        Returns:
            Tuple[List[str], Dict[str, str]]: (argv, env). The environment is the
            current process environment plus repository URL and secrets.
        """

        argv = [str(self.defaults.restic_binary), operation, "--json"]
        if quiet:
            argv.append("-q")
        argv += self.backend.args()

        env = os.environ.copy()
        env.update(self.backend.env)
        return argv, env

    def run(self, argv: List[str], env: Dict[str, str]) -> subprocess.CompletedProcess:
        """Run a command to completion and check its output.

        Args:
            argv: Argument vector.
            env: Process environment.

        Returns:
            subprocess.CompletedProcess: Finished process with text output.

        Raises:
            IoError: When the process cannot be started.
            NotInitialized: When the repository is not initialized.
            ResticError: On any other failure.
        """

        try:
            result = subprocess.run(
                argv,
                env=env,
                stdin=subprocess.DEVNULL,
                capture_output=True,
                encoding="utf-8",
                errors="replace",
            )
        except OSError as exc:
            raise IoError(f"Failed to start {argv[0]}: {exc}") from exc

        self.check_errors(result)
        return result

    def check_errors(self, result: subprocess.CompletedProcess) -> None:
        """Raise when restic reported a failure.

        Args:
            result: Finished process.

        Raises:
            NotInitialized: When output carries the backend's not-initialized signature.
            ResticError: On any other failure.
        """

        stdout = result.stdout or ""
        stderr = result.stderr or ""
        if is_fatal(stdout) or result.returncode != 0:
            error = classify_failure(
                stderr + "\n" + stdout,
                backend=self.backend.kind,
                exit_code=result.returncode,
            )
            if isinstance(error, ResticError):
                echo_output(self.job_name, PROGRAM, stdout, stderr, level=logging.ERROR)
                error = ResticError(_first_fatal(stderr, stdout), result.returncode)
            elif self.verbose:
                echo_output(self.job_name, PROGRAM, stdout, stderr)
            raise error

        if self.verbose:
            echo_output(self.job_name, PROGRAM, stdout, stderr)

    def snapshots(self, latest: Optional[int] = None) -> List[Snapshot]:
        """List snapshots of the repository.

        Args:
            latest: Only return the newest N snapshots.

        Returns:
            List[Snapshot]: Snapshots, oldest first.

        Raises:
            InvalidResponse: When the output is not a snapshot list.
        """

        argv, env = self.command("snapshots", quiet=True)
        if latest is not None:
            argv += ["--latest", str(latest)]

        result = self.run(argv, env)
        try:
            snapshots = SnapshotList.validate_json(result.stdout or "")
        except ValidationError as exc:
            echo_output(self.job_name, PROGRAM, result.stdout, result.stderr, level=logging.ERROR)
            raise InvalidResponse(str(exc)) from exc

        if self.verbose:
            logger.info("[%s]\tSnapshots: %s", self.job_name, [s.id for s in snapshots])
        return snapshots

    def init(self) -> None:
        """Initialize the repository."""

        if self.verbose:
            logger.info("[%s]\tInitializing repository", self.job_name)
        argv, env = self.command("init", quiet=True)
        self.run(argv, env)


def _first_fatal(*blocks: str) -> str:
    for block in blocks:
        for line in block.splitlines():
            if is_fatal(line):
                return line.strip()
    return ""


def check_restic(restic_binary: Path) -> str:
    """Verify that the restic binary can be started.

    Args:
        restic_binary: Path to restic.

    Returns:
        str: First line of `restic version`.

    Raises:
        IoError: When the binary cannot be started.
        ResticError: When it exits non-zero or does not identify as restic.
    """

    try:
        result = subprocess.run(
            [str(restic_binary), "version"],
            stdin=subprocess.DEVNULL,
            capture_output=True,
            encoding="utf-8",
            errors="replace",
        )
    except OSError as exc:
        raise IoError(f"Restic can't be started: {exc}") from exc

    if result.returncode != 0:
        raise ResticError("version check failed", result.returncode)
    if not result.stdout.startswith("restic"):
        raise ResticError(f"Restic binary returned invalid output: {result.stdout.strip()} {result.stderr.strip()}")
    return result.stdout.strip().splitlines()[0]
