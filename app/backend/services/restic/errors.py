"""Exception hierarchy for restic command execution.

Every failure raised while talking to the restic binary, resolving a job's
backend, or running a job's hooks derives from `CommandError`, so callers can
catch a single type per job and still tell the cases apart.
"""

from __future__ import annotations

from typing import Optional


class CommandError(RuntimeError):
    """Base class for job execution failures."""


class IoError(CommandError):
    """Raised when spawning or talking to a subprocess fails at the OS level."""


class NotInitialized(CommandError):
    """Raised when the repository is reachable but has not been initialized."""

    def __init__(self) -> None:
        super().__init__("Repository not initialized")


class ResticError(CommandError):
    """Raised for any other restic failure.

    Attributes:
        detail: Human readable detail (usually the offending output line).
        exit_code: Process exit code, when known.
    """

    def __init__(self, detail: str = "", exit_code: Optional[int] = None):
        self.detail = detail
        self.exit_code = exit_code
        message = "Restic exited with errors"
        if exit_code is not None:
            message += f" (status code {exit_code})"
        if detail:
            message += f": {detail}"
        super().__init__(message)


class InvalidResponse(CommandError):
    """Raised when restic emits output that is not the expected JSON."""

    def __init__(self, detail: str = ""):
        self.detail = detail
        super().__init__(f"Unexpected response from restic: {detail}" if detail else "Unexpected response from restic")


class MissingBackendConfig(CommandError):
    """Raised when a job needs backend defaults that are not configured."""

    def __init__(self, backend: str):
        self.backend = backend
        super().__init__(f"Missing default configuration for backend '{backend}'")


class MissingConfigValue(CommandError):
    """Raised when neither the job nor the defaults provide a required field."""

    def __init__(self, field: str):
        self.field = field
        super().__init__(f"Missing config value '{field}'")


class HookError(CommandError):
    """Raised when a database dump or user pre/post command fails.

    Attributes:
        label: Hook name used for reporting (e.g. `pre-command`, `pg_dump`).
        exit_code: Exit code of the hook process, when known.
        output: Captured stdout/stderr of the hook.
    """

    def __init__(self, label: str, exit_code: Optional[int] = None, output: str = ""):
        self.label = label
        self.exit_code = exit_code
        self.output = output
        super().__init__(f"{label} failed, exit code {exit_code if exit_code is not None else 0}")
