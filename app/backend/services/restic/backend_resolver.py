"""Resolve a job's backend against global defaults.

Each backend variant has its own resolver. A job field wins over the matching
default; a required field missing from both raises `MissingConfigValue`, or
`MissingBackendConfig` when the defaults section for that backend is absent
altogether.

Adding a backend means adding a variant in `models.job_config` and a resolver
here, and registering it in `_RESOLVERS`.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

from backend.services.restic.errors import MissingBackendConfig, MissingConfigValue
from models.job_config import (
    GlobalDefaults,
    JobRecord,
    RestJobBackend,
    S3JobBackend,
    SftpJobBackend,
)


@dataclass(frozen=True)
class ResolvedBackend:
    """Everything needed to point restic at a job's repository.

    The URL can embed credentials and the environment carries secrets, so both
    are excluded from `repr`.
    """

    kind: str
    repository_url: str = field(repr=False)
    env: Dict[str, str] = field(default_factory=dict, repr=False)
    ca_file: Optional[Path] = None
    extra_args: List[str] = field(default_factory=list)

    def args(self) -> List[str]:
        """Return the restic options implied by this backend.

        Returns:
            List[str]: Options such as `--cacert <file>` or `-o sftp.command=...`.
        """

        out: List[str] = []
        if self.ca_file is not None:
            out += ["--cacert", str(self.ca_file)]
        out += self.extra_args
        return out


def _pick(job_value: Any, defaults: Any, name: str, backend: str, *, required: bool = True) -> Any:
    """Return the job value, else the default value for `name`.

    Args:
        job_value: Value configured on the job (may be None).
        defaults: Defaults section for the backend (may be None).
        name: Field name.
        backend: Backend name for error reporting.
        required: Raise when no value is found.

    Returns:
        Any: The resolved value, or None for optional fields.

    Raises:
        MissingBackendConfig: When required, unset on the job and no defaults section exists.
        MissingConfigValue: When required and unset in both places.
    """

    if job_value is not None:
        return job_value
    if defaults is not None:
        value = getattr(defaults, name, None)
        if value is not None:
            return value
    if not required:
        return None
    if defaults is None:
        raise MissingBackendConfig(backend)
    raise MissingConfigValue(name)


def _resolve_rest(job: JobRecord, backend: RestJobBackend, defaults: GlobalDefaults) -> ResolvedBackend:
    section = defaults.rest
    user = _pick(backend.rest_user, section, "rest_user", "rest")
    password = _pick(backend.rest_password, section, "rest_password", "rest")
    host = _pick(backend.rest_host, section, "rest_host", "rest")
    ca_file = _pick(backend.server_pubkey_file, section, "server_pubkey_file", "rest", required=False)

    scheme = "https" if ca_file is not None else "http"
    url = f"rest:{scheme}://{user}:{password}@{host}/{job.repository}"
    return ResolvedBackend(
        kind="rest",
        repository_url=url,
        env={"RESTIC_REPOSITORY": url, "RESTIC_PASSWORD": job.repository_key},
        ca_file=ca_file,
    )


def _resolve_s3(job: JobRecord, backend: S3JobBackend, defaults: GlobalDefaults) -> ResolvedBackend:
    section = defaults.s3
    host = _pick(backend.s3_host, section, "s3_host", "s3")
    key_id = _pick(backend.aws_access_key_id, section, "aws_access_key_id", "s3")
    secret = _pick(backend.aws_secret_access_key, section, "aws_secret_access_key", "s3")

    url = f"s3:{host}/{job.repository}"
    return ResolvedBackend(
        kind="s3",
        repository_url=url,
        env={
            "RESTIC_REPOSITORY": url,
            "RESTIC_PASSWORD": job.repository_key,
            "AWS_ACCESS_KEY_ID": key_id,
            "AWS_SECRET_ACCESS_KEY": secret,
        },
    )


def _resolve_sftp(job: JobRecord, backend: SftpJobBackend, defaults: GlobalDefaults) -> ResolvedBackend:
    section = defaults.sftp
    user = _pick(backend.sftp_user, section, "sftp_user", "sftp")
    host = _pick(backend.sftp_host, section, "sftp_host", "sftp")
    connect_command = _pick(backend.sftp_command, section, "sftp_command", "sftp", required=False)

    extra_args: List[str] = []
    if connect_command:
        command = connect_command.replace("{user}", user).replace("{host}", host)
        extra_args = ["-o", f"sftp.command={command}"]

    url = f"sftp:{user}@{host}:/{job.repository}"
    return ResolvedBackend(
        kind="sftp",
        repository_url=url,
        env={"RESTIC_REPOSITORY": url, "RESTIC_PASSWORD": job.repository_key},
        extra_args=extra_args,
    )


_RESOLVERS: Dict[type, Callable[[JobRecord, Any, GlobalDefaults], ResolvedBackend]] = {
    RestJobBackend: _resolve_rest,
    S3JobBackend: _resolve_s3,
    SftpJobBackend: _resolve_sftp,
}


def resolve_backend(job: JobRecord, defaults: GlobalDefaults) -> ResolvedBackend:
    """Resolve the repository URL and credential environment for a job.

    Args:
        job: Job record.
        defaults: Global defaults.

    Returns:
        ResolvedBackend: Repository URL, environment and extra restic options.

    Raises:
        MissingBackendConfig: When defaults are needed but not configured.
        MissingConfigValue: When a required field is missing.
        ValueError: When the backend variant is unsupported.
    """

    resolver = _RESOLVERS.get(type(job.backend))
    if resolver is None:
        raise ValueError(f"Unsupported backend type: {type(job.backend).__name__}")
    return resolver(job, job.backend, defaults)
