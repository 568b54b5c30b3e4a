"""Configuration models for backup jobs and global defaults.

These models are the boundary between the configuration loader and the job
runtime. They are immutable once validated; all mutable scheduling state lives
in `JobRuntime`.

Backend sections share their field names between the global defaults and the
per-job data. A job field, when set, overrides the matching default.
"""

from __future__ import annotations

from datetime import time
from pathlib import Path
from typing import Annotated, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


class RestRepository(BaseModel):
    """REST server backend fields."""

    model_config = ConfigDict(frozen=True)

    rest_host: Optional[str] = Field(None, description="Host of the REST server, e.g. 10.0.0.1:443")
    server_pubkey_file: Optional[Path] = Field(None, description="CA/public key file; enables HTTPS")
    rest_user: Optional[str] = None
    rest_password: Optional[str] = None


class S3Repository(BaseModel):
    """S3 object store backend fields."""

    model_config = ConfigDict(frozen=True)

    s3_host: Optional[str] = Field(None, description="Host URL without bucket or credentials")
    aws_access_key_id: Optional[str] = None
    aws_secret_access_key: Optional[str] = None


class SftpRepository(BaseModel):
    """SFTP backend fields."""

    model_config = ConfigDict(frozen=True)

    sftp_host: Optional[str] = Field(None, description="Host of the SFTP server")
    sftp_command: Optional[str] = Field(
        None,
        description="Connect command, may contain {user} and {host}, e.g. 'ssh -p 23 {user}@{host} -s sftp'",
    )
    sftp_user: Optional[str] = None


class RestJobBackend(RestRepository):
    """Per-job REST backend."""

    job_type: Literal["rest"] = "rest"


class S3JobBackend(S3Repository):
    """Per-job S3 backend."""

    job_type: Literal["s3"] = "s3"


class SftpJobBackend(SftpRepository):
    """Per-job SFTP backend."""

    job_type: Literal["sftp"] = "sftp"


JobBackend = Annotated[
    Union[S3JobBackend, RestJobBackend, SftpJobBackend],
    Field(discriminator="job_type"),
]


class CommandData(BaseModel):
    """User supplied pre/post command."""

    model_config = ConfigDict(frozen=True)

    command: str
    args: List[str] = Field(default_factory=list)
    workdir: Optional[Path] = None


class PostgresData(BaseModel):
    """PostgreSQL dump settings for a job."""

    model_config = ConfigDict(frozen=True)

    database: str
    change_user: bool = Field(False, description="Run pg_dump via 'sudo -u postgres'")
    user: Optional[str] = None
    password: Optional[str] = None


class JobRecord(BaseModel):
    """A single backup job."""

    model_config = ConfigDict(frozen=True)

    name: str
    paths: List[Path] = Field(default_factory=list)
    excludes: List[str] = Field(default_factory=list)
    repository: str = Field(..., description="Repository path / bucket")
    repository_key: str = Field(..., description="Repository encryption key")
    backend: JobBackend
    interval: Optional[int] = Field(None, ge=0, description="Interval in minutes, overrides the default")
    pre_command: Optional[CommandData] = None
    post_command: Optional[CommandData] = None
    post_command_on_failure: Optional[bool] = None
    mysql_db: Optional[str] = None
    postgres_db: Optional[PostgresData] = None

    @field_validator("backend", mode="before")
    @classmethod
    def _normalize_job_type(cls, value):
        if isinstance(value, dict) and isinstance(value.get("job_type"), str):
            value = dict(value)
            value["job_type"] = value["job_type"].lower()
        return value

    @model_validator(mode="after")
    def _check_post_command(self) -> "JobRecord":
        if self.post_command is not None and self.post_command_on_failure is None:
            raise ValueError(
                f"Job '{self.name}': 'post_command_on_failure' must be set when 'post_command' is configured"
            )
        return self


class BackupTimeRange(BaseModel):
    """Daily window [start, end) in which backups may start."""

    model_config = ConfigDict(frozen=True)

    backup_start_time: time
    backup_end_time: time

    @model_validator(mode="after")
    def _check_range(self) -> "BackupTimeRange":
        if self.backup_start_time == self.backup_end_time:
            raise ValueError("Backup period start and end time can't be the same!")
        return self


class GlobalDefaults(BaseModel):
    """Global settings shared by all jobs."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    rest: Optional[RestRepository] = None
    sftp: Optional[SftpRepository] = None
    s3: Optional[S3Repository] = None
    restic_binary: Path
    verbose: int = Field(0, ge=0, le=3, description="Verbosity, 0 disables raw tool output")
    default_interval: int = Field(..., ge=0, description="Default interval in minutes")
    period: Optional[BackupTimeRange] = None
    mysql_dump_binary: Optional[Path] = None
    postgres_dump_binary: Optional[Path] = None
    scratch_dir: Path
    progress: bool = True
    progress_min_interval: float = Field(0.0, ge=0, description="Minimum seconds between progress lines")


class BackupConfig(BaseModel):
    """Full configuration: global defaults plus the job list."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    global_: GlobalDefaults = Field(..., alias="global")
    job: List[JobRecord] = Field(default_factory=list)

    @model_validator(mode="after")
    def _check_unique_names(self) -> "BackupConfig":
        seen = set()
        for record in self.job:
            if record.name in seen:
                raise ValueError(f"Multiple jobs with the same name '{record.name}' detected!")
            seen.add(record.name)
        return self
