from __future__ import annotations

from datetime import time
from pathlib import Path

import pytest
from pydantic import ValidationError

from cli.config_loader import load_config
from models.job_config import BackupConfig, BackupTimeRange, JobRecord, RestJobBackend, SftpJobBackend

BASE_JOB = {
    "name": "job",
    "paths": ["/data"],
    "repository": "r",
    "repository_key": "k",
    "backend": {"job_type": "rest"},
}


def test_post_command_requires_on_failure_flag() -> None:
    with pytest.raises(ValidationError, match="post_command_on_failure"):
        JobRecord.model_validate({**BASE_JOB, "post_command": {"command": "/bin/true"}})


def test_post_command_with_flag_is_valid() -> None:
    record = JobRecord.model_validate(
        {**BASE_JOB, "post_command": {"command": "/bin/true"}, "post_command_on_failure": False}
    )

    assert record.post_command.command == "/bin/true"
    assert record.post_command.args == []


def test_backend_discriminator_is_case_insensitive() -> None:
    record = JobRecord.model_validate({**BASE_JOB, "backend": {"job_type": "SFTP", "sftp_user": "u"}})

    assert isinstance(record.backend, SftpJobBackend)


def test_unknown_backend_is_rejected() -> None:
    with pytest.raises(ValidationError):
        JobRecord.model_validate({**BASE_JOB, "backend": {"job_type": "ftp"}})


def test_period_parses_times_and_rejects_empty_window() -> None:
    period = BackupTimeRange.model_validate({"backup_start_time": "22:00", "backup_end_time": "02:30"})
    assert period.backup_start_time == time(22, 0)
    assert period.backup_end_time == time(2, 30)

    with pytest.raises(ValidationError):
        BackupTimeRange.model_validate({"backup_start_time": "05:00", "backup_end_time": "05:00"})


def test_duplicate_job_names_are_rejected(tmp_path: Path) -> None:
    data = {
        "global": {"restic_binary": "/usr/bin/restic", "default_interval": 60, "scratch_dir": str(tmp_path)},
        "job": [BASE_JOB, BASE_JOB],
    }
    with pytest.raises(ValidationError, match="Multiple jobs"):
        BackupConfig.model_validate(data)


def test_load_config_reads_toml(tmp_path: Path) -> None:
    path = tmp_path / "config.toml"
    path.write_text(
        """
[global]
restic_binary = "/usr/bin/restic"
default_interval = 120
scratch_dir = "/tmp"

[global.period]
backup_start_time = "01:00"
backup_end_time = "05:00"

[[job]]
name = "home"
paths = ["/home"]
repository = "home"
repository_key = "k"
interval = 30

[job.backend]
job_type = "rest"
rest_host = "h"
rest_user = "u"
rest_password = "p"
""",
        encoding="utf-8",
    )

    config = load_config(path)

    assert config.global_.default_interval == 120
    assert config.global_.period.backup_start_time == time(1, 0)
    assert config.global_.progress is True
    assert [job.name for job in config.job] == ["home"]
    assert isinstance(config.job[0].backend, RestJobBackend)
    assert config.job[0].interval == 30
