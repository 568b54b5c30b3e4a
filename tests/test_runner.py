from __future__ import annotations

from pathlib import Path

import runner
from conftest import summary_line


def _write_config(path: Path, restic: Path, scratch: Path, data: Path) -> Path:
    path.write_text(
        f"""
[global]
restic_binary = "{restic}"
default_interval = 60
scratch_dir = "{scratch}"

[global.rest]
rest_host = "backup.local"

[[job]]
name = "docs"
paths = ["{data}"]
repository = "docs"
repository_key = "k"

[job.backend]
job_type = "rest"
rest_user = "u"
rest_password = "p"
""",
        encoding="utf-8",
    )
    return path


def test_run_single_job(tmp_path: Path, fake_restic, scratch_dir: Path) -> None:
    fake_restic.configure(backup_stdout=[summary_line()])
    config = _write_config(tmp_path / "config.toml", fake_restic.binary, scratch_dir, tmp_path)

    assert runner.main(["--config", str(config), "run", "--job", "docs"]) == 0


def test_failed_backup_sets_exit_code(tmp_path: Path, fake_restic, scratch_dir: Path) -> None:
    fake_restic.configure(backup_stderr=["Fatal: unable to save snapshot"], backup_exit=1)
    config = _write_config(tmp_path / "config.toml", fake_restic.binary, scratch_dir, tmp_path)

    assert runner.main(["--config", str(config), "run"]) == 1


def test_missing_config_file(tmp_path: Path) -> None:
    assert runner.main(["--config", str(tmp_path / "missing.toml"), "check"]) == 2
