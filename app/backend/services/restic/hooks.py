"""Pre- and post-backup hooks.

Pre hooks run before restic, in this order:
1. MySQL dump (`mysql_db`)
2. PostgreSQL dump (`postgres_db`)
3. User `pre_command`

Dumps are written into the run's workspace and registered as extra backup
targets. A failing pre hook aborts the run.

The user `post_command` runs after the backup when it succeeded, or always if
`post_command_on_failure` is set.

User commands receive the run context through environment variables:

- `BACKUPRS_TEMP_FOLDER`: workspace directory
- `BACKUPRS_TARGETS`: `;`-joined configured backup paths
- `BACKUPRS_EXCLUDES`: `;`-joined exclude patterns
- `BACKUPRS_JOB_NAME`: job name
- `BACKUPRS_SUCCESS`: `true` / `false`
"""

from __future__ import annotations

import logging
import os
import subprocess
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from backend.services.restic.errors import HookError, IoError
from backend.services.restic.output import echo_output
from backend.services.restic.workspace import BackupWorkspace
from cli.logging_config import get_logger
from models.job_config import CommandData, GlobalDefaults, JobRecord, PostgresData

logger = get_logger(__name__)

MYSQL_DUMP_FILE = "db_dump_mysql.sql"
POSTGRES_DUMP_FILE = "db_dump_postgres.sql"


def build_mysql_dump_command(defaults: GlobalDefaults, database: str, result_file: Path) -> List[str]:
    """Build the mysqldump invocation.

    Args:
        defaults: Global defaults (dump binary).
        database: Database name.
        result_file: Output file.

    Returns:
        List[str]: Argument vector.
    """

    binary = str(defaults.mysql_dump_binary) if defaults.mysql_dump_binary else "mysqldump"
    return [binary, "--databases", database, f"--result-file={result_file}"]


def build_postgres_dump_command(
    defaults: GlobalDefaults,
    data: PostgresData,
    output_file: Path,
) -> Tuple[List[str], Dict[str, str]]:
    """Build the pg_dump invocation.

    Args:
        defaults: Global defaults (dump binary).
        data: PostgreSQL settings of the job.
        output_file: Output file.

    Returns:
        Tuple[List[str], Dict[str, str]]: Argument vector and extra environment
        (`PGUSER` / `PGPASSWORD` when configured).
    """

    binary = str(defaults.postgres_dump_binary) if defaults.postgres_dump_binary else "pg_dump"
    argv: List[str] = []
    if data.change_user:
        argv += ["sudo", "-u", "postgres"]
    # database name has to be last
    argv += [binary, f"--file={output_file}", data.database]

    env: Dict[str, str] = {}
    if data.user:
        env["PGUSER"] = data.user
    if data.password:
        env["PGPASSWORD"] = data.password
    return argv, env


def _run_hook(
    argv: List[str],
    *,
    label: str,
    job_name: str,
    verbose: bool,
    env: Optional[Dict[str, str]] = None,
    cwd: Optional[Path] = None,
) -> None:
    """Run a hook process to completion.

    Raises:
        IoError: When the process cannot be started.
        HookError: On a non-zero exit code.
    """

    full_env = os.environ.copy()
    if env:
        full_env.update(env)

    try:
        result = subprocess.run(
            argv,
            env=full_env,
            cwd=str(cwd) if cwd else None,
            stdin=subprocess.DEVNULL,
            capture_output=True,
            encoding="utf-8",
            errors="replace",
        )
    except OSError as exc:
        raise IoError(f"Starting {label}: {exc}") from exc

    if result.returncode != 0:
        echo_output(job_name, label, result.stdout, result.stderr, level=logging.ERROR)
        raise HookError(label, result.returncode, (result.stdout or "") + (result.stderr or ""))
    if verbose:
        echo_output(job_name, label, result.stdout, result.stderr)


def run_database_dumps(job: JobRecord, defaults: GlobalDefaults, workspace: BackupWorkspace) -> None:
    """Dump configured databases into the workspace and register the files.

    Args:
        job: Job record.
        defaults: Global defaults.
        workspace: Current run's workspace.
    """

    verbose = defaults.verbose > 0

    if job.mysql_db:
        if verbose:
            logger.info("[%s]\tStarting mysql dump", job.name)
        dump_path = workspace.temp_dir() / MYSQL_DUMP_FILE
        argv = build_mysql_dump_command(defaults, job.mysql_db, dump_path)
        _run_hook(argv, label="mysqldump", job_name=job.name, verbose=verbose)
        workspace.register_backup_target(dump_path)

    if job.postgres_db is not None:
        if verbose:
            logger.info("[%s]\tStarting postgres dump", job.name)
        dump_path = workspace.temp_dir() / POSTGRES_DUMP_FILE
        argv, env = build_postgres_dump_command(defaults, job.postgres_db, dump_path)
        if verbose:
            logger.info("[%s]\tCMD: %s", job.name, " ".join(argv))
        _run_hook(argv, label="pg_dump", job_name=job.name, verbose=verbose, env=env)
        workspace.register_backup_target(dump_path)


def hook_environment(job: JobRecord, workspace: BackupWorkspace, success: bool) -> Dict[str, str]:
    """Build the environment contract passed to user commands.

    Args:
        job: Job record.
        workspace: Current run's workspace.
        success: Backup outcome so far.

    Returns:
        Dict[str, str]: `BACKUPRS_*` variables.
    """

    return {
        "BACKUPRS_TEMP_FOLDER": str(workspace.temp_dir()),
        "BACKUPRS_TARGETS": ";".join(str(p) for p in job.paths),
        "BACKUPRS_EXCLUDES": ";".join(job.excludes),
        "BACKUPRS_JOB_NAME": job.name,
        "BACKUPRS_SUCCESS": "true" if success else "false",
    }


def run_user_command(
    job: JobRecord,
    defaults: GlobalDefaults,
    workspace: BackupWorkspace,
    command: CommandData,
    *,
    label: str,
    success: bool,
) -> None:
    """Run a user supplied pre/post command.

    Args:
        job: Job record.
        defaults: Global defaults.
        workspace: Current run's workspace.
        command: Command to run.
        label: Name for reporting (`pre-command` / `post-command`).
        success: Passed as `BACKUPRS_SUCCESS`.
    """

    _run_hook(
        [command.command, *command.args],
        label=label,
        job_name=job.name,
        verbose=defaults.verbose > 0,
        env=hook_environment(job, workspace, success),
        cwd=command.workdir,
    )


def run_pre_hooks(job: JobRecord, defaults: GlobalDefaults, workspace: BackupWorkspace) -> None:
    run_database_dumps(job, defaults, workspace)
    if job.pre_command is not None:
        run_user_command(job, defaults, workspace, job.pre_command, label="pre-command", success=True)


def run_post_hooks(job: JobRecord, defaults: GlobalDefaults, workspace: BackupWorkspace) -> bool:
    """Run the post command if the policy allows it.

    Args:
        job: Job record.
        defaults: Global defaults.
        workspace: Current run's workspace.

    Returns:
        bool: True if the post command was invoked.
    """

    if job.post_command is None:
        return False
    if not (workspace.success or job.post_command_on_failure):
        return False
    run_user_command(job, defaults, workspace, job.post_command, label="post-command", success=workspace.success)
    return True
