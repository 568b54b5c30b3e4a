"""Echo subprocess output with the job name prefix."""

from __future__ import annotations

import logging

from cli.logging_config import get_logger

logger = get_logger(__name__)


def echo_line(job_name: str, program: str, line: str, *, stderr: bool = False, level: int = logging.INFO) -> None:
    """Log a single output line as `[job]\\tPROGRAM: line`.

    Args:
        job_name: Job name.
        program: Program label, e.g. `RESTIC` or `pg_dump`.
        line: Output line.
        stderr: Whether the line came from stderr; such lines log at WARNING
            unless a higher level is requested.
        level: Log level for stdout lines.
    """

    if stderr and level < logging.WARNING:
        level = logging.WARNING
    logger.log(level, "[%s]\t%s: %s", job_name, program, line)


def echo_output(job_name: str, program: str, stdout: str, stderr: str, *, level: int = logging.INFO) -> None:
    """Log captured stdout and stderr line by line.

    Args:
        job_name: Job name.
        program: Program label.
        stdout: Captured standard output.
        stderr: Captured standard error.
        level: Log level for stdout lines.
    """

    for line in (stdout or "").strip().splitlines():
        echo_line(job_name, program, line, level=level)
    for line in (stderr or "").strip().splitlines():
        echo_line(job_name, program, line, stderr=True, level=level)
