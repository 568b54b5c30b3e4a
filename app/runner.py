#!/usr/bin/env python3
"""Backup runner.

Runs restic backup jobs described in a TOML configuration file. It can run in
four modes:
1. run: back up one job (`--job`) or all jobs once
2. dry-run: show what a job's backup would do
3. daemon: back up every job periodically, honoring the optional daily period
4. check: verify the restic binary and every job's repository

Usage:
    python runner.py [--config PATH] [-v] {run,dry-run,daemon,check} [--job NAME]
"""

import argparse
import logging
import sys
from typing import List, Optional

from backend.services.automation.executor import JobExecutor, RunReport
from backend.services.restic.errors import CommandError
from cli.config_loader import load_config
from cli.logging_config import configure_logging, get_logger
from cli.settings import settings

try:
    configure_logging(
        log_dir=settings.LOG_DIR or None,
        log_level=settings.LOG_LEVEL,
        debug=settings.DEBUG,
        log_filename=settings.LOG_FILENAME,
    )
except ValueError:
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
logger = get_logger(__name__)


def build_parser() -> argparse.ArgumentParser:
    """Build the command-line parser."""

    parser = argparse.ArgumentParser(description="Restic backup runner")
    parser.add_argument(
        "--config",
        default=settings.BACKUP_CONFIG,
        help="Path to the TOML configuration (default: $BACKUP_CONFIG or config.toml)",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="count",
        default=None,
        help="Increase verbosity (repeatable, max 3); overrides the configured value",
    )

    sub = parser.add_subparsers(dest="command", required=True)

    run = sub.add_parser("run", help="Back up one job, or all jobs once")
    run.add_argument("--job", help="Run only this job")

    dry = sub.add_parser("dry-run", help="Dry-run a job with per-item output")
    dry.add_argument("--job", required=True, help="Job to dry-run")

    daemon = sub.add_parser("daemon", help="Back up all jobs periodically")
    daemon.add_argument("--max-runs", type=int, default=None, help="Stop after this many backups")

    sub.add_parser("check", help="Check restic and every job's repository")
    return parser


def report_exit_code(report: RunReport) -> int:
    """Log a report summary and map it to a process exit code.

    Args:
        report: Run report.

    Returns:
        int: 0 when every job succeeded, else 1.
    """

    for result in report.results:
        if not result.success:
            logger.error("[%s]\t%s", result.job_name, result.error)
    if report.failed:
        logger.error("Failed %s job(s)", report.failed)
        return 1
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    """Entry point."""

    args = build_parser().parse_args(argv)

    try:
        config = load_config(args.config)
    except (OSError, ValueError) as exc:
        logger.error("Reading configuration %s failed: %s", args.config, exc)
        return 2

    defaults = config.global_
    if args.verbose is not None:
        defaults = defaults.model_copy(update={"verbose": min(args.verbose, 3)})

    try:
        executor = JobExecutor(defaults, list(config.job))
    except CommandError as exc:
        logger.error("Invalid job configuration: %s", exc)
        return 2

    try:
        if args.command == "run":
            if args.job:
                return report_exit_code(executor.run_job(args.job))
            return report_exit_code(executor.run_all())
        if args.command == "dry-run":
            return report_exit_code(executor.dry_run(args.job))
        if args.command == "check":
            return report_exit_code(executor.check())
        if args.command == "daemon":
            executor.run_daemon(max_runs=args.max_runs)
            return 0
    except ValueError as exc:
        logger.error("%s", exc)
        return 2
    except CommandError as exc:
        logger.error("%s failed: %s", args.command, exc)
        return 1

    return 2


if __name__ == "__main__":
    sys.exit(main())
