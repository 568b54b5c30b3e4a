"""Logging configuration for the backup runner.

This module configures the process logger with:
- A custom TRACE level.
- Console output.
- Rotating file output under the configured log directory, including separate
  error-only and daily log files for easier triage.

The configuration is safe to call multiple times.
"""

from __future__ import annotations

import logging
from logging.handlers import RotatingFileHandler, TimedRotatingFileHandler
from pathlib import Path
from typing import List, Optional


TRACE_LEVEL_NUM = 5

_CONFIGURED_MARKER = "_backup_runner_logging_configured"


def _install_trace_level() -> None:
    """Install the TRACE logging level and `Logger.trace` helper."""

    if logging.getLevelName(TRACE_LEVEL_NUM) != "TRACE":
        logging.addLevelName(TRACE_LEVEL_NUM, "TRACE")

    if not hasattr(logging.Logger, "trace"):

        def trace(self: logging.Logger, message: str, *args, **kwargs) -> None:
            if self.isEnabledFor(TRACE_LEVEL_NUM):
                self._log(TRACE_LEVEL_NUM, message, args, **kwargs)

        logging.Logger.trace = trace  # type: ignore[attr-defined]


def resolve_level(log_level: str, debug: bool = False) -> int:
    """Translate a level name into a numeric level.

    Args:
        log_level: Level name (e.g. INFO, DEBUG, TRACE). Empty picks INFO, or DEBUG when `debug`.
        debug: Debug mode flag.

    Returns:
        int: Numeric log level.

    Raises:
        ValueError: When the level name is invalid.
    """

    name = str(log_level or "").strip().upper()
    if not name:
        name = "DEBUG" if debug else "INFO"
    if name == "TRACE":
        return TRACE_LEVEL_NUM
    level = getattr(logging, name, None)
    if not isinstance(level, int):
        raise ValueError(f"Invalid log level: {log_level}")
    return level


def _file_handlers(log_dir: Path, log_filename: str, level: int, max_bytes: int, backup_count: int) -> List[logging.Handler]:
    stem = Path(log_filename).stem
    suffix = Path(log_filename).suffix or ".log"

    main = RotatingFileHandler(
        filename=str(log_dir / log_filename),
        maxBytes=max_bytes,
        backupCount=backup_count,
        encoding="utf-8",
    )
    main.setLevel(level)

    errors = RotatingFileHandler(
        filename=str(log_dir / f"{stem}.error{suffix}"),
        maxBytes=max_bytes,
        backupCount=backup_count,
        encoding="utf-8",
    )
    errors.setLevel(logging.ERROR)

    daily = TimedRotatingFileHandler(
        filename=str(log_dir / f"{stem}.day{suffix}"),
        when="midnight",
        backupCount=backup_count,
        encoding="utf-8",
    )
    daily.suffix = "%Y-%m-%d"
    daily.setLevel(level)

    daily_errors = TimedRotatingFileHandler(
        filename=str(log_dir / f"{stem}.day.error{suffix}"),
        when="midnight",
        backupCount=backup_count,
        encoding="utf-8",
    )
    daily_errors.suffix = "%Y-%m-%d"
    daily_errors.setLevel(logging.ERROR)

    return [main, errors, daily, daily_errors]


def configure_logging(
    *,
    log_dir: Optional[str] = None,
    log_level: str = "INFO",
    debug: bool = False,
    log_filename: str = "backup-runner.log",
    max_bytes: int = 10 * 1024 * 1024,
    backup_count: int = 5,
) -> None:
    """Configure process-wide logging.

    Args:
        log_dir: Directory for log files. None logs to the console only.
        log_level: Root log level name (e.g. INFO, DEBUG, TRACE).
        debug: When True, defaults to DEBUG unless log_level explicitly overrides it.
        log_filename: Log file name (within log_dir).
        max_bytes: Rotate the log file after this size.
        backup_count: Number of rotated files to keep.

    Raises:
        ValueError: When the provided log_level is invalid.
    """

    _install_trace_level()

    root = logging.getLogger()
    if getattr(root, _CONFIGURED_MARKER, False):
        return

    level = resolve_level(log_level, debug)
    root.setLevel(level)

    formatter = logging.Formatter(fmt="%(asctime)s [%(levelname)s] %(name)s: %(message)s", datefmt="%Y-%m-%d %H:%M:%S")

    console_handler = logging.StreamHandler()
    console_handler.setLevel(level)
    console_handler.setFormatter(formatter)
    root.addHandler(console_handler)

    if log_dir:
        try:
            Path(log_dir).mkdir(parents=True, exist_ok=True)
            for handler in _file_handlers(Path(log_dir), log_filename, level, max_bytes, backup_count):
                handler.setFormatter(formatter)
                root.addHandler(handler)
        except OSError:
            logging.getLogger(__name__).warning(
                "Failed to configure file logging under %s; continuing with console-only logging",
                log_dir,
            )

    logging.captureWarnings(True)
    setattr(root, _CONFIGURED_MARKER, True)


def get_logger(name: Optional[str] = None) -> logging.Logger:
    """Return a logger instance.

    Args:
        name: Logger name.

    Returns:
        logging.Logger: Logger instance.
    """

    return logging.getLogger(name or __name__)
