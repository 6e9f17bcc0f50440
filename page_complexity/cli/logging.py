"""CLI logging configuration with file output.

Every command logs at DEBUG to a rotating file under
``~/.local/share/page-complexity/logs/<command>.log`` and at WARNING
(INFO with ``--verbose``) to the console.

Follow a scheduled run with::

    tail -f ~/.local/share/page-complexity/logs/schedule.log
"""

from __future__ import annotations

import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path

from rich.logging import RichHandler

from page_complexity.cli.rich_output import should_use_rich

LOG_DIR = Path.home() / ".local" / "share" / "page-complexity" / "logs"
LOGGER_NAME = "page_complexity"


def get_log_dir() -> Path:
    """Return the CLI log directory, creating it if needed."""
    LOG_DIR.mkdir(parents=True, exist_ok=True)
    return LOG_DIR


def get_log_file(command: str) -> Path:
    return get_log_dir() / f"{command}.log"


def _console_handler(level: int) -> logging.Handler:
    if should_use_rich():
        handler: logging.Handler = RichHandler(show_path=False, rich_tracebacks=True)
        handler.setFormatter(logging.Formatter("%(message)s"))
    else:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter("%(levelname)s %(name)s: %(message)s"))
    handler.setLevel(level)
    handler.set_name("page-complexity-console")
    return handler


def configure_cli_logging(
    command: str,
    *,
    verbose: bool = False,
    console_level: int | None = None,
    file_level: int = logging.DEBUG,
    max_bytes: int = 10 * 1024 * 1024,
    backup_count: int = 3,
) -> Path:
    """Configure console and file logging for a CLI command.

    Args:
        command: CLI command name (e.g. "run", "schedule").
        verbose: If True, set console to INFO level.
        console_level: Override console level (takes precedence over verbose).
        file_level: File log level.
        max_bytes: Max size per log file before rotation.
        backup_count: Number of rotated backups to keep.

    Returns:
        Path to the log file.
    """
    log_file = get_log_file(command)
    root_logger = logging.getLogger(LOGGER_NAME)

    # Repeated calls (tests, nested commands) replace rather than stack handlers
    for handler in root_logger.handlers[:]:
        if isinstance(handler, logging.FileHandler) or (
            handler.get_name() == "page-complexity-console"
        ):
            root_logger.removeHandler(handler)
            handler.close()

    file_handler = RotatingFileHandler(
        log_file,
        maxBytes=max_bytes,
        backupCount=backup_count,
        encoding="utf-8",
    )
    file_handler.setLevel(file_level)
    file_handler.setFormatter(
        logging.Formatter(
            "%(asctime)s %(levelname)-8s %(threadName)s %(name)s: %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
    )
    root_logger.addHandler(file_handler)

    if console_level is None:
        console_level = logging.INFO if verbose else logging.WARNING
    root_logger.addHandler(_console_handler(console_level))

    # NOTSET inherits WARNING from the root logger and would starve the file handler
    if root_logger.level == logging.NOTSET or root_logger.level > file_level:
        root_logger.setLevel(file_level)

    return log_file
