"""Logging setup for the command line and benchmark entry points."""

from __future__ import annotations

import logging
import logging.handlers
import os
from pathlib import Path

__all__ = ["LOG_DIR_ENV", "cli_level", "get_log_path", "log_file_path", "setup_logging"]

LOGGER = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
LOG_FILE_NAME = "quotakeeper.log"
LOG_DIR_ENV = "QUOTAKEEPER_LOG_DIR"
THIRD_PARTY_LOGGERS: tuple[str, ...] = ("asyncio", "httpx", "httpcore", "openai")

_active_path: Path | None = None


def setup_logging(
    level: int = logging.INFO,
    *,
    log_dir: Path | str | None = None,
    console: bool = True,
    max_bytes: int = 1_000_000,
    backup_count: int = 3,
    force: bool = False,
) -> Path:
    """Install a rotating file handler (and optionally a console handler) on the root logger.

    Repeat calls keep the first configuration unless *force* is set. Returns
    the log file path.
    """

    global _active_path
    if _active_path is not None and not force:
        return _active_path

    path = log_file_path(log_dir)
    path.parent.mkdir(parents=True, exist_ok=True)
    handlers: list[logging.Handler] = [
        logging.handlers.RotatingFileHandler(path, maxBytes=max_bytes, backupCount=backup_count, encoding="utf-8")
    ]
    if console:
        handlers.append(logging.StreamHandler())
    formatter = logging.Formatter(fmt=LOG_FORMAT, datefmt=DATE_FORMAT)
    for handler in handlers:
        handler.setFormatter(formatter)

    logging.basicConfig(level=level, handlers=handlers, force=True)
    logging.captureWarnings(True)
    for name in THIRD_PARTY_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))

    _active_path = path
    LOGGER.debug("Logging to %s at %s", path, logging.getLevelName(level))
    return path


def log_file_path(log_dir: Path | str | None = None) -> Path:
    """Resolve the log file from *log_dir*, ``QUOTAKEEPER_LOG_DIR`` or ``~/.quotakeeper/logs``."""

    base = log_dir or os.environ.get(LOG_DIR_ENV) or Path.home() / ".quotakeeper" / "logs"
    return Path(base).expanduser() / LOG_FILE_NAME


def cli_level(debug: bool) -> int:
    return logging.DEBUG if debug else logging.WARNING


def get_log_path() -> Path | None:
    return _active_path
