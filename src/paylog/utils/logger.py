"""Logging for the paylog service: console plus rotating file, tagged with the owner."""
import logging
import os
import sys
from pathlib import Path
from logging.handlers import RotatingFileHandler
from typing import Optional

LOGGER_NAME = "paylog"
LOG_FORMAT = "%(asctime)s [%(levelname)s] [owner:%(owner_id)s] %(message)s"
DEFAULT_LOG_DIR = Path.home() / ".paylog" / "logs"


class OwnerContextFilter(logging.Filter):
    """Stamps records with the owner whose messages are being processed."""

    def __init__(self):
        super().__init__()
        self.owner_id: Optional[str] = None

    def filter(self, record):
        record.owner_id = self.owner_id or "system"
        return True


_owner_filter = OwnerContextFilter()
_configured = False


def configure_logging(
    log_level: str = "INFO",
    log_dir: Optional[Path] = None,
    max_file_size_mb: int = 10,
    backup_count: int = 30
) -> logging.Logger:
    """(Re)attach handlers to the paylog logger.

    Falls back to console-only output when the log directory cannot be created.
    """
    global _configured
    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(getattr(logging, log_level.upper()))
    logger.propagate = False

    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    formatter = logging.Formatter(LOG_FORMAT, datefmt="%Y-%m-%d %H:%M:%S")

    console = logging.StreamHandler(sys.stdout)
    console.setLevel(logging.INFO)
    console.setFormatter(formatter)
    console.addFilter(_owner_filter)
    logger.addHandler(console)
    _configured = True

    directory = Path(log_dir or os.getenv("PAYLOG_LOG_DIR") or DEFAULT_LOG_DIR).expanduser()
    try:
        directory.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        logger.warning(f"Log directory {directory} unavailable ({e}); file logging disabled")
        return logger

    file_handler = RotatingFileHandler(
        directory / "paylog.log",
        maxBytes=max_file_size_mb * 1024 * 1024,
        backupCount=backup_count,
        encoding="utf-8"
    )
    file_handler.setLevel(logging.DEBUG)
    file_handler.setFormatter(formatter)
    file_handler.addFilter(_owner_filter)
    logger.addHandler(file_handler)
    return logger


def get_logger(log_level: str = "INFO") -> logging.Logger:
    """The shared paylog logger, configured with defaults on first use."""
    if not _configured:
        return configure_logging(log_level)
    return logging.getLogger(LOGGER_NAME)


def set_owner_context(owner_id: Optional[str]):
    _owner_filter.owner_id = owner_id
