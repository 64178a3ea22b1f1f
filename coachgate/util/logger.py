"""Project logger.

Logs go to stderr, which is what serverless and container platforms collect.
Setting ``COACH_LOG_FILE`` adds a size-rotated file as a second sink; a file
path that cannot be opened is a configuration error and fails at import.
"""

from __future__ import annotations

import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path

from coachgate.config.settings import settings


LOGGER_NAME = "coachgate"
LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def resolve_level(raw: str | None) -> int:
    level = logging.getLevelName(str(raw or "").strip().upper())
    return level if isinstance(level, int) else logging.INFO


def build_file_handler(path: str, max_bytes: int, backup_count: int) -> RotatingFileHandler:
    log_path = Path(path)
    log_path.parent.mkdir(parents=True, exist_ok=True)
    return RotatingFileHandler(log_path, maxBytes=max_bytes, backupCount=backup_count, encoding="utf-8")


def configure_logger(
    level: str | None = None,
    log_file: str | None = None,
    *,
    max_bytes: int | None = None,
    backup_count: int | None = None,
) -> logging.Logger:
    """(Re)configure the ``coachgate`` logger; arguments default to settings."""

    configured = logging.getLogger(LOGGER_NAME)
    for handler in list(configured.handlers):
        configured.removeHandler(handler)
        handler.close()

    configured.setLevel(resolve_level(level if level is not None else settings.log_level))
    formatter = logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT)

    handlers: list[logging.Handler] = [logging.StreamHandler()]
    file_path = settings.log_file if log_file is None else log_file
    if file_path:
        handlers.append(
            build_file_handler(
                file_path,
                settings.log_file_max_bytes if max_bytes is None else max_bytes,
                settings.log_file_backup_count if backup_count is None else backup_count,
            )
        )
    for handler in handlers:
        handler.setFormatter(formatter)
        configured.addHandler(handler)

    configured.propagate = False
    return configured


logger = configure_logger()


def get_logger(name: str) -> logging.Logger:
    """Return a child logger under the coachgate namespace."""

    return logger.getChild(name)
