"""Process-wide logging for the API, the sweeper and the maintenance scripts."""
from __future__ import annotations

import logging
from logging.config import dictConfig
from pathlib import Path

from pydantic import ValidationError

from classnotify.config import get_settings

LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"

# Third-party loggers that are too chatty at the application level.
# aiosmtplib logs whole SMTP conversations, message bodies included, at DEBUG.
QUIET_LOGGERS = {
    "aiosmtplib": "WARNING",
    "apscheduler": "WARNING",
    "sqlalchemy.engine": "WARNING",
}

_configured = False


def build_logging_config(
    log_dir: Path,
    level: str,
    *,
    max_bytes: int = 5_000_000,
    backup_count: int = 5,
    debug: bool = False,
) -> dict:
    """dictConfig for console output plus a rotating main log and an errors-only log."""

    rotating = {
        "class": "logging.handlers.RotatingFileHandler",
        "formatter": "standard",
        "encoding": "utf-8",
        "maxBytes": max_bytes,
        "backupCount": backup_count,
        "delay": True,
    }
    loggers = {name: {"level": quiet} for name, quiet in QUIET_LOGGERS.items()}
    if debug:
        loggers["sqlalchemy.engine"] = {"level": "INFO"}

    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {"standard": {"format": LOG_FORMAT}},
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "formatter": "standard",
                "level": level,
            },
            "file": {**rotating, "filename": str(log_dir / "classnotify.log"), "level": level},
            # Delivery failures and unexpected errors, without the INFO noise of a dispatch run.
            "errors": {**rotating, "filename": str(log_dir / "classnotify-errors.log"), "level": "ERROR"},
        },
        "loggers": loggers,
        "root": {
            "level": level,
            "handlers": ["console", "file", "errors"],
        },
    }


def configure_logging(level: str | None = None) -> None:
    """
    Configure logging once per process.

    ``level`` overrides ``LOG_LEVEL``; scripts use it for a ``--verbose`` flag.
    """

    global _configured
    if _configured:
        return

    try:
        settings = get_settings()
    except ValidationError:
        settings = None

    if settings is not None:
        log_dir = settings.log_dir
        options = {
            "max_bytes": settings.log_max_bytes,
            "backup_count": settings.log_backup_count,
            "debug": settings.debug,
        }
        level = (level or settings.log_level).upper()
    else:
        log_dir = Path("logs")
        options = {}
        level = (level or "INFO").upper()
    log_dir.mkdir(parents=True, exist_ok=True)

    dictConfig(build_logging_config(log_dir, level, **options))
    _configured = True
    logging.getLogger(__name__).debug("Logging configured at %s (dir=%s)", level, log_dir)
