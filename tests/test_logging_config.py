"""Tests for the logging dictConfig builder."""
from __future__ import annotations

from classnotify.logging_config import build_logging_config


def test_file_handlers_rotate_with_configured_limits(tmp_path):
    config = build_logging_config(tmp_path, "INFO", max_bytes=1024, backup_count=2)

    for name in ("file", "errors"):
        handler = config["handlers"][name]
        assert handler["class"] == "logging.handlers.RotatingFileHandler"
        assert handler["maxBytes"] == 1024
        assert handler["backupCount"] == 2
    assert config["handlers"]["file"]["filename"] == str(tmp_path / "classnotify.log")
    assert config["handlers"]["errors"]["level"] == "ERROR"
    assert config["root"]["handlers"] == ["console", "file", "errors"]


def test_sql_echo_only_in_debug(tmp_path):
    quiet = build_logging_config(tmp_path, "INFO")
    loud = build_logging_config(tmp_path, "DEBUG", debug=True)

    assert quiet["loggers"]["sqlalchemy.engine"]["level"] == "WARNING"
    assert loud["loggers"]["sqlalchemy.engine"]["level"] == "INFO"
    assert loud["loggers"]["aiosmtplib"]["level"] == "WARNING"