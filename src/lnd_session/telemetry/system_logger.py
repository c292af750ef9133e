"""System logger for session events.

This module provides a singleton system logger for operational events of the
session: mode transitions, reconnect attempts, service probes.

Logging strategy:
- Console (stderr): operational messages at the configured level (default INFO)
- File (system.jsonl): only issues (WARNING, ERROR, CRITICAL)

The file handler is configured separately via configure_system_logger_file()
once the log directory from config is known.
"""

from __future__ import annotations

__all__ = [
    "ConsoleFormatter",
    "configure_logging",
    "configure_system_logger_file",
    "get_system_log_path",
    "get_system_logger",
    "set_console_level",
]

import logging
import sys
from pathlib import Path

from lnd_session.constants import APP_NAME
from lnd_session.utils.file_helpers import set_secure_permissions
from lnd_session.utils.logging.iso_formatter import ISO8601Formatter


class ConsoleFormatter(logging.Formatter):
    """Human-readable formatter for console output.

    Extracts 'message' or 'event' field from dict messages for cleaner stderr output.
    """

    def format(self, record: logging.LogRecord) -> str:
        if isinstance(record.msg, dict):
            msg = record.msg.get("message") or record.msg.get("event", "")
            return f"{record.levelname}: {msg}"
        return f"{record.levelname}: {record.getMessage()}"


# Module-level singleton logger
_system_logger: logging.Logger | None = None
_file_handler_configured: bool = False


def get_system_logger() -> logging.Logger:
    """Return the session event logger, creating it on first use.

    The first call attaches the stderr handler. The JSONL file handler is
    attached by configure_system_logger_file() once a log directory is known.

    Returns:
        logging.Logger: The "lnd-session.system" logger.

    Example:
        >>> get_system_logger().info({"event": "session_transition", "message": "..."})
    """
    global _system_logger

    if _system_logger is None:
        logger = logging.getLogger(f"{APP_NAME}.system")
        # Handlers filter by level; the logger passes everything
        logger.setLevel(logging.DEBUG)
        logger.propagate = False

        # Drop handlers left over from an earlier import of this module
        for stale in list(logger.handlers):
            logger.removeHandler(stale)
            stale.close()

        console = logging.StreamHandler(sys.stderr)
        console.setLevel(logging.INFO)
        console.setFormatter(ConsoleFormatter())
        logger.addHandler(console)
        _system_logger = logger

    return _system_logger


def set_console_level(level: str | int) -> None:
    """Change the level of the stderr handler.

    Args:
        level: Level name ("DEBUG", "INFO", "WARNING") or logging constant.
    """
    logger = get_system_logger()
    for handler in logger.handlers:
        if not isinstance(handler, logging.FileHandler):
            handler.setLevel(level)


def get_system_log_path(log_dir: str | Path) -> Path:
    """Get the system log path under a base log directory.

    Args:
        log_dir: Base log directory (user home is expanded).

    Returns:
        Path to <log_dir>/lnd-session/system.jsonl.
    """
    return Path(log_dir).expanduser() / APP_NAME / "system.jsonl"


def configure_system_logger_file(log_path: Path) -> None:
    """Attach the JSONL issue log to the system logger.

    Only the first call has an effect. Records below WARNING stay on stderr.

    Args:
        log_path: Destination file; its directory is created owner-only.
    """
    global _file_handler_configured

    if _file_handler_configured:
        return

    logger = get_system_logger()

    try:
        log_path.parent.mkdir(parents=True, exist_ok=True)
        set_secure_permissions(log_path.parent, is_directory=True)
    except OSError as e:
        # stderr still works without the file
        logger.warning(
            {
                "event": "log_dir_unavailable",
                "message": f"Cannot create log directory {log_path.parent}: {e}",
            }
        )
        return

    file_handler = logging.FileHandler(log_path, mode="a", encoding="utf-8")
    file_handler.setLevel(logging.WARNING)
    file_handler.setFormatter(ISO8601Formatter())
    logger.addHandler(file_handler)

    _file_handler_configured = True


def configure_logging(log_dir: str | Path, log_level: str = "INFO") -> None:
    """Apply logging settings from config.

    Args:
        log_dir: Base log directory (LoggingConfig.log_dir).
        log_level: Console level (LoggingConfig.log_level).
    """
    set_console_level(log_level)
    configure_system_logger_file(get_system_log_path(log_dir))
