"""Telemetry for lnd-session (system logging)."""

from lnd_session.telemetry.system_logger import (
    configure_logging,
    configure_system_logger_file,
    get_system_log_path,
    get_system_logger,
    set_console_level,
)

__all__ = [
    "configure_logging",
    "configure_system_logger_file",
    "get_system_log_path",
    "get_system_logger",
    "set_console_level",
]
