"""Logging utilities for lnd-session."""

from lnd_session.utils.logging.iso_formatter import ISO8601Formatter

__all__ = ["ISO8601Formatter"]
