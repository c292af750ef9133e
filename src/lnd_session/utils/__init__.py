"""Shared utilities for lnd-session."""
