"""Shared file utilities for lnd-session.

- get_app_dir: where config.json lives
- set_secure_permissions: owner-only file/directory permissions
- require_file_exists: FileNotFoundError naming what was expected
- load_validated_json: JSON file -> validated Pydantic model
"""

from __future__ import annotations

__all__ = [
    "get_app_dir",
    "load_validated_json",
    "require_file_exists",
    "set_secure_permissions",
]

import json
import sys
from pathlib import Path
from typing import TypeVar

import click
from pydantic import BaseModel, ValidationError

from lnd_session.constants import APP_NAME

ModelT = TypeVar("ModelT", bound=BaseModel)


def get_app_dir() -> Path:
    """Application directory for lnd-session, as chosen by click.

    ~/.config/lnd-session on Linux, ~/Library/Application Support/lnd-session
    on macOS, %APPDATA%\\lnd-session on Windows.
    """
    return Path(click.get_app_dir(APP_NAME))


def set_secure_permissions(path: Path, *, is_directory: bool = False) -> None:
    """Restrict a file (0o600) or directory (0o700) to its owner.

    No-op on Windows.
    """
    if sys.platform == "win32":
        return
    path.chmod(0o700 if is_directory else 0o600)


def require_file_exists(file_path: Path, file_type: str = "file") -> None:
    """Fail early when an expected input file is missing.

    Args:
        file_path: Path that must exist.
        file_type: Human name used in the message ("configuration", "macaroon", ...).

    Raises:
        FileNotFoundError: "<File type> file not found at <path>."
    """
    if not file_path.exists():
        raise FileNotFoundError(f"{file_type[:1].upper()}{file_type[1:]} file not found at {file_path}.")


def _format_validation_errors(error: ValidationError) -> str:
    return "\n".join(
        f"  - {'.'.join(str(part) for part in item['loc'])}: {item['msg']}" for item in error.errors()
    )


def load_validated_json(file_path: Path, model_class: type[ModelT], file_type: str = "file") -> ModelT:
    """Read a JSON file into a Pydantic model.

    Args:
        file_path: JSON file to read.
        model_class: Model to validate the document against.
        file_type: Human name used in error messages.

    Returns:
        The validated model.

    Raises:
        ValueError: On unreadable files, malformed JSON or failed validation.
            Validation failures list every offending field as dotted paths.
    """
    try:
        raw = file_path.read_text(encoding="utf-8")
    except OSError as e:
        raise ValueError(f"Could not read {file_type} file {file_path}: {e}") from e

    try:
        data = json.loads(raw)
    except json.JSONDecodeError as e:
        raise ValueError(f"Invalid JSON in {file_type} file {file_path}: {e}") from e

    try:
        return model_class.model_validate(data)
    except ValidationError as e:
        raise ValueError(f"Invalid {file_type} file {file_path}:\n{_format_validation_errors(e)}") from e
