"""Application configuration for lnd-session.

Defines configuration models for the daemon connection, the reconnect loop and
logging. The config file lives at the OS-appropriate location (via
click.get_app_dir) as config.json.

Example usage:
    # Load from config file
    config = AppConfig.load_from_file(get_config_path())

    # Save new configuration
    config.save_to_file(get_config_path())
"""

from __future__ import annotations

__all__ = [
    "DEFAULT_LOG_DIR",
    "AppConfig",
    "LoggingConfig",
    "NodeConfig",
    "ReconnectConfig",
    "get_config_path",
]

from pathlib import Path
from typing import Literal

from platformdirs import user_log_dir
from pydantic import BaseModel, Field, model_validator

from lnd_session.constants import (
    APP_NAME,
    DEFAULT_ENDPOINT,
    DEFAULT_MAX_RETRIES,
    DEFAULT_READY_TIMEOUT_SECONDS,
    DEFAULT_RETRY_DELAY_SECONDS,
)
from lnd_session.exceptions import ConfigurationError
from lnd_session.utils.file_helpers import (
    get_app_dir,
    load_validated_json,
    require_file_exists,
    set_secure_permissions,
)

# Default base log directory (platform-specific, follows OS conventions)
DEFAULT_LOG_DIR = user_log_dir(APP_NAME)


def get_config_path() -> Path:
    """Path of the config file inside the application directory."""
    return get_app_dir() / "config.json"


# =============================================================================
# Daemon Connection
# =============================================================================


class NodeConfig(BaseModel):
    """Connection settings for one LND node.

    The macaroon is read from macaroon_path, or from the OS keychain when
    macaroon_credential_key is set. At least one of the two is required.

    Attributes:
        endpoint: gRPC address as host:port.
        tls_cert_path: Path to LND's tls.cert (PEM).
        macaroon_path: Path to a macaroon file (e.g. admin.macaroon).
        macaroon_credential_key: Keychain key holding the macaroon as hex.
    """

    # host:port, with IPv6 hosts in brackets ([::1]:10009)
    endpoint: str = Field(default=DEFAULT_ENDPOINT, pattern=r"^(\[[0-9A-Fa-f:.]+\]|[^\s:\[\]]+):\d{1,5}$")
    tls_cert_path: str = Field(min_length=1)
    macaroon_path: str | None = None
    macaroon_credential_key: str | None = None

    @model_validator(mode="after")
    def _require_macaroon_source(self) -> "NodeConfig":
        if self.macaroon_path is None and self.macaroon_credential_key is None:
            raise ValueError("either macaroon_path or macaroon_credential_key is required")
        return self


# =============================================================================
# Reconnect Loop
# =============================================================================


class ReconnectConfig(BaseModel):
    """Readiness wait cadence used after every mode transition.

    Defaults give ~20s of delay across 41 readiness probes.

    Attributes:
        ready_timeout_seconds: Per-probe readiness timeout.
        retry_delay_seconds: Fixed delay between probes.
        max_retries: Retries after the first probe.
    """

    ready_timeout_seconds: float = Field(default=DEFAULT_READY_TIMEOUT_SECONDS, gt=0)
    retry_delay_seconds: float = Field(default=DEFAULT_RETRY_DELAY_SECONDS, ge=0)
    max_retries: int = Field(default=DEFAULT_MAX_RETRIES, ge=0)


# =============================================================================
# Logging
# =============================================================================


class LoggingConfig(BaseModel):
    """Logging configuration settings.

    Warnings and errors are written to <log_dir>/lnd-session/system.jsonl.

    Attributes:
        log_dir: Base directory for logs.
        log_level: Console log level.
    """

    log_dir: str = Field(default=DEFAULT_LOG_DIR, min_length=1)
    log_level: Literal["DEBUG", "INFO", "WARNING"] = "INFO"


# =============================================================================
# Application Configuration
# =============================================================================


class AppConfig(BaseModel):
    """Top-level configuration.

    Attributes:
        node: Daemon connection settings.
        reconnect: Reconnect loop settings.
        logging: Logging settings.
    """

    node: NodeConfig
    reconnect: ReconnectConfig = Field(default_factory=ReconnectConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @classmethod
    def load_from_file(cls, config_path: Path) -> "AppConfig":
        """Load configuration from a JSON file.

        Args:
            config_path: Path to config.json.

        Returns:
            Validated AppConfig.

        Raises:
            ConfigurationError: If the file is missing or invalid.
        """
        try:
            require_file_exists(config_path, file_type="configuration")
            return load_validated_json(config_path, cls, file_type="config")
        except (FileNotFoundError, ValueError) as e:
            raise ConfigurationError(str(e)) from e

    def save_to_file(self, config_path: Path) -> None:
        """Write configuration as JSON with owner-only permissions.

        Args:
            config_path: Destination path. Parent directories are created.
        """
        config_path.parent.mkdir(parents=True, exist_ok=True)
        config_path.write_text(self.model_dump_json(indent=2), encoding="utf-8")
        set_secure_permissions(config_path)
