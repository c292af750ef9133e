"""Session manager for LND's WalletUnlocker and Lightning gRPC services."""

__version__ = "0.1.0"

from lnd_session.client import LightningClient
from lnd_session.config import AppConfig, LoggingConfig, NodeConfig, ReconnectConfig
from lnd_session.exceptions import (
    ConfigurationError,
    ConnectionTimeoutError,
    ConnectionUnreachableError,
    LndSessionError,
    PreconditionError,
    RpcCallError,
    ValidationError,
)
from lnd_session.session import DaemonSession, SessionMode
from lnd_session.transport import ProtobufCodec, ServiceStatus

__all__ = [
    "__version__",
    "AppConfig",
    "ConfigurationError",
    "ConnectionTimeoutError",
    "ConnectionUnreachableError",
    "DaemonSession",
    "LightningClient",
    "LndSessionError",
    "LoggingConfig",
    "NodeConfig",
    "PreconditionError",
    "ProtobufCodec",
    "ReconnectConfig",
    "RpcCallError",
    "ServiceStatus",
    "SessionMode",
    "ValidationError",
]
