"""Custom exceptions for lnd-session.

This module contains all custom exceptions used throughout the package.
Exceptions are organized into two categories:

Caller Errors (local, never retried):
    - PreconditionError: Operation invoked in the wrong session mode
    - ValidationError: Malformed or missing arguments to an operation
    - ConfigurationError: Config file missing or invalid

Connection Errors (surfaced from the daemon side):
    - ConnectionTimeoutError: Reconnect loop exhausted its retry budget
    - ConnectionUnreachableError: Service probe found the daemon not answering
    - RpcCallError: A gRPC call failed with a status code

Usage:
    from lnd_session.exceptions import PreconditionError, ConnectionTimeoutError
"""

from __future__ import annotations

__all__ = [
    "ConfigurationError",
    "ConnectionTimeoutError",
    "ConnectionUnreachableError",
    "LndSessionError",
    "PreconditionError",
    "RpcCallError",
    "ValidationError",
]

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    import grpc


class LndSessionError(Exception):
    """Base class for all lnd-session errors."""


# =============================================================================
# Caller Errors
# =============================================================================


class PreconditionError(LndSessionError):
    """An operation was invoked while the session is in the wrong mode.

    Raised before any network call is attempted. This is a programmer error:
    bootstrap operations need BOOTSTRAP mode, Lightning operations need FULL
    mode, and nothing works while the session is BROKEN.
    """


class ValidationError(LndSessionError, ValueError):
    """Arguments to a pass-through operation are malformed or missing."""


class ConfigurationError(LndSessionError):
    """Configuration is invalid or incomplete.

    Raised when:
    - Config file does not exist
    - Config file contains invalid JSON
    - Config file fails Pydantic validation
    - Neither a macaroon path nor a keychain key is configured
    """


# =============================================================================
# Connection Errors
# =============================================================================


class ConnectionTimeoutError(LndSessionError, TimeoutError):
    """The reconnect loop ran out of retries without observing readiness.

    Fatal to the transition in progress. The session is left BROKEN.

    Attributes:
        endpoint: Daemon address that never became ready.
        attempts: Number of readiness probes performed.
        seed: Mnemonic of a wallet created just before the timeout, if any.
    """

    def __init__(self, message: str, *, endpoint: str | None = None, attempts: int = 0) -> None:
        super().__init__(message)
        self.endpoint = endpoint
        self.attempts = attempts
        self.seed: str | None = None


class ConnectionUnreachableError(LndSessionError, ConnectionError):
    """A service probe classified the daemon as unreachable.

    Means the daemon process is not answering at all, not that the wrong
    service is being served.
    """


class RpcCallError(LndSessionError):
    """A gRPC call failed with a status code.

    Wraps grpc.RpcError so callers and the service detector only deal with
    one error type regardless of the channel implementation.

    Attributes:
        code: gRPC status code (e.g. grpc.StatusCode.UNAVAILABLE).
        details: Status details reported by the server or the channel.
        method: Full method path that failed.
    """

    def __init__(
        self,
        code: "grpc.StatusCode",
        details: str = "",
        *,
        method: str | None = None,
    ) -> None:
        self.code = code
        self.details = details
        self.method = method
        super().__init__(f"{code.name}: {details}" if details else code.name)

    def __repr__(self) -> str:
        """Return detailed representation for debugging."""
        return f"RpcCallError(code={self.code.name}, details={self.details!r}, method={self.method!r})"
