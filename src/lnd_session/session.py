"""Dual-mode session over LND's two gRPC services.

LND serves lnrpc.WalletUnlocker while the wallet is locked and
lnrpc.Lightning once it is unlocked. On unlock it shuts the first listener
down and binds a new one, without telling connected clients. DaemonSession
keeps exactly one connection handle, bound to the service its mode says is
live, and swaps it on request:

    BOOTSTRAP --to_full()--> FULL --to_bootstrap()--> BOOTSTRAP

A swap closes the old handle before opening the new one, then waits for the
new listener with the reconnect loop. If the wait runs out the session is
BROKEN: it has no handle, every operation raises PreconditionError, and the
next successful transition repairs it.

Transitions mutate session state without locking. Callers must not run two
transitions concurrently on one session.
"""

from __future__ import annotations

__all__ = [
    "DaemonSession",
    "SessionMode",
]

import asyncio
from collections.abc import Awaitable, Callable, Mapping
from enum import Enum
from typing import TYPE_CHECKING, Any

from lnd_session.config import ReconnectConfig
from lnd_session.constants import (
    BOOTSTRAP_PROBE_METHOD,
    BOOTSTRAP_SERVICE,
    CONNECTION_ERROR_MESSAGE,
    DEFAULT_AEZEED_PASSPHRASE,
    DEFAULT_CALL_TIMEOUT_SECONDS,
    DEFAULT_ENDPOINT,
    FULL_PROBE_METHOD,
    FULL_SERVICE,
    MACAROON_METADATA_KEY,
)
from lnd_session.exceptions import (
    ConnectionTimeoutError,
    ConnectionUnreachableError,
    PreconditionError,
    ValidationError,
)
from lnd_session.telemetry.system_logger import get_system_logger
from lnd_session.transport.detection import RpcServiceDetector, ServiceDetector, ServiceStatus
from lnd_session.transport.handle import create_grpc_handle
from lnd_session.transport.readiness import await_connection

if TYPE_CHECKING:
    import grpc

    from lnd_session.transport.codec import MessageCodec
    from lnd_session.transport.handle import HandleFactory, Metadata, RpcHandle

_logger = get_system_logger()


class SessionMode(str, Enum):
    """Which service the session believes the daemon is serving.

    BROKEN is not a daemon state: it marks a session whose last transition
    failed after the previous handle was already closed.
    """

    BOOTSTRAP = "bootstrap"
    FULL = "full"
    BROKEN = "broken"

    @property
    def service(self) -> str:
        """gRPC service name for this mode."""
        if self is SessionMode.BOOTSTRAP:
            return BOOTSTRAP_SERVICE
        if self is SessionMode.FULL:
            return FULL_SERVICE
        raise PreconditionError("A broken session has no service")

    @property
    def other(self) -> "SessionMode":
        """The opposite live mode."""
        if self is SessionMode.BOOTSTRAP:
            return SessionMode.FULL
        if self is SessionMode.FULL:
            return SessionMode.BOOTSTRAP
        raise PreconditionError("A broken session has no opposite mode")


class DaemonSession:
    """Session manager owning one connection handle at a time.

    The session starts in BOOTSTRAP mode with a WalletUnlocker handle.

    Usage:
        async with DaemonSession(endpoint, credentials, macaroon_hex, codec=codec) as session:
            await session.wait_for_ready()
            if await session.get_remote_service() is SessionMode.FULL:
                await session.to_full()
    """

    def __init__(
        self,
        endpoint: str = DEFAULT_ENDPOINT,
        credentials: "grpc.ChannelCredentials | None" = None,
        auth_token: str | None = None,
        *,
        codec: "MessageCodec | None" = None,
        handle_factory: "HandleFactory | None" = None,
        reconnect: ReconnectConfig | None = None,
        detectors: Mapping[SessionMode, ServiceDetector] | None = None,
        call_timeout: float | None = DEFAULT_CALL_TIMEOUT_SECONDS,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        """Create a session and its initial WalletUnlocker handle.

        Args:
            endpoint: Daemon gRPC address as host:port.
            credentials: TLS channel credentials shared by both handles. Required
                unless a handle_factory supplies its own transport.
            auth_token: Hex macaroon attached to every Lightning call.
            codec: Wire codec, used to build GrpcHandles when no handle_factory is given.
            handle_factory: Builds handles as (service, endpoint, credentials) -> RpcHandle.
            reconnect: Reconnect loop settings (default: 500ms / 500ms / 40 retries).
            detectors: Service detector per mode, replacing the default probes.
            call_timeout: Deadline in seconds for pass-through calls.
            sleep: Delay coroutine for the reconnect loop (injectable for tests).

        Raises:
            ValidationError: If neither codec nor handle_factory is given, or if
                gRPC handles would be built without TLS credentials.
        """
        if handle_factory is None:
            if codec is None:
                raise ValidationError("DaemonSession requires a codec or a handle_factory")
            if credentials is None:
                raise ValidationError("DaemonSession requires TLS credentials to connect over gRPC")
            handle_factory = create_grpc_handle(codec)

        self._endpoint = endpoint
        self._credentials = credentials
        self._auth_token = auth_token
        self._handle_factory = handle_factory
        self._reconnect = reconnect or ReconnectConfig()
        self._call_timeout = call_timeout
        self._sleep = sleep

        self._detectors: dict[SessionMode, ServiceDetector] = {
            SessionMode.BOOTSTRAP: RpcServiceDetector(
                BOOTSTRAP_PROBE_METHOD,
                {"aezeed_passphrase": DEFAULT_AEZEED_PASSPHRASE.encode("utf-8")},
            ),
            SessionMode.FULL: RpcServiceDetector(FULL_PROBE_METHOD, metadata=self.auth_metadata),
        }
        if detectors:
            self._detectors.update(detectors)

        self._mode = SessionMode.BOOTSTRAP
        self._handle: RpcHandle | None = self._new_handle(SessionMode.BOOTSTRAP)

    # -------------------------------------------------------------------------
    # State
    # -------------------------------------------------------------------------

    @property
    def endpoint(self) -> str:
        return self._endpoint

    @property
    def mode(self) -> SessionMode:
        return self._mode

    @property
    def reconnect(self) -> ReconnectConfig:
        return self._reconnect

    @property
    def auth_metadata(self) -> "Metadata":
        """Metadata attached to Lightning calls."""
        if not self._auth_token:
            return ()
        return ((MACAROON_METADATA_KEY, self._auth_token),)

    @property
    def bootstrap_handle(self) -> "RpcHandle | None":
        """The active handle if it targets WalletUnlocker, else None."""
        return self._handle if self._mode is SessionMode.BOOTSTRAP else None

    @property
    def full_handle(self) -> "RpcHandle | None":
        """The active handle if it targets Lightning, else None."""
        return self._handle if self._mode is SessionMode.FULL else None

    def is_bootstrap(self) -> bool:
        return self._mode is SessionMode.BOOTSTRAP

    def is_full(self) -> bool:
        return self._mode is SessionMode.FULL

    def is_broken(self) -> bool:
        return self._mode is SessionMode.BROKEN

    def get_local_mode(self) -> SessionMode:
        """The mode this session believes is live (no network access)."""
        return self._mode

    def _new_handle(self, mode: SessionMode) -> "RpcHandle":
        return self._handle_factory(mode.service, self._endpoint, self._credentials)

    def _require_handle(self, operation: str) -> "RpcHandle":
        if self._handle is None:
            raise PreconditionError(
                f"{operation} requires an active connection; the session is {self._mode.value}. "
                "Call to_bootstrap() or to_full() to reconnect."
            )
        return self._handle

    def _require_mode(self, mode: SessionMode, operation: str) -> "RpcHandle":
        if self._mode is not mode:
            raise PreconditionError(
                f"{operation} requires {mode.value} mode but the session is {self._mode.value}; "
                f"call to_{mode.value}() first"
            )
        return self._require_handle(operation)

    # -------------------------------------------------------------------------
    # Transitions
    # -------------------------------------------------------------------------

    async def _await_connection(self, handle: "RpcHandle") -> None:
        await await_connection(
            handle,
            self._reconnect.max_retries,
            ready_timeout=self._reconnect.ready_timeout_seconds,
            retry_delay=self._reconnect.retry_delay_seconds,
            sleep=self._sleep,
        )

    async def _transition(self, target: SessionMode) -> None:
        if self._mode is target:
            return

        previous = self._mode
        old_handle = self._handle

        # Close-then-open: no instant with two live handles
        self._handle = None
        self._mode = SessionMode.BROKEN
        if old_handle is not None:
            await old_handle.close()

        handle = self._new_handle(target)
        try:
            await self._await_connection(handle)
        except BaseException as e:
            # Cancellation included: nothing else holds the new handle
            await handle.close()
            if isinstance(e, ConnectionTimeoutError):
                _logger.error(
                    {
                        "event": "session_transition_failed",
                        "from_mode": previous.value,
                        "to_mode": target.value,
                        "endpoint": self._endpoint,
                        "message": f"Could not reach {target.service} at {self._endpoint}; session is broken",
                    }
                )
            raise

        self._handle = handle
        self._mode = target
        _logger.info(
            {
                "event": "session_transition",
                "from_mode": previous.value,
                "to_mode": target.value,
                "endpoint": self._endpoint,
                "message": f"Switched to {target.service} at {self._endpoint}",
            }
        )

    async def to_full(self) -> None:
        """Switch to the Lightning service.

        No-op if already in FULL mode.

        Raises:
            ConnectionTimeoutError: If the Lightning listener never became ready.
                The session is BROKEN afterwards.
        """
        await self._transition(SessionMode.FULL)

    async def to_bootstrap(self) -> None:
        """Switch to the WalletUnlocker service.

        No-op if already in BOOTSTRAP mode.

        Raises:
            ConnectionTimeoutError: If the WalletUnlocker listener never became ready.
                The session is BROKEN afterwards.
        """
        await self._transition(SessionMode.BOOTSTRAP)

    async def wait_for_ready(self) -> None:
        """Wait until the active handle's transport is connected.

        Raises:
            PreconditionError: If the session is BROKEN.
            ConnectionTimeoutError: If the handle never became ready.
        """
        await self._await_connection(self._require_handle("wait_for_ready"))

    # -------------------------------------------------------------------------
    # Service detection
    # -------------------------------------------------------------------------

    async def _probe(self, operation: str) -> ServiceStatus:
        handle = self._require_handle(operation)
        return await self._detectors[self._mode].probe(handle)

    async def is_server_down(self) -> bool:
        """Check whether the daemon is answering at all.

        Returns:
            True only when the probe for the current mode's service says UNREACHABLE.
        """
        return await self._probe("is_server_down") is ServiceStatus.UNREACHABLE

    async def get_remote_service(self) -> SessionMode:
        """Find out which service the daemon is actually serving.

        Probes the service matching the local mode. If it is absent the daemon
        has rolled over to the other service.

        Returns:
            SessionMode.BOOTSTRAP or SessionMode.FULL.

        Raises:
            ConnectionUnreachableError: If the daemon is not answering.
        """
        status = await self._probe("get_remote_service")
        if status is ServiceStatus.UNREACHABLE:
            raise ConnectionUnreachableError(CONNECTION_ERROR_MESSAGE)
        if status is ServiceStatus.ABSENT:
            return self._mode.other
        return self._mode

    # -------------------------------------------------------------------------
    # Calls
    # -------------------------------------------------------------------------

    async def call_bootstrap(self, method: str, request: dict[str, Any], operation: str | None = None) -> dict[str, Any]:
        """Call a WalletUnlocker method. Requires BOOTSTRAP mode."""
        handle = self._require_mode(SessionMode.BOOTSTRAP, operation or method)
        return await handle.call(method, request, None, self._call_timeout)

    async def call_full(self, method: str, request: dict[str, Any], operation: str | None = None) -> dict[str, Any]:
        """Call a Lightning method with the macaroon attached. Requires FULL mode."""
        handle = self._require_mode(SessionMode.FULL, operation or method)
        return await handle.call(method, request, self.auth_metadata, self._call_timeout)

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    async def close(self) -> None:
        """Close the active handle.

        The session is left BROKEN; a transition opens a new handle.
        """
        handle = self._handle
        self._handle = None
        self._mode = SessionMode.BROKEN
        if handle is not None:
            await handle.close()

    async def __aenter__(self) -> "DaemonSession":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    def __repr__(self) -> str:
        return f"{type(self).__name__}(endpoint={self._endpoint!r}, mode={self._mode.value})"
