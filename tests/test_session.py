"""Tests for DaemonSession mode management.

Tests use the AAA pattern (Arrange-Act-Assert) for clarity.
FakeHandleFactory asserts on every open and close that at most one
handle is live.
"""

import asyncio

import grpc
import pytest

from lnd_session.config import ReconnectConfig
from lnd_session.constants import BOOTSTRAP_SERVICE, CONNECTION_ERROR_MESSAGE, FULL_SERVICE
from lnd_session.exceptions import (
    ConnectionTimeoutError,
    ConnectionUnreachableError,
    PreconditionError,
    RpcCallError,
    ValidationError,
)
from lnd_session.session import DaemonSession, SessionMode
from lnd_session.transport.codec import ProtobufCodec
from lnd_session.transport.detection import ServiceDetector, ServiceStatus

MACAROON = "0201036c6e6402"


# ============================================================================
# Fixtures
# ============================================================================


@pytest.fixture
def session(handle_factory, fast_reconnect, sleep) -> DaemonSession:
    return DaemonSession(
        "127.0.0.1:10009",
        None,
        MACAROON,
        handle_factory=handle_factory,
        reconnect=fast_reconnect,
        sleep=sleep,
    )


# ============================================================================
# Tests: Construction
# ============================================================================


class TestConstruction:
    """Tests for the initial session state."""

    def test_starts_in_bootstrap_mode(self, session, handle_factory):
        # Assert
        assert session.mode is SessionMode.BOOTSTRAP
        assert session.is_bootstrap()
        assert not session.is_full()
        assert session.get_local_mode() is SessionMode.BOOTSTRAP
        assert len(handle_factory.created) == 1
        assert session.bootstrap_handle is handle_factory.created[0]
        assert session.full_handle is None

    def test_initial_handle_targets_wallet_unlocker(self, session, handle_factory):
        handle = handle_factory.created[0]

        assert handle.service == BOOTSTRAP_SERVICE
        assert handle.endpoint == "127.0.0.1:10009"

    def test_requires_codec_or_handle_factory(self):
        with pytest.raises(ValidationError, match="codec or a handle_factory"):
            DaemonSession("127.0.0.1:10009")

    def test_grpc_handles_require_credentials(self):
        with pytest.raises(ValidationError, match="TLS credentials"):
            DaemonSession("127.0.0.1:1", codec=ProtobufCodec({}), reconnect=ReconnectConfig(max_retries=0))

    def test_default_reconnect_settings(self, handle_factory):
        # Act
        session = DaemonSession(handle_factory=handle_factory)

        # Assert
        assert session.reconnect == ReconnectConfig()
        assert session.reconnect.max_retries == 40
        assert session.endpoint == "127.0.0.1:10009"

    def test_auth_metadata_carries_macaroon(self, session):
        assert session.auth_metadata == (("macaroon", MACAROON),)

    def test_auth_metadata_empty_without_token(self, handle_factory):
        session = DaemonSession(handle_factory=handle_factory)

        assert session.auth_metadata == ()

    def test_repr_shows_mode(self, session):
        assert repr(session) == "DaemonSession(endpoint='127.0.0.1:10009', mode=bootstrap)"


# ============================================================================
# Tests: Transitions
# ============================================================================


class TestTransitions:
    """Tests for to_full / to_bootstrap."""

    async def test_to_full_swaps_handle(self, session, handle_factory):
        # Arrange
        bootstrap = handle_factory.created[0]

        # Act
        await session.to_full()

        # Assert
        assert session.mode is SessionMode.FULL
        assert bootstrap.closed
        assert session.full_handle is handle_factory.last(FULL_SERVICE)
        assert session.bootstrap_handle is None
        assert handle_factory.max_live == 1

    async def test_to_full_is_idempotent(self, session, handle_factory):
        # Arrange
        await session.to_full()
        full = session.full_handle

        # Act
        await session.to_full()

        # Assert
        assert session.full_handle is full
        assert not full.closed
        assert len(handle_factory.created) == 2

    async def test_to_bootstrap_when_bootstrap_is_noop(self, session, handle_factory):
        # Act
        await session.to_bootstrap()

        # Assert
        assert len(handle_factory.created) == 1
        assert not handle_factory.created[0].closed

    async def test_round_trip_never_holds_two_handles(self, session, handle_factory):
        # Act
        await session.to_full()
        await session.to_bootstrap()
        await session.to_full()

        # Assert
        assert session.is_full()
        assert len(handle_factory.created) == 4
        assert len(handle_factory.live()) == 1
        assert handle_factory.max_live == 1

    async def test_transition_waits_for_listener(self, session, handle_factory, sleep):
        # Arrange - new listener takes two probes to come up
        handle_factory.ready_after[FULL_SERVICE] = 2

        # Act
        await session.to_full()

        # Assert
        assert session.is_full()
        assert handle_factory.last(FULL_SERVICE).ready_checks == 3
        assert sleep.delays == [0.5, 0.5]

    async def test_timeout_leaves_session_broken(self, session, handle_factory, sleep):
        # Arrange
        handle_factory.ready_after[FULL_SERVICE] = None

        # Act
        with pytest.raises(ConnectionTimeoutError) as exc_info:
            await session.to_full()

        # Assert - fast_reconnect allows 3 retries
        assert exc_info.value.attempts == 4
        assert len(sleep.delays) == 3
        assert session.mode is SessionMode.BROKEN
        assert session.is_broken()
        assert session.bootstrap_handle is None
        assert session.full_handle is None
        assert handle_factory.live() == []

    async def test_broken_session_rejects_operations(self, session, handle_factory):
        # Arrange
        handle_factory.ready_after[FULL_SERVICE] = None
        with pytest.raises(ConnectionTimeoutError):
            await session.to_full()
        calls_before = sum(len(h.calls) for h in handle_factory.created)

        # Act & Assert
        with pytest.raises(PreconditionError):
            await session.call_full("GetInfo", {})
        with pytest.raises(PreconditionError):
            await session.call_bootstrap("GenSeed", {})
        with pytest.raises(PreconditionError):
            await session.wait_for_ready()
        with pytest.raises(PreconditionError):
            await session.get_remote_service()
        with pytest.raises(PreconditionError):
            await session.is_server_down()
        assert sum(len(h.calls) for h in handle_factory.created) == calls_before

    async def test_broken_session_recovers_on_next_transition(self, session, handle_factory):
        # Arrange
        handle_factory.ready_after[FULL_SERVICE] = None
        with pytest.raises(ConnectionTimeoutError):
            await session.to_full()
        handle_factory.ready_after[FULL_SERVICE] = 0

        # Act
        await session.to_full()

        # Assert
        assert session.is_full()
        assert len(handle_factory.live()) == 1

    async def test_broken_session_can_fall_back_to_bootstrap(self, session, handle_factory):
        # Arrange
        handle_factory.ready_after[FULL_SERVICE] = None
        with pytest.raises(ConnectionTimeoutError):
            await session.to_full()

        # Act
        await session.to_bootstrap()

        # Assert
        assert session.is_bootstrap()
        assert session.bootstrap_handle is handle_factory.last(BOOTSTRAP_SERVICE)

    async def test_cancelled_transition_closes_new_handle(self, handle_factory, fast_reconnect):
        # Arrange - cancelled while waiting between readiness probes
        async def cancelled_sleep(delay):
            raise asyncio.CancelledError

        session = DaemonSession(handle_factory=handle_factory, reconnect=fast_reconnect, sleep=cancelled_sleep)
        handle_factory.ready_after[FULL_SERVICE] = None

        # Act
        with pytest.raises(asyncio.CancelledError):
            await session.to_full()

        # Assert
        assert handle_factory.live() == []
        assert handle_factory.last(FULL_SERVICE).closed
        assert session.is_broken()

    async def test_transition_uses_configured_budget(self, handle_factory, sleep):
        # Arrange
        reconnect = ReconnectConfig(ready_timeout_seconds=0.5, retry_delay_seconds=0.25, max_retries=1)
        session = DaemonSession(handle_factory=handle_factory, reconnect=reconnect, sleep=sleep)
        handle_factory.ready_after[FULL_SERVICE] = None

        # Act
        with pytest.raises(ConnectionTimeoutError):
            await session.to_full()

        # Assert
        assert sleep.delays == [0.25]
        assert handle_factory.last(FULL_SERVICE).ready_checks == 2


# ============================================================================
# Tests: wait_for_ready
# ============================================================================


class TestWaitForReady:
    """Tests for waiting on the current handle."""

    async def test_waits_on_current_handle(self, session, handle_factory):
        # Act
        await session.wait_for_ready()

        # Assert
        assert handle_factory.created[0].ready_checks == 1

    async def test_raises_when_never_ready(self, handle_factory, fast_reconnect, sleep):
        # Arrange
        handle_factory.ready_after[BOOTSTRAP_SERVICE] = None
        session = DaemonSession(handle_factory=handle_factory, reconnect=fast_reconnect, sleep=sleep)

        # Act & Assert
        with pytest.raises(ConnectionTimeoutError):
            await session.wait_for_ready()
        assert session.is_bootstrap()


# ============================================================================
# Tests: Service detection
# ============================================================================


class TestServiceDetection:
    """Tests for get_remote_service and is_server_down."""

    async def test_bootstrap_service_present(self, session):
        assert await session.get_remote_service() is SessionMode.BOOTSTRAP

    async def test_bootstrap_absent_means_full(self, session, handle_factory):
        # Arrange - unlocked daemon no longer serves WalletUnlocker
        handle_factory.responses[BOOTSTRAP_SERVICE]["GenSeed"] = RpcCallError(
            grpc.StatusCode.UNIMPLEMENTED, "unknown service lnrpc.WalletUnlocker"
        )

        # Act
        remote = await session.get_remote_service()

        # Assert
        assert remote is SessionMode.FULL
        assert remote == "full"
        assert session.is_bootstrap()  # detection does not transition

    async def test_full_absent_means_bootstrap(self, session, handle_factory):
        # Arrange - daemon restarted and is locked again
        await session.to_full()
        handle_factory.responses[FULL_SERVICE]["GetInfo"] = RpcCallError(
            grpc.StatusCode.UNIMPLEMENTED, "unknown service lnrpc.Lightning"
        )

        # Act
        remote = await session.get_remote_service()

        # Assert
        assert remote is SessionMode.BOOTSTRAP

    async def test_business_error_means_present(self, session, handle_factory):
        # Arrange
        await session.to_full()
        handle_factory.responses[FULL_SERVICE]["GetInfo"] = RpcCallError(
            grpc.StatusCode.UNKNOWN, "verification failed: signature mismatch"
        )

        # Act & Assert
        assert await session.get_remote_service() is SessionMode.FULL

    async def test_unreachable_raises(self, session, handle_factory):
        # Arrange
        handle_factory.responses[BOOTSTRAP_SERVICE]["GenSeed"] = RpcCallError(
            grpc.StatusCode.UNAVAILABLE, "failed to connect to all addresses"
        )

        # Act & Assert
        with pytest.raises(ConnectionUnreachableError, match="Connection Failed") as exc_info:
            await session.get_remote_service()
        assert str(exc_info.value) == CONNECTION_ERROR_MESSAGE

    async def test_full_probe_sends_macaroon(self, session, handle_factory):
        # Arrange
        await session.to_full()

        # Act
        await session.get_remote_service()

        # Assert
        method, _, metadata = handle_factory.last(FULL_SERVICE).calls[-1]
        assert method == "GetInfo"
        assert metadata == (("macaroon", MACAROON),)

    async def test_bootstrap_probe_is_gen_seed(self, session, handle_factory):
        # Act
        await session.get_remote_service()

        # Assert
        assert handle_factory.created[0].calls == [("GenSeed", {"aezeed_passphrase": b"aezeed"}, None)]

    async def test_server_down_only_when_unreachable(self, session, handle_factory):
        # Arrange
        responses = handle_factory.responses[BOOTSTRAP_SERVICE]

        # Act & Assert
        assert await session.is_server_down() is False

        responses["GenSeed"] = RpcCallError(grpc.StatusCode.UNIMPLEMENTED, "")
        assert await session.is_server_down() is False

        responses["GenSeed"] = RpcCallError(grpc.StatusCode.UNAVAILABLE, "")
        assert await session.is_server_down() is True

    async def test_custom_detector_replaces_default(self, handle_factory):
        # Arrange
        class AlwaysAbsent(ServiceDetector):
            async def probe(self, handle):
                return ServiceStatus.ABSENT

        session = DaemonSession(
            handle_factory=handle_factory,
            detectors={SessionMode.BOOTSTRAP: AlwaysAbsent()},
        )

        # Act & Assert
        assert await session.get_remote_service() is SessionMode.FULL
        assert handle_factory.created[0].calls == []


# ============================================================================
# Tests: Calls
# ============================================================================


class TestCalls:
    """Tests for mode-gated pass-through calls."""

    async def test_call_bootstrap_sends_no_metadata(self, session, handle_factory):
        # Arrange
        handle_factory.responses[BOOTSTRAP_SERVICE]["GenSeed"] = {"cipher_seed_mnemonic": ["abandon"]}

        # Act
        result = await session.call_bootstrap("GenSeed", {})

        # Assert
        assert result == {"cipher_seed_mnemonic": ["abandon"]}
        assert handle_factory.created[0].calls == [("GenSeed", {}, None)]

    async def test_call_full_sends_macaroon(self, session, handle_factory):
        # Arrange
        await session.to_full()
        handle_factory.responses[FULL_SERVICE]["GetInfo"] = {"alias": "alice"}

        # Act
        result = await session.call_full("GetInfo", {})

        # Assert
        assert result == {"alias": "alice"}
        assert handle_factory.last(FULL_SERVICE).calls == [("GetInfo", {}, (("macaroon", MACAROON),))]

    async def test_full_call_in_bootstrap_mode_is_rejected(self, session, handle_factory):
        # Act & Assert
        with pytest.raises(PreconditionError, match="requires full mode.*to_full"):
            await session.call_full("GetInfo", {}, "get_info")
        assert handle_factory.created[0].calls == []

    async def test_bootstrap_call_in_full_mode_is_rejected(self, session, handle_factory):
        # Arrange
        await session.to_full()

        # Act & Assert
        with pytest.raises(PreconditionError, match="unlock requires bootstrap mode"):
            await session.call_bootstrap("UnlockWallet", {}, "unlock")
        assert handle_factory.last(FULL_SERVICE).calls == []

    async def test_rpc_errors_propagate(self, session, handle_factory):
        # Arrange
        await session.to_full()
        handle_factory.responses[FULL_SERVICE]["GetInfo"] = RpcCallError(
            grpc.StatusCode.PERMISSION_DENIED, "permission denied"
        )

        # Act & Assert
        with pytest.raises(RpcCallError) as exc_info:
            await session.call_full("GetInfo", {})
        assert exc_info.value.code == grpc.StatusCode.PERMISSION_DENIED


# ============================================================================
# Tests: Lifecycle
# ============================================================================


class TestLifecycle:
    """Tests for close and async context manager use."""

    async def test_close_releases_handle(self, session, handle_factory):
        # Act
        await session.close()

        # Assert
        assert handle_factory.live() == []
        assert session.is_broken()

    async def test_close_is_idempotent(self, session):
        await session.close()
        await session.close()

        assert session.is_broken()

    async def test_closed_session_can_reconnect(self, session, handle_factory):
        # Arrange
        await session.close()

        # Act
        await session.to_full()

        # Assert
        assert session.is_full()
        assert len(handle_factory.live()) == 1

    async def test_context_manager_closes(self, handle_factory):
        # Act
        async with DaemonSession(handle_factory=handle_factory) as session:
            await session.to_full()

        # Assert
        assert handle_factory.live() == []
