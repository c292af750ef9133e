"""Shared fixtures: scripted connection handles and a recording sleep.

FakeHandle stands in for a gRPC channel. Readiness and call outcomes are
scripted per service so tests can play the daemon swapping listeners.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any

import pytest
from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.x509.oid import NameOID

from lnd_session.config import ReconnectConfig
from lnd_session.constants import BOOTSTRAP_SERVICE, FULL_SERVICE
from lnd_session.transport.handle import RpcHandle


class FakeHandle(RpcHandle):
    """RpcHandle with scripted readiness and responses.

    Attributes:
        ready_after: Number of failed readiness checks before success (None = never ready).
        responses: Method -> response dict, or exception to raise.
        calls: Recorded (method, request, metadata) tuples.
        ready_checks: Number of check_ready calls.
    """

    def __init__(
        self,
        service: str,
        endpoint: str,
        *,
        ready_after: int | None = 0,
        responses: dict[str, Any] | None = None,
        factory: "FakeHandleFactory | None" = None,
    ) -> None:
        super().__init__(service, endpoint)
        self.ready_after = ready_after
        self.responses = responses if responses is not None else {}
        self.calls: list[tuple[str, dict[str, Any], Any]] = []
        self.ready_checks = 0
        self.closed = False
        self._factory = factory

    async def check_ready(self, timeout: float) -> None:
        self.ready_checks += 1
        if self.closed:
            raise ConnectionError("closed")
        if self.ready_after is None or self.ready_checks <= self.ready_after:
            raise TimeoutError(f"not ready after {timeout}s")

    async def call(self, method, request, metadata=None, timeout=None):
        if self.closed:
            raise ConnectionError("closed")
        self.calls.append((method, request, metadata))
        outcome = self.responses.get(method, {})
        if isinstance(outcome, BaseException):
            raise outcome
        return dict(outcome)

    async def close(self) -> None:
        self.closed = True
        if self._factory is not None:
            self._factory.check_single_live_handle()


class FakeHandleFactory:
    """HandleFactory producing FakeHandles configured per service.

    Tracks every handle it created and asserts, after each close and
    creation, that no two handles are live at once.
    """

    def __init__(self) -> None:
        self.created: list[FakeHandle] = []
        self.ready_after: dict[str, int | None] = {BOOTSTRAP_SERVICE: 0, FULL_SERVICE: 0}
        self.responses: dict[str, dict[str, Any]] = {BOOTSTRAP_SERVICE: {}, FULL_SERVICE: {}}
        self.max_live = 0

    def __call__(self, service: str, endpoint: str, credentials: Any) -> FakeHandle:
        handle = FakeHandle(
            service,
            endpoint,
            ready_after=self.ready_after[service],
            responses=self.responses[service],
            factory=self,
        )
        self.created.append(handle)
        self.check_single_live_handle()
        return handle

    def live(self) -> list[FakeHandle]:
        return [handle for handle in self.created if not handle.closed]

    def check_single_live_handle(self) -> None:
        live = len(self.live())
        self.max_live = max(self.max_live, live)
        assert live <= 1, f"{live} live handles"

    def last(self, service: str) -> FakeHandle:
        return [handle for handle in self.created if handle.service == service][-1]


class SleepRecorder:
    """Async sleep replacement recording requested delays."""

    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)

    @property
    def total(self) -> float:
        return sum(self.delays)


@pytest.fixture
def handle_factory() -> FakeHandleFactory:
    return FakeHandleFactory()


@pytest.fixture
def sleep() -> SleepRecorder:
    return SleepRecorder()


@pytest.fixture
def fast_reconnect() -> ReconnectConfig:
    """Small retry budget so failing transitions stay quick to reason about."""
    return ReconnectConfig(ready_timeout_seconds=0.5, retry_delay_seconds=0.5, max_retries=3)


@pytest.fixture
def make_handle():
    """Build standalone FakeHandles: make_handle(ready_after=..., responses=...)."""

    def _make(service: str = FULL_SERVICE, endpoint: str = "127.0.0.1:10009", **kwargs: Any) -> FakeHandle:
        return FakeHandle(service, endpoint, **kwargs)

    return _make


@pytest.fixture
def make_cert_pem():
    """Build a self-signed PEM certificate: make_cert_pem(days_valid=365)."""

    def _make(days_valid: int = 365) -> str:
        key = ec.generate_private_key(ec.SECP256R1())
        name = x509.Name([x509.NameAttribute(NameOID.ORGANIZATION_NAME, "lnd autogenerated cert")])
        now = datetime.now(timezone.utc)
        not_after = now + timedelta(days=days_valid)
        cert = (
            x509.CertificateBuilder()
            .subject_name(name)
            .issuer_name(name)
            .public_key(key.public_key())
            .serial_number(x509.random_serial_number())
            .not_valid_before(min(now, not_after) - timedelta(days=1))
            .not_valid_after(not_after)
            .sign(key, hashes.SHA256())
        )
        return cert.public_bytes(serialization.Encoding.PEM).decode("utf-8")

    return _make
