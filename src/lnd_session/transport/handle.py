"""Connection handles bound to one gRPC service on one endpoint.

A handle is the only object that talks to the network. The session owns
exactly one at a time and swaps it when the daemon rolls over from the
WalletUnlocker listener to the Lightning listener.

GrpcHandle creates its grpc.aio channel lazily on first use so that a session
can be constructed outside a running event loop.
"""

from __future__ import annotations

__all__ = [
    "GrpcHandle",
    "HandleFactory",
    "Metadata",
    "RpcHandle",
    "create_grpc_handle",
]

import asyncio
from abc import ABC, abstractmethod
from collections.abc import Callable, Sequence
from typing import TYPE_CHECKING, Any

import grpc
import grpc.aio

from lnd_session.exceptions import RpcCallError, ValidationError

if TYPE_CHECKING:
    from lnd_session.transport.codec import MessageCodec

Metadata = Sequence[tuple[str, str]]


class RpcHandle(ABC):
    """A live connection bound to one remote service.

    Attributes:
        service: Fully qualified service name (e.g. "lnrpc.Lightning").
        endpoint: Daemon address as host:port.
    """

    def __init__(self, service: str, endpoint: str) -> None:
        self.service = service
        self.endpoint = endpoint

    @abstractmethod
    async def check_ready(self, timeout: float) -> None:
        """Wait until the underlying transport is connected.

        Args:
            timeout: Maximum seconds to wait.

        Raises:
            TimeoutError: If not ready within timeout.
            ConnectionError: If the transport failed.
        """

    @abstractmethod
    async def call(
        self,
        method: str,
        request: dict[str, Any],
        metadata: Metadata | None = None,
        timeout: float | None = None,
    ) -> dict[str, Any]:
        """Perform one unary call against this handle's service.

        Args:
            method: Method name within the service (e.g. "GetInfo").
            request: Request payload keyed by proto field name.
            metadata: Optional call metadata.
            timeout: Optional deadline in seconds.

        Returns:
            Response payload keyed by proto field name.

        Raises:
            RpcCallError: If the call fails with a gRPC status.
        """

    @abstractmethod
    async def close(self) -> None:
        """Close the handle and release the underlying transport."""

    def method_path(self, method: str) -> str:
        """Full gRPC method path for a method of this service."""
        return f"/{self.service}/{method}"

    def __repr__(self) -> str:
        return f"{type(self).__name__}(service={self.service!r}, endpoint={self.endpoint!r})"


HandleFactory = Callable[[str, str, "grpc.ChannelCredentials"], RpcHandle]


class GrpcHandle(RpcHandle):
    """RpcHandle over a grpc.aio secure channel."""

    def __init__(
        self,
        service: str,
        endpoint: str,
        credentials: grpc.ChannelCredentials,
        codec: "MessageCodec",
        options: Sequence[tuple[str, Any]] | None = None,
    ) -> None:
        if credentials is None:
            raise ValidationError(f"GrpcHandle for {service} at {endpoint} requires TLS channel credentials")
        super().__init__(service, endpoint)
        self._credentials = credentials
        self._codec = codec
        self._options = list(options or [])
        self._channel: grpc.aio.Channel | None = None
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def _get_channel(self) -> grpc.aio.Channel:
        if self._closed:
            raise ConnectionError(f"Handle for {self.service} at {self.endpoint} is closed")
        if self._channel is None:
            self._channel = grpc.aio.secure_channel(self.endpoint, self._credentials, options=self._options)
        return self._channel

    async def check_ready(self, timeout: float) -> None:
        channel = self._get_channel()
        try:
            await asyncio.wait_for(channel.channel_ready(), timeout=timeout)
        except asyncio.TimeoutError as e:
            raise TimeoutError(f"Channel to {self.endpoint} not ready after {timeout}s") from e

    async def call(
        self,
        method: str,
        request: dict[str, Any],
        metadata: Metadata | None = None,
        timeout: float | None = None,
    ) -> dict[str, Any]:
        path = self.method_path(method)
        multicallable = self._get_channel().unary_unary(
            path,
            request_serializer=lambda payload: self._codec.encode(method, payload),
            response_deserializer=lambda data: self._codec.decode(method, data),
        )
        try:
            return await multicallable(request, metadata=tuple(metadata or ()), timeout=timeout)
        except grpc.aio.AioRpcError as e:
            raise RpcCallError(e.code(), e.details() or "", method=path) from e

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        if self._channel is not None:
            await self._channel.close()
            self._channel = None


def create_grpc_handle(codec: "MessageCodec") -> HandleFactory:
    """Create a handle factory producing GrpcHandle instances.

    Args:
        codec: Codec shared by every handle the factory creates.

    Returns:
        Factory callable (service, endpoint, credentials) -> GrpcHandle.
    """

    def factory(service: str, endpoint: str, credentials: grpc.ChannelCredentials) -> RpcHandle:
        return GrpcHandle(service, endpoint, credentials, codec)

    return factory
