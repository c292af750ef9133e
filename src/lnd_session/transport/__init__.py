"""Transport layer: connection handles, wire codec, readiness and service detection."""

from lnd_session.transport.codec import LND_MESSAGE_TYPES, MessageCodec, ProtobufCodec
from lnd_session.transport.detection import (
    RpcServiceDetector,
    ServiceDetector,
    ServiceStatus,
    classify_rpc_error,
)
from lnd_session.transport.handle import (
    GrpcHandle,
    HandleFactory,
    Metadata,
    RpcHandle,
    create_grpc_handle,
)
from lnd_session.transport.readiness import await_connection, probe_ready

__all__ = [
    "GrpcHandle",
    "HandleFactory",
    "LND_MESSAGE_TYPES",
    "MessageCodec",
    "Metadata",
    "ProtobufCodec",
    "RpcHandle",
    "RpcServiceDetector",
    "ServiceDetector",
    "ServiceStatus",
    "await_connection",
    "classify_rpc_error",
    "create_grpc_handle",
    "probe_ready",
]
