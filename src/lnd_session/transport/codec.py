"""Wire codec between request/response dicts and protobuf bytes.

The session works with plain dicts keyed by proto field names. The codec
turns them into serialized protobuf messages using classes from the caller's
generated rpc_pb2 module, so this package does not ship LND's schema.

Example:
    import rpc_pb2  # generated from lnd's rpc.proto
    codec = ProtobufCodec.from_module(rpc_pb2)
"""

from __future__ import annotations

__all__ = [
    "LND_MESSAGE_TYPES",
    "MessageCodec",
    "ProtobufCodec",
]

import base64
from types import ModuleType
from typing import Any, Protocol

from google.protobuf import json_format
from google.protobuf.message import DecodeError, Message

from lnd_session.exceptions import ValidationError

# Method name -> (request message, response message) in lnrpc's rpc.proto
LND_MESSAGE_TYPES: dict[str, tuple[str, str]] = {
    # WalletUnlocker
    "GenSeed": ("GenSeedRequest", "GenSeedResponse"),
    "InitWallet": ("InitWalletRequest", "InitWalletResponse"),
    "UnlockWallet": ("UnlockWalletRequest", "UnlockWalletResponse"),
    "ChangePassword": ("ChangePasswordRequest", "ChangePasswordResponse"),
    # Lightning
    "GetInfo": ("GetInfoRequest", "GetInfoResponse"),
    "ListChannels": ("ListChannelsRequest", "ListChannelsResponse"),
    "ChannelBalance": ("ChannelBalanceRequest", "ChannelBalanceResponse"),
    "WalletBalance": ("WalletBalanceRequest", "WalletBalanceResponse"),
    "NewAddress": ("NewAddressRequest", "NewAddressResponse"),
    "OpenChannelSync": ("OpenChannelRequest", "ChannelPoint"),
    "SendPaymentSync": ("SendRequest", "SendResponse"),
    "AddInvoice": ("Invoice", "AddInvoiceResponse"),
    "LookupInvoice": ("PaymentHash", "Invoice"),
    "DecodePayReq": ("PayReqString", "PayReq"),
    "StopDaemon": ("StopRequest", "StopResponse"),
}


class MessageCodec(Protocol):
    """Converts payload dicts to wire bytes and back, per method."""

    def encode(self, method: str, payload: dict[str, Any]) -> bytes: ...

    def decode(self, method: str, data: bytes) -> dict[str, Any]: ...


def _to_json_value(value: Any) -> Any:
    """Convert a payload value into the proto3 JSON mapping.

    bytes become base64 strings; containers are converted recursively.
    """
    if isinstance(value, (bytes, bytearray)):
        return base64.b64encode(bytes(value)).decode("ascii")
    if isinstance(value, dict):
        return {key: _to_json_value(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [_to_json_value(item) for item in value]
    return value


class ProtobufCodec:
    """MessageCodec backed by generated protobuf classes.

    Attributes:
        message_types: Method name -> (request class, response class).
    """

    def __init__(self, message_types: dict[str, tuple[type[Message], type[Message]]]) -> None:
        self.message_types = dict(message_types)

    @classmethod
    def from_module(
        cls,
        module: ModuleType,
        table: dict[str, tuple[str, str]] | None = None,
    ) -> "ProtobufCodec":
        """Build a codec by resolving message names in a generated module.

        Methods whose messages are missing from the module are skipped, so an
        older rpc_pb2 still works for the calls it does define.

        Args:
            module: Generated *_pb2 module.
            table: Method -> (request name, response name). Defaults to LND_MESSAGE_TYPES.

        Returns:
            ProtobufCodec for every resolvable method.
        """
        message_types: dict[str, tuple[type[Message], type[Message]]] = {}
        for method, (request_name, response_name) in (table or LND_MESSAGE_TYPES).items():
            request_cls = getattr(module, request_name, None)
            response_cls = getattr(module, response_name, None)
            if request_cls is None or response_cls is None:
                continue
            message_types[method] = (request_cls, response_cls)
        return cls(message_types)

    def _types_for(self, method: str) -> tuple[type[Message], type[Message]]:
        try:
            return self.message_types[method]
        except KeyError:
            raise ValidationError(f"No message types registered for method {method!r}") from None

    def encode(self, method: str, payload: dict[str, Any]) -> bytes:
        request_cls, _ = self._types_for(method)
        try:
            message = json_format.ParseDict(_to_json_value(payload), request_cls())
        except json_format.ParseError as e:
            raise ValidationError(f"Invalid {method} request: {e}") from e
        return message.SerializeToString()

    def decode(self, method: str, data: bytes) -> dict[str, Any]:
        _, response_cls = self._types_for(method)
        try:
            message = response_cls.FromString(data)
        except DecodeError as e:
            raise ValueError(f"Malformed {method} response: {e}") from e
        return json_format.MessageToDict(message, preserving_proto_field_name=True)
