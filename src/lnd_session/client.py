"""Mode-gated LND client built on DaemonSession.

WalletUnlocker helpers (create, restore, unlock, change_password) run in
BOOTSTRAP mode and switch the session to FULL afterwards: LND shuts the
unlocker listener down once the wallet is open, so the caller would have to
reconnect anyway.

Lightning calls run in FULL mode only. Each one checks the mode and its
arguments before touching the network.
"""

from __future__ import annotations

__all__ = ["LightningClient"]

import re
from pathlib import Path
from typing import TYPE_CHECKING, Any

from lnd_session.config import AppConfig
from lnd_session.constants import DEFAULT_AEZEED_PASSPHRASE, DEFAULT_ENDPOINT
from lnd_session.credentials import (
    MacaroonStorage,
    check_certificate_expiry,
    create_channel_credentials,
    normalize_tls_cert,
    read_macaroon_hex,
    read_tls_cert,
)
from lnd_session.exceptions import ConfigurationError, ConnectionTimeoutError, ValidationError
from lnd_session.session import DaemonSession, SessionMode
from lnd_session.telemetry.system_logger import configure_logging

if TYPE_CHECKING:
    from lnd_session.transport.codec import MessageCodec

# NewAddress address types accepted by name, mapped to lnrpc.AddressType
ADDRESS_TYPES: dict[str, int] = {
    "p2wkh": 0,  # WITNESS_PUBKEY_HASH
    "np2wkh": 1,  # NESTED_PUBKEY_HASH
}
DEFAULT_ADDRESS_TYPE = "np2wkh"


def _require(value: Any, message: str) -> None:
    if not value:
        raise ValidationError(message)


def _utf8(value: str) -> bytes:
    return value.encode("utf-8")


class LightningClient(DaemonSession):
    """LND client exposing WalletUnlocker and Lightning operations.

    Usage:
        client = LightningClient.from_file_paths(
            "~/.lnd/tls.cert",
            "~/.lnd/data/chain/bitcoin/mainnet/admin.macaroon",
            codec=ProtobufCodec.from_module(rpc_pb2),
        )
        await client.wait_for_ready()
        await client.unlock("wallet password")  # now in FULL mode
        info = await client.get_info()
    """

    # -------------------------------------------------------------------------
    # Construction
    # -------------------------------------------------------------------------

    @classmethod
    def from_strings(
        cls,
        tls_cert: str,
        macaroon_hex: str,
        endpoint: str = DEFAULT_ENDPOINT,
        **kwargs: Any,
    ) -> "LightningClient":
        """Create a client from a PEM certificate and a hex macaroon.

        Args:
            tls_cert: PEM certificate, line breaks optional.
            macaroon_hex: Hex-encoded macaroon.
            endpoint: Daemon gRPC address.
            **kwargs: Passed to DaemonSession (codec, handle_factory, reconnect, ...).
        """
        cert_pem = normalize_tls_cert(tls_cert)
        return cls(endpoint, create_channel_credentials(cert_pem), macaroon_hex, **kwargs)

    @classmethod
    def from_file_paths(
        cls,
        tls_cert_path: str | Path,
        macaroon_path: str | Path,
        endpoint: str = DEFAULT_ENDPOINT,
        **kwargs: Any,
    ) -> "LightningClient":
        """Create a client from tls.cert and macaroon files.

        Logs a warning when the certificate is close to expiry.

        Raises:
            FileNotFoundError: If either file is missing.
            ValueError: If the certificate has expired.
        """
        cert_pem = read_tls_cert(tls_cert_path)
        check_certificate_expiry(cert_pem)
        macaroon_hex = read_macaroon_hex(macaroon_path)
        return cls(endpoint, create_channel_credentials(cert_pem), macaroon_hex, **kwargs)

    @classmethod
    def from_config(cls, config: AppConfig, codec: "MessageCodec | None" = None, **kwargs: Any) -> "LightningClient":
        """Create a client from application configuration.

        Raises:
            ConfigurationError: If the macaroon cannot be found.
            FileNotFoundError: If the certificate or macaroon file is missing.
        """
        configure_logging(config.logging.log_dir, config.logging.log_level)
        node = config.node
        cert_pem = read_tls_cert(node.tls_cert_path)
        check_certificate_expiry(cert_pem)

        if node.macaroon_path is not None:
            macaroon_hex = read_macaroon_hex(node.macaroon_path)
        else:
            assert node.macaroon_credential_key is not None  # Guaranteed by NodeConfig validator
            stored = MacaroonStorage(node.macaroon_credential_key).load()
            if stored is None:
                raise ConfigurationError(
                    f"Macaroon not found in keychain (key: {node.macaroon_credential_key})"
                )
            macaroon_hex = stored

        kwargs.setdefault("reconnect", config.reconnect)
        return cls(node.endpoint, create_channel_credentials(cert_pem), macaroon_hex, codec=codec, **kwargs)

    # -------------------------------------------------------------------------
    # WalletUnlocker (BOOTSTRAP mode, switches to FULL when done)
    # -------------------------------------------------------------------------

    async def create(self, wallet_password: str, aezeed_passphrase: str | None = None) -> dict[str, str]:
        """Create a new wallet from a freshly generated seed.

        Args:
            wallet_password: Password protecting the wallet.
            aezeed_passphrase: Optional cipher seed passphrase (default "aezeed").

        Returns:
            {"seed": "<24 mnemonic words separated by spaces>"}

        Raises:
            ConnectionTimeoutError: If the Lightning listener never came up after
                the wallet was created. The wallet exists at that point, so the
                mnemonic is attached to the error as its ``seed`` attribute.
        """
        self._require_mode(SessionMode.BOOTSTRAP, "create")
        _require(wallet_password, "create requires a wallet unlock password")
        if aezeed_passphrase is None:
            aezeed_passphrase = DEFAULT_AEZEED_PASSPHRASE

        await self.wait_for_ready()
        seed = await self.call_bootstrap(
            "GenSeed", {"aezeed_passphrase": _utf8(aezeed_passphrase)}, "create"
        )
        mnemonic = list(seed.get("cipher_seed_mnemonic", []))
        await self.call_bootstrap(
            "InitWallet",
            {
                "wallet_password": _utf8(wallet_password),
                "cipher_seed_mnemonic": mnemonic,
                "aezeed_passphrase": _utf8(aezeed_passphrase),
            },
            "create",
        )
        seed_words = " ".join(mnemonic)
        try:
            await self.to_full()
        except ConnectionTimeoutError as e:
            e.seed = seed_words
            raise
        return {"seed": seed_words}

    async def restore(
        self,
        aezeed: str,
        wallet_password: str,
        aezeed_passphrase: str | None = None,
    ) -> dict[str, Any]:
        """Restore a wallet from an existing mnemonic.

        Args:
            aezeed: Mnemonic words separated by whitespace.
            wallet_password: Password protecting the wallet.
            aezeed_passphrase: Passphrase used when the seed was created.
        """
        self._require_mode(SessionMode.BOOTSTRAP, "restore")
        _require(aezeed, "restore requires aezeed phrase")
        _require(wallet_password, "restore requires a wallet unlock password")
        if aezeed_passphrase is None:
            aezeed_passphrase = DEFAULT_AEZEED_PASSPHRASE

        await self.wait_for_ready()
        result = await self.call_bootstrap(
            "InitWallet",
            {
                "wallet_password": _utf8(wallet_password),
                "cipher_seed_mnemonic": re.split(r"\s+", aezeed.strip()),
                "aezeed_passphrase": _utf8(aezeed_passphrase),
            },
            "restore",
        )
        await self.to_full()
        return result

    async def unlock(self, password: str) -> dict[str, Any]:
        """Unlock an existing wallet."""
        self._require_mode(SessionMode.BOOTSTRAP, "unlock")
        _require(password, "unlock requires password")

        await self.wait_for_ready()
        result = await self.call_bootstrap("UnlockWallet", {"wallet_password": _utf8(password)}, "unlock")
        await self.to_full()
        return result

    async def change_password(self, current_password: str, new_password: str) -> dict[str, Any]:
        """Change the wallet password. LND unlocks the wallet as a side effect."""
        self._require_mode(SessionMode.BOOTSTRAP, "change_password")
        _require(current_password, "change_password requires current_password")
        _require(new_password, "change_password requires new_password")

        await self.wait_for_ready()
        result = await self.call_bootstrap(
            "ChangePassword",
            {
                "current_password": _utf8(current_password),
                "new_password": _utf8(new_password),
            },
            "change_password",
        )
        await self.to_full()
        return result

    # -------------------------------------------------------------------------
    # Lightning helpers (FULL mode)
    # -------------------------------------------------------------------------

    async def send(self, payment_request: str) -> dict[str, Any]:
        """Pay a BOLT11 invoice and attach the daemon's decoding of it.

        The invoice is decoded before paying, so a failed decode never hides
        the result of a payment that went through.
        """
        self._require_mode(SessionMode.FULL, "send")
        decoded = await self.decode_pay_req(payment_request)
        result = await self.send_payment(payment_request)
        result["decoded_pay_req"] = decoded
        return result

    async def open(
        self,
        node_pubkey: str,
        local_funding_amount: int,
        push_sat: int | None = None,
    ) -> dict[str, Any]:
        """Open a channel to a node given its hex pubkey."""
        self._require_mode(SessionMode.FULL, "open")
        return await self.open_channel(
            node_pubkey_string=node_pubkey,
            local_funding_amount=local_funding_amount,
            push_sat=push_sat,
        )

    async def request(self, satoshis: int) -> dict[str, Any]:
        """Create an invoice for an amount in satoshis."""
        self._require_mode(SessionMode.FULL, "request")
        return await self.add_invoice(satoshis)

    async def check(self, r_hash_str: str) -> dict[str, Any]:
        """Look up an invoice by payment hash."""
        self._require_mode(SessionMode.FULL, "check")
        return await self.lookup_invoice(r_hash_str)

    async def channel_bandwidth(self) -> dict[str, int]:
        """Total remote balance across active channels.

        Returns:
            {"bandwidth": <satoshis>}
        """
        self._require_mode(SessionMode.FULL, "channel_bandwidth")
        response = await self.list_channels(active_only=True)
        # int64 fields arrive as strings in the proto3 JSON mapping
        bandwidth = sum(int(channel.get("remote_balance", 0)) for channel in response.get("channels", []))
        return {"bandwidth": bandwidth}

    # -------------------------------------------------------------------------
    # Lightning direct calls (FULL mode)
    # -------------------------------------------------------------------------

    async def get_info(self) -> dict[str, Any]:
        return await self.call_full("GetInfo", {}, "get_info")

    async def list_channels(
        self,
        *,
        active_only: bool = False,
        inactive_only: bool = False,
        public_only: bool = False,
        private_only: bool = False,
    ) -> dict[str, Any]:
        request = {
            key: value
            for key, value in {
                "active_only": active_only,
                "inactive_only": inactive_only,
                "public_only": public_only,
                "private_only": private_only,
            }.items()
            if value
        }
        return await self.call_full("ListChannels", request, "list_channels")

    async def channel_balance(self) -> dict[str, Any]:
        return await self.call_full("ChannelBalance", {}, "channel_balance")

    async def wallet_balance(self) -> dict[str, Any]:
        return await self.call_full("WalletBalance", {}, "wallet_balance")

    async def new_address(self, address_type: str | int = DEFAULT_ADDRESS_TYPE) -> dict[str, Any]:
        """Generate a new on-chain address.

        Args:
            address_type: "p2wkh", "np2wkh" (default) or the matching enum value 0/1.

        Raises:
            ValidationError: For any other address type.
        """
        self._require_mode(SessionMode.FULL, "new_address")
        if isinstance(address_type, bool):
            raise ValidationError("new_address type must be np2wkh or p2wkh")
        if isinstance(address_type, str) and address_type in ADDRESS_TYPES:
            type_value = ADDRESS_TYPES[address_type]
        elif isinstance(address_type, int) and address_type in ADDRESS_TYPES.values():
            type_value = address_type
        else:
            raise ValidationError("new_address type must be np2wkh or p2wkh")
        return await self.call_full("NewAddress", {"type": type_value}, "new_address")

    async def open_channel(
        self,
        *,
        node_pubkey: bytes | None = None,
        node_pubkey_string: str | None = None,
        local_funding_amount: int | None = None,
        push_sat: int | None = None,
        **options: Any,
    ) -> dict[str, Any]:
        """Open a channel and wait for the funding transaction to be published.

        Args:
            node_pubkey: Remote node pubkey as raw bytes.
            node_pubkey_string: Remote node pubkey as hex.
            local_funding_amount: Channel capacity funded locally, in satoshis.
            push_sat: Amount pushed to the remote side on open.
            **options: Other OpenChannelRequest fields (e.g. private, target_conf).

        Returns:
            ChannelPoint.
        """
        self._require_mode(SessionMode.FULL, "open_channel")
        _require(node_pubkey or node_pubkey_string, "open_channel requires node_pubkey or node_pubkey_string")
        _require(local_funding_amount, "open_channel requires local_funding_amount")

        request: dict[str, Any] = {"local_funding_amount": local_funding_amount, **options}
        if node_pubkey is not None:
            request["node_pubkey"] = node_pubkey
        if node_pubkey_string is not None:
            request["node_pubkey_string"] = node_pubkey_string
        if push_sat is not None:
            request["push_sat"] = push_sat
        return await self.call_full("OpenChannelSync", request, "open_channel")

    async def send_payment(self, payment_request: str) -> dict[str, Any]:
        self._require_mode(SessionMode.FULL, "send_payment")
        _require(payment_request, "send_payment requires payment_request")
        return await self.call_full("SendPaymentSync", {"payment_request": payment_request}, "send_payment")

    async def add_invoice(self, value: int, memo: str | None = None, expiry: int | None = None) -> dict[str, Any]:
        self._require_mode(SessionMode.FULL, "add_invoice")
        _require(value, "add_invoice requires value")

        request: dict[str, Any] = {"value": value}
        if memo is not None:
            request["memo"] = memo
        if expiry is not None:
            request["expiry"] = expiry
        return await self.call_full("AddInvoice", request, "add_invoice")

    async def lookup_invoice(self, r_hash_str: str) -> dict[str, Any]:
        self._require_mode(SessionMode.FULL, "lookup_invoice")
        _require(r_hash_str, "lookup_invoice requires r_hash_str")
        return await self.call_full("LookupInvoice", {"r_hash_str": r_hash_str}, "lookup_invoice")

    async def decode_pay_req(self, pay_req: str) -> dict[str, Any]:
        self._require_mode(SessionMode.FULL, "decode_pay_req")
        _require(pay_req, "decode_pay_req requires pay_req")
        return await self.call_full("DecodePayReq", {"pay_req": pay_req}, "decode_pay_req")

    async def stop_daemon(self) -> dict[str, Any]:
        return await self.call_full("StopDaemon", {}, "stop_daemon")
