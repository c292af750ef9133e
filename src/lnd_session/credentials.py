"""TLS and macaroon credentials for LND connections.

LND authenticates clients with its self-signed TLS certificate (tls.cert) for
the channel and a macaroon, sent as hex in the "macaroon" metadata entry on
every Lightning call. WalletUnlocker calls need no macaroon.

Macaroons can be read from disk or kept in the OS keychain so config files
only hold a reference key.
"""

from __future__ import annotations

__all__ = [
    "MacaroonStorage",
    "check_certificate_expiry",
    "create_channel_credentials",
    "normalize_tls_cert",
    "read_macaroon_hex",
    "read_tls_cert",
]

import logging
import re
from datetime import datetime, timezone
from pathlib import Path

import grpc
from cryptography import x509

from lnd_session.constants import APP_NAME, CERT_EXPIRY_CRITICAL_DAYS, CERT_EXPIRY_WARNING_DAYS
from lnd_session.utils.file_helpers import require_file_exists

logger = logging.getLogger(__name__)

_PEM_BEGIN = "-----BEGIN CERTIFICATE-----"
_PEM_END = "-----END CERTIFICATE-----"

# Service name for keyring storage
KEYRING_SERVICE = APP_NAME


# =============================================================================
# TLS Certificate
# =============================================================================


def normalize_tls_cert(cert_text: str) -> str:
    """Normalize a PEM certificate that may have lost its line breaks.

    Certificates pasted into env vars or JSON often arrive on a single line.
    All CR/LF characters are removed, then the BEGIN/END markers are put back
    on their own lines.

    Args:
        cert_text: PEM text, with or without line breaks.

    Returns:
        PEM text with the markers on separate lines.
    """
    text = re.sub(r"[\r\n]", "", cert_text)
    text = text.replace(_PEM_BEGIN, _PEM_BEGIN + "\n")
    text = text.replace(_PEM_END, "\n" + _PEM_END)
    return text


def read_tls_cert(cert_path: str | Path) -> str:
    """Read and normalize a PEM certificate file.

    Args:
        cert_path: Path to tls.cert (user home is expanded).

    Returns:
        Normalized PEM text.

    Raises:
        FileNotFoundError: If the file doesn't exist.
    """
    path = Path(cert_path).expanduser()
    require_file_exists(path, file_type="TLS certificate")
    return normalize_tls_cert(path.read_text(encoding="utf-8"))


def check_certificate_expiry(cert_pem: str | bytes) -> int | None:
    """Check if certificate is expired or expiring soon.

    Logs a warning if the certificate expires within CERT_EXPIRY_WARNING_DAYS
    and a critical message within CERT_EXPIRY_CRITICAL_DAYS.

    Args:
        cert_pem: PEM certificate.

    Returns:
        Days until expiry, or None if the certificate could not be parsed.

    Raises:
        ValueError: If the certificate has already expired.
    """
    data = cert_pem.encode("utf-8") if isinstance(cert_pem, str) else cert_pem
    try:
        cert = x509.load_pem_x509_certificate(data)
    except ValueError as e:
        logger.warning("Could not parse TLS certificate for expiry check: %s", e)
        return None

    now = datetime.now(timezone.utc)
    expires_at = cert.not_valid_after_utc
    days_until_expiry = (expires_at - now).days

    if expires_at <= now:
        raise ValueError(
            f"LND TLS certificate has expired (expired {-days_until_expiry} days ago, "
            f"on {expires_at:%Y-%m-%d}). Delete tls.cert/tls.key and restart lnd to regenerate."
        )

    if days_until_expiry <= CERT_EXPIRY_CRITICAL_DAYS:
        logger.critical(
            "LND TLS certificate expires in %d days (on %s). Regenerate it now.",
            days_until_expiry,
            expires_at.strftime("%Y-%m-%d"),
        )
    elif days_until_expiry <= CERT_EXPIRY_WARNING_DAYS:
        logger.warning(
            "LND TLS certificate expires in %d days (on %s).",
            days_until_expiry,
            expires_at.strftime("%Y-%m-%d"),
        )

    return days_until_expiry


def create_channel_credentials(cert_pem: str) -> grpc.ChannelCredentials:
    """Build gRPC channel credentials trusting the given certificate.

    Args:
        cert_pem: Normalized PEM certificate.

    Returns:
        grpc.ChannelCredentials for grpc.aio.secure_channel.
    """
    return grpc.ssl_channel_credentials(root_certificates=cert_pem.encode("utf-8"))


# =============================================================================
# Macaroon
# =============================================================================


def read_macaroon_hex(macaroon_path: str | Path) -> str:
    """Read a binary macaroon file and return it hex-encoded.

    Args:
        macaroon_path: Path to the macaroon (user home is expanded).

    Returns:
        Lowercase hex string.

    Raises:
        FileNotFoundError: If the file doesn't exist.
    """
    path = Path(macaroon_path).expanduser()
    require_file_exists(path, file_type="macaroon")
    return path.read_bytes().hex()


class MacaroonStorage:
    """Macaroon storage in the OS keychain.

    Config files contain only a reference key, never the macaroon itself.

    Usage:
        storage = MacaroonStorage("node:alice:admin")
        storage.save(read_macaroon_hex("~/.lnd/admin.macaroon"))
        macaroon_hex = storage.load()
    """

    def __init__(self, credential_key: str) -> None:
        """Initialize storage for one keychain entry.

        Args:
            credential_key: Keychain username under the lnd-session service.
        """
        self._service = KEYRING_SERVICE
        self._username = credential_key

    @property
    def credential_key(self) -> str:
        return self._username

    def save(self, macaroon_hex: str) -> None:
        """Save macaroon hex to keychain.

        Raises:
            ValueError: If the value is not hex.
            RuntimeError: If keychain access fails.
        """
        import keyring
        from keyring.errors import KeyringError

        try:
            bytes.fromhex(macaroon_hex)
        except ValueError as e:
            raise ValueError(f"Macaroon must be hex-encoded: {e}") from e

        try:
            keyring.set_password(self._service, self._username, macaroon_hex)
        except KeyringError as e:
            raise RuntimeError(f"Failed to save macaroon to keychain: {e}") from e

    def load(self) -> str | None:
        """Load macaroon hex from keychain.

        Returns:
            The stored macaroon hex, or None if not found.

        Raises:
            RuntimeError: If keychain access fails.
        """
        import keyring
        from keyring.errors import KeyringError

        try:
            return keyring.get_password(self._service, self._username)
        except KeyringError as e:
            raise RuntimeError(f"Failed to access keychain: {e}") from e

    def delete(self) -> None:
        """Delete macaroon from keychain. Missing entries are ignored.

        Raises:
            RuntimeError: If keychain access fails.
        """
        import keyring
        from keyring.errors import KeyringError, PasswordDeleteError

        try:
            keyring.delete_password(self._service, self._username)
        except PasswordDeleteError:
            pass
        except KeyringError as e:
            raise RuntimeError(f"Failed to delete macaroon from keychain: {e}") from e

    def exists(self) -> bool:
        import keyring
        from keyring.errors import KeyringError

        try:
            return keyring.get_password(self._service, self._username) is not None
        except KeyringError:
            return False
