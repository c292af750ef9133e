"""Application-wide constants for lnd-session.

Constants that define session behavior.
For user-configurable settings per deployment, see config.py.
"""

__all__ = [
    # Application identity
    "APP_NAME",
    # Daemon endpoint
    "DEFAULT_ENDPOINT",
    # gRPC services
    "BOOTSTRAP_SERVICE",
    "FULL_SERVICE",
    "BOOTSTRAP_PROBE_METHOD",
    "FULL_PROBE_METHOD",
    "MACAROON_METADATA_KEY",
    # Reconnect loop
    "DEFAULT_READY_TIMEOUT_SECONDS",
    "DEFAULT_RETRY_DELAY_SECONDS",
    "DEFAULT_MAX_RETRIES",
    "DEFAULT_CALL_TIMEOUT_SECONDS",
    # Bootstrap operations
    "DEFAULT_AEZEED_PASSPHRASE",
    # Messages
    "CONNECTION_ERROR_MESSAGE",
    "CONNECTION_TIMEOUT_MESSAGE",
    # TLS certificate monitoring
    "CERT_EXPIRY_WARNING_DAYS",
    "CERT_EXPIRY_CRITICAL_DAYS",
]

# ============================================================================
# Application Identity
# ============================================================================

# Application name used for directory names, logger names, keyring service
APP_NAME: str = "lnd-session"

# ============================================================================
# Daemon Endpoint
# ============================================================================

# LND's default gRPC listener
DEFAULT_ENDPOINT: str = "127.0.0.1:10009"

# ============================================================================
# gRPC Services
# ============================================================================

# Served while the wallet is locked (create / restore / unlock / change password)
BOOTSTRAP_SERVICE: str = "lnrpc.WalletUnlocker"

# Served once the wallet is unlocked. LND binds a new listener for it.
FULL_SERVICE: str = "lnrpc.Lightning"

# Cheap probe calls used by service detection, one per service.
# GenSeed only derives a mnemonic, nothing is persisted.
BOOTSTRAP_PROBE_METHOD: str = "GenSeed"
FULL_PROBE_METHOD: str = "GetInfo"

# Metadata key carrying the hex-encoded macaroon on Lightning calls
MACAROON_METADATA_KEY: str = "macaroon"

# ============================================================================
# Reconnect Loop
# ============================================================================

# 40 retries x (500ms readiness wait + 500ms delay) ~= 20-40s worst case
DEFAULT_READY_TIMEOUT_SECONDS: float = 0.5
DEFAULT_RETRY_DELAY_SECONDS: float = 0.5
DEFAULT_MAX_RETRIES: int = 40

# Per-call deadline for pass-through RPCs (None = no deadline)
DEFAULT_CALL_TIMEOUT_SECONDS: float | None = None

# ============================================================================
# Bootstrap Operations
# ============================================================================

# LND's default cipher seed passphrase
DEFAULT_AEZEED_PASSPHRASE: str = "aezeed"

# ============================================================================
# Messages
# ============================================================================

CONNECTION_ERROR_MESSAGE: str = (
    "Connection Failed: Check if LND is running and gRPC is listening on the correct port."
)
CONNECTION_TIMEOUT_MESSAGE: str = "Couldn't connect to the gRPC server."

# ============================================================================
# TLS Certificate Monitoring
# ============================================================================

# Certificate expiry warning thresholds (days)
CERT_EXPIRY_WARNING_DAYS: int = 14  # Warning if expires within 14 days
CERT_EXPIRY_CRITICAL_DAYS: int = 7  # Critical warning if expires within 7 days
