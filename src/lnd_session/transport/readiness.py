"""Connection readiness probe and reconnect loop.

LND closes the WalletUnlocker listener and binds a new one for the Lightning
service after unlock. Building a new handle does not mean the handshake with
the new listener has finished, so every transition waits here first.

Retry cadence is fixed (no backoff): one bounded readiness wait, then a fixed
delay, until the retry budget runs out.
"""

from __future__ import annotations

__all__ = [
    "await_connection",
    "probe_ready",
]

import asyncio
from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING

from lnd_session.constants import (
    CONNECTION_TIMEOUT_MESSAGE,
    DEFAULT_MAX_RETRIES,
    DEFAULT_READY_TIMEOUT_SECONDS,
    DEFAULT_RETRY_DELAY_SECONDS,
)
from lnd_session.exceptions import ConnectionTimeoutError, RpcCallError
from lnd_session.telemetry.system_logger import get_system_logger

if TYPE_CHECKING:
    from lnd_session.transport.handle import RpcHandle

# Errors that mean "not ready yet" rather than a bug in the caller
_NOT_READY_ERRORS: tuple[type[BaseException], ...] = (
    TimeoutError,
    OSError,  # includes ConnectionError
    RpcCallError,
)

_logger = get_system_logger()


async def probe_ready(handle: "RpcHandle", timeout: float = DEFAULT_READY_TIMEOUT_SECONDS) -> bool:
    """Check once whether a handle's transport is ready.

    Args:
        handle: Handle to check.
        timeout: Maximum seconds to wait for readiness.

    Returns:
        True if ready within timeout, False on timeout or any transport error.
    """
    try:
        await handle.check_ready(timeout)
    except _NOT_READY_ERRORS as e:
        _logger.debug(
            {
                "event": "ready_probe_failed",
                "endpoint": handle.endpoint,
                "service": handle.service,
                "error_type": type(e).__name__,
                "message": f"{handle.service} at {handle.endpoint} not ready: {e}",
            }
        )
        return False
    return True


async def await_connection(
    handle: "RpcHandle",
    max_retries: int = DEFAULT_MAX_RETRIES,
    *,
    ready_timeout: float = DEFAULT_READY_TIMEOUT_SECONDS,
    retry_delay: float = DEFAULT_RETRY_DELAY_SECONDS,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> None:
    """Probe a handle until it is ready or the retry budget is spent.

    Performs at most max_retries + 1 probes with max_retries delays between them.

    Args:
        handle: Handle to wait for.
        max_retries: Retries after the first probe (default: 40).
        ready_timeout: Per-probe readiness timeout in seconds (default: 0.5).
        retry_delay: Delay between probes in seconds (default: 0.5).
        sleep: Coroutine used for the delay (injectable for tests).

    Raises:
        ConnectionTimeoutError: If the handle never became ready.
    """
    retries = 0
    while not await probe_ready(handle, ready_timeout):
        if retries >= max_retries:
            _logger.error(
                {
                    "event": "reconnect_exhausted",
                    "endpoint": handle.endpoint,
                    "service": handle.service,
                    "attempts": retries + 1,
                    "message": f"{handle.service} at {handle.endpoint} not ready after {retries + 1} attempts",
                }
            )
            raise ConnectionTimeoutError(
                CONNECTION_TIMEOUT_MESSAGE,
                endpoint=handle.endpoint,
                attempts=retries + 1,
            )
        if retries == 0:
            _logger.info(
                {
                    "event": "reconnect_waiting",
                    "endpoint": handle.endpoint,
                    "service": handle.service,
                    "message": f"Waiting for {handle.service} at {handle.endpoint} (up to {max_retries} retries)...",
                }
            )
        await sleep(retry_delay)
        retries += 1

    if retries > 0:
        _logger.info(
            {
                "event": "reconnect_succeeded",
                "endpoint": handle.endpoint,
                "service": handle.service,
                "attempts": retries + 1,
                "message": f"Connected to {handle.service} on attempt {retries + 1}",
            }
        )
