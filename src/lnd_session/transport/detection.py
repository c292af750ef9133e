"""Service detection by probing.

LND has no gRPC server reflection and never announces that it has swapped the
WalletUnlocker listener for the Lightning one. The only observable signal is
how a call against a specific service fails:

- UNIMPLEMENTED (12): the daemon answered but does not serve this service
- UNAVAILABLE (14): nothing is listening, the daemon is down or restarting
- anything else: the service answered, the error is a business-level error
"""

from __future__ import annotations

__all__ = [
    "RpcServiceDetector",
    "ServiceDetector",
    "ServiceStatus",
    "classify_rpc_error",
]

from abc import ABC, abstractmethod
from enum import Enum
from typing import TYPE_CHECKING, Any

import grpc

from lnd_session.exceptions import RpcCallError
from lnd_session.telemetry.system_logger import get_system_logger

if TYPE_CHECKING:
    from lnd_session.transport.handle import Metadata, RpcHandle

_logger = get_system_logger()


class ServiceStatus(str, Enum):
    """Outcome of probing one service."""

    PRESENT = "present"
    ABSENT = "absent"
    UNREACHABLE = "unreachable"


def classify_rpc_error(error: RpcCallError) -> ServiceStatus:
    """Map a failed probe call to a service status.

    Args:
        error: The error raised by the probe call.

    Returns:
        ABSENT for UNIMPLEMENTED, UNREACHABLE for UNAVAILABLE, PRESENT otherwise.
    """
    if error.code == grpc.StatusCode.UNIMPLEMENTED:
        return ServiceStatus.ABSENT
    if error.code == grpc.StatusCode.UNAVAILABLE:
        return ServiceStatus.UNREACHABLE
    return ServiceStatus.PRESENT


class ServiceDetector(ABC):
    """Strategy that decides whether a handle's service is being served."""

    @abstractmethod
    async def probe(self, handle: "RpcHandle") -> ServiceStatus:
        """Probe the service behind a handle.

        Args:
            handle: Handle bound to the service to test.

        Returns:
            ServiceStatus for that service.
        """


class RpcServiceDetector(ServiceDetector):
    """Detector issuing one cheap RPC and classifying its status code.

    Attributes:
        method: Probe method name (e.g. "GetInfo").
    """

    def __init__(
        self,
        method: str,
        request: dict[str, Any] | None = None,
        metadata: "Metadata | None" = None,
        timeout: float | None = None,
    ) -> None:
        self.method = method
        self._request = request or {}
        self._metadata = metadata
        self._timeout = timeout

    async def probe(self, handle: "RpcHandle") -> ServiceStatus:
        try:
            await handle.call(self.method, self._request, self._metadata, self._timeout)
        except RpcCallError as e:
            status = classify_rpc_error(e)
            _logger.debug(
                {
                    "event": "service_probe",
                    "service": handle.service,
                    "method": self.method,
                    "code": e.code.name,
                    "status": status.value,
                    "message": f"Probe {handle.service}/{self.method} -> {status.value} ({e.code.name})",
                }
            )
            return status

        _logger.debug(
            {
                "event": "service_probe",
                "service": handle.service,
                "method": self.method,
                "status": ServiceStatus.PRESENT.value,
                "message": f"Probe {handle.service}/{self.method} -> present",
            }
        )
        return ServiceStatus.PRESENT
