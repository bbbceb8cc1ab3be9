"""Client and error types for the Hindsight memory service."""

from .client import HealthStatus, HindsightClient, Memory, SignalResult
from .errors import (
    HindsightError,
    HindsightErrorCode,
    error_from_network_failure,
    error_from_response,
)

__all__ = [
    "HealthStatus",
    "HindsightClient",
    "HindsightError",
    "HindsightErrorCode",
    "Memory",
    "SignalResult",
    "error_from_network_failure",
    "error_from_response",
]
