"""Error taxonomy for the remote memory service.

Callers branch on ``HindsightError.code`` (or the ``is_*`` helpers) rather
than on HTTP status: the degradation controller only treats unavailability
as an outage, while validation errors are caller bugs and propagate.
"""

from enum import StrEnum
from typing import Any

import httpx


class HindsightErrorCode(StrEnum):
    HINDSIGHT_UNAVAILABLE = "HINDSIGHT_UNAVAILABLE"
    CONNECTION_TIMEOUT = "CONNECTION_TIMEOUT"
    BANK_NOT_FOUND = "BANK_NOT_FOUND"
    VALIDATION_ERROR = "VALIDATION_ERROR"
    INVALID_DISPOSITION = "INVALID_DISPOSITION"
    RATE_LIMITED = "RATE_LIMITED"
    SERVER_ERROR = "SERVER_ERROR"
    UNKNOWN_ERROR = "UNKNOWN_ERROR"


class HindsightError(Exception):
    """Base error for all memory-service failures."""

    def __init__(
        self,
        message: str,
        code: HindsightErrorCode,
        is_retryable: bool = False,
        status_code: int | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.is_retryable = is_retryable
        self.status_code = status_code

    def __repr__(self) -> str:
        return f"HindsightError({self.code.value}: {self.message})"

    @property
    def is_unavailable(self) -> bool:
        """Server unreachable or not answering in time."""
        return self.code in (
            HindsightErrorCode.HINDSIGHT_UNAVAILABLE,
            HindsightErrorCode.CONNECTION_TIMEOUT,
        )

    @property
    def is_bank_not_found(self) -> bool:
        return self.code == HindsightErrorCode.BANK_NOT_FOUND

    @property
    def is_validation_error(self) -> bool:
        return self.code in (
            HindsightErrorCode.VALIDATION_ERROR,
            HindsightErrorCode.INVALID_DISPOSITION,
        )

    @property
    def is_timeout(self) -> bool:
        return self.code == HindsightErrorCode.CONNECTION_TIMEOUT


def extract_error_message(body: Any) -> str | None:
    """Pull a human message out of an API error body."""
    if isinstance(body, dict):
        for key in ("message", "error", "detail"):
            if isinstance(body.get(key), str):
                return body[key]
    return None


def error_from_response(status: int, body: Any, path: str, reason: str = "") -> HindsightError:
    """Map an HTTP error response to a HindsightError."""
    message = extract_error_message(body) or reason or "Request failed"

    if status in (400, 401, 403):
        prefix = "Bad request" if status == 400 else "Authentication failed"
        return HindsightError(
            f"{prefix}: {message}", HindsightErrorCode.VALIDATION_ERROR, status_code=status
        )
    if status == 404:
        if "/banks/" in path:
            return HindsightError(
                f"Bank not found: {message}", HindsightErrorCode.BANK_NOT_FOUND, status_code=404
            )
        return HindsightError(
            f"Not found: {message}", HindsightErrorCode.VALIDATION_ERROR, status_code=404
        )
    if status == 422:
        if "disposition" in message.lower():
            return HindsightError(
                f"Invalid disposition: {message}",
                HindsightErrorCode.INVALID_DISPOSITION,
                status_code=422,
            )
        return HindsightError(
            f"Validation failed: {message}", HindsightErrorCode.VALIDATION_ERROR, status_code=422
        )
    if status == 429:
        return HindsightError(
            f"Rate limited: {message}",
            HindsightErrorCode.RATE_LIMITED,
            is_retryable=True,
            status_code=429,
        )
    if status >= 500:
        return HindsightError(
            f"Server error ({status}): {message}",
            HindsightErrorCode.SERVER_ERROR,
            is_retryable=True,
            status_code=status,
        )
    return HindsightError(
        f"HTTP error ({status}): {message}", HindsightErrorCode.UNKNOWN_ERROR, status_code=status
    )


def error_from_network_failure(exc: Exception) -> HindsightError:
    """Map a transport-level failure to a HindsightError."""
    if isinstance(exc, httpx.TimeoutException):
        return HindsightError(
            "Request timed out", HindsightErrorCode.CONNECTION_TIMEOUT, is_retryable=True
        )
    return HindsightError(
        f"Cannot connect to Hindsight server: {exc}",
        HindsightErrorCode.HINDSIGHT_UNAVAILABLE,
        is_retryable=True,
    )
