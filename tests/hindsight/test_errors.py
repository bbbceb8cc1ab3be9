"""Tests for memory-service error mapping."""

import httpx
import pytest

from hindsight.errors import (
    HindsightError,
    HindsightErrorCode,
    error_from_network_failure,
    error_from_response,
    extract_error_message,
)


@pytest.mark.parametrize(
    "status,path,body,code,retryable",
    [
        (400, "/banks/b/signal", {"message": "bad"}, HindsightErrorCode.VALIDATION_ERROR, False),
        (401, "/banks/b/signal", None, HindsightErrorCode.VALIDATION_ERROR, False),
        (403, "/banks/b/signal", None, HindsightErrorCode.VALIDATION_ERROR, False),
        (404, "/banks/b", {"detail": "no bank"}, HindsightErrorCode.BANK_NOT_FOUND, False),
        (404, "/health", None, HindsightErrorCode.VALIDATION_ERROR, False),
        (422, "/banks/b/signal", {"error": "invalid disposition"}, HindsightErrorCode.INVALID_DISPOSITION, False),
        (422, "/banks/b/signal", {"error": "confidence out of range"}, HindsightErrorCode.VALIDATION_ERROR, False),
        (429, "/banks/b/recall", None, HindsightErrorCode.RATE_LIMITED, True),
        (503, "/banks/b/recall", None, HindsightErrorCode.SERVER_ERROR, True),
        (418, "/banks/b/recall", None, HindsightErrorCode.UNKNOWN_ERROR, False),
    ],
)
def test_error_from_response(status, path, body, code, retryable):
    error = error_from_response(status, body, path)
    assert error.code == code
    assert error.is_retryable is retryable
    assert error.status_code == status


def test_message_falls_back_to_reason():
    error = error_from_response(500, None, "/banks/b/recall", "Internal Server Error")
    assert error.message == "Server error (500): Internal Server Error"


def test_extract_error_message():
    assert extract_error_message({"detail": "nope"}) == "nope"
    assert extract_error_message({"message": "first", "detail": "second"}) == "first"
    assert extract_error_message(["not", "a", "dict"]) is None


def test_timeout_is_unavailable():
    error = error_from_network_failure(httpx.ReadTimeout("slow"))
    assert error.code == HindsightErrorCode.CONNECTION_TIMEOUT
    assert error.is_timeout
    assert error.is_unavailable
    assert error.is_retryable


def test_connect_error_is_unavailable():
    error = error_from_network_failure(httpx.ConnectError("refused"))
    assert error.code == HindsightErrorCode.HINDSIGHT_UNAVAILABLE
    assert error.is_unavailable
    assert not error.is_timeout


def test_classification_helpers():
    assert HindsightError("x", HindsightErrorCode.BANK_NOT_FOUND).is_bank_not_found
    assert HindsightError("x", HindsightErrorCode.INVALID_DISPOSITION).is_validation_error
    assert not HindsightError("x", HindsightErrorCode.SERVER_ERROR).is_unavailable
