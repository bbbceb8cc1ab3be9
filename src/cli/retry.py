"""Retry utilities with exponential backoff."""

import logging

import structlog
from tenacity import (
    before_sleep_log,
    retry,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from .config_models import RetryConfig

logger = structlog.stdlib.get_logger(__name__)


def is_transient(exc: BaseException) -> bool:
    """Retry HindsightErrors flagged retryable (rate limits, server errors).

    Unavailability is never retried here; the degradation controller owns it.
    """
    return getattr(exc, "is_retryable", False) and not getattr(exc, "is_unavailable", False)


def remote_retry(
    max_attempts: int = 3,
    min_wait: float = 0.5,
    max_wait: float = 5.0,
):
    """Retry decorator for memory-service calls.

    Args:
        max_attempts: Max retry attempts
        min_wait: Min wait between retries (seconds)
        max_wait: Max wait between retries (seconds)
    """
    return retry(
        stop=stop_after_attempt(max_attempts),
        wait=wait_exponential(multiplier=1, min=min_wait, max=max_wait),
        retry=retry_if_exception(is_transient),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        reraise=True,
    )


def retry_from_config(config: RetryConfig | None = None):
    """Create a retry decorator from the retry section of the config."""
    config = config or RetryConfig()
    return remote_retry(
        max_attempts=config.max_attempts,
        min_wait=config.min_wait,
        max_wait=config.max_wait,
    )
