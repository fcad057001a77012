"""Retry utilities with exponential backoff."""

import logging

import structlog
from tenacity import (
    before_sleep_log,
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

logger = structlog.stdlib.get_logger(__name__)


def llm_retry(
    max_attempts: int = 3,
    min_wait: float = 2.0,
    max_wait: float = 30.0,
    exceptions: tuple = (Exception,),
):
    """Retry decorator for LLM API calls.

    Uses longer max_wait for rate limiting scenarios.

    Args:
        max_attempts: Max retry attempts
        min_wait: Min wait between retries (seconds)
        max_wait: Max wait between retries (seconds)
        exceptions: Exception types to retry on
    """
    return retry(
        stop=stop_after_attempt(max(1, max_attempts)),
        wait=wait_exponential(multiplier=1, min=min_wait, max=max_wait),
        retry=retry_if_exception_type(exceptions),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        reraise=True,
    )

