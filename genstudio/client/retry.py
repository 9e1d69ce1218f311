# genstudio/client/retry.py
"""Retry logic for idempotent API reads with exponential backoff."""

import logging

import httpx
from tenacity import (
    before_sleep_log,
    retry,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

logger = logging.getLogger(__name__)

RETRYABLE_STATUSES = frozenset({408, 502, 503, 504})


def is_retryable(exception: BaseException) -> bool:
    """
    Returns True if the exception should be retried.

    Retryable conditions:
    - httpx.TransportError (connection refused/reset, read timeout)
    - httpx.HTTPStatusError with status in (408, 502, 503, 504)

    429 is NOT retried: the quota window will not reset within a backoff.
    """
    if isinstance(exception, httpx.TransportError):
        return True

    if isinstance(exception, httpx.HTTPStatusError):
        return exception.response.status_code in RETRYABLE_STATUSES

    return False


# Only for GETs. Generation and save POSTs must never be retried automatically.
api_retry = retry(
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=0.5, min=0.5, max=8),
    retry=retry_if_exception(is_retryable),
    before_sleep=before_sleep_log(logger, logging.WARNING),
    reraise=True,
)
