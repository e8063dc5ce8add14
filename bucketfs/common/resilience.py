"""
Resilience utilities: retry strategies for downloads from the object store.

Object store API calls are retried by botocore itself; only the presigned
URL downloads made with httpx need a policy of their own.
"""

import logging

import httpx
from tenacity import (
    Retrying,
    stop_after_attempt,
    wait_exponential,
    retry_if_exception_type,
    before_sleep_log,
    after_log,
)

logger = logging.getLogger(__name__)

# Network-level failures worth another attempt (not HTTP error statuses)
RETRYABLE_DOWNLOAD_ERRORS = (httpx.TransportError,)


def download_retrying(attempts: int = 3) -> Retrying:
    """
    Build the retry controller used for presigned URL downloads.

    Retries transport errors with exponential backoff (1s, 2s, 4s...).
    The last exception is re-raised once attempts are exhausted.
    """
    return Retrying(
        stop=stop_after_attempt(max(1, attempts)),
        wait=wait_exponential(multiplier=1, min=1, max=10),
        retry=retry_if_exception_type(RETRYABLE_DOWNLOAD_ERRORS),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        after=after_log(logger, logging.DEBUG),
        reraise=True,
    )
