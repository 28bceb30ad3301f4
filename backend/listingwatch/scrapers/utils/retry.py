"""Retry utilities with exponential backoff."""

import logging

from tenacity import (
    AsyncRetrying,
    retry,
    retry_if_exception,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
    before_sleep_log,
)
import httpx

from listingwatch.core.exceptions import FetchError


logger = logging.getLogger(__name__)


def _is_transient_fetch_error(exc: BaseException) -> bool:
    return isinstance(exc, FetchError) and exc.transient


def fetch_retrying(max_attempts: int, base_seconds: float) -> AsyncRetrying:
    """Retry controller for page fetches.

    Only transient FetchErrors (timeouts, resets, 5xx) are retried. Waits
    double from ``base_seconds``: with the defaults that is 2s then 4s.

    Args:
        max_attempts: Total attempts including the first
        base_seconds: Wait before the second attempt

    Returns:
        tenacity AsyncRetrying to iterate with ``async for``
    """
    return AsyncRetrying(
        stop=stop_after_attempt(max_attempts),
        wait=wait_exponential(multiplier=base_seconds, min=0, max=60),
        retry=retry_if_exception(_is_transient_fetch_error),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        reraise=True,
    )


def _is_retryable_job_error(exc: BaseException) -> bool:
    # Permanent fetch failures (DNS, 4xx, TLS) fail the tick outright
    return not isinstance(exc, FetchError) or exc.transient


def job_retrying(max_attempts: int, base_seconds: float) -> AsyncRetrying:
    """Retry controller for scheduled ticks.

    Everything except permanent FetchErrors is retried, waiting
    base, 2x base, ... between attempts.
    """
    return AsyncRetrying(
        stop=stop_after_attempt(max_attempts),
        wait=wait_exponential(multiplier=base_seconds, min=0, max=300),
        retry=retry_if_exception(_is_retryable_job_error),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        reraise=True,
    )


# Reusable retry decorator for small JSON/HTTP calls (login forms, webhooks)
http_retry = retry(
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=2, max=30),
    retry=retry_if_exception_type(
        (
            httpx.ConnectError,
            httpx.TimeoutException,
            httpx.RemoteProtocolError,
        )
    ),
    before_sleep=before_sleep_log(logger, logging.WARNING),
    reraise=True,
)
