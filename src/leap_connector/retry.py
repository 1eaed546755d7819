"""
Reconnect helper for callers that own the retry policy.

A Transport never retries on its own. This builds a fresh transport per
attempt and backs off exponentially between transient failures.
"""

import asyncio
import logging
import ssl
from typing import Any, Callable

from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from .errors import IncompleteCredentialsError, LeapConnectionError
from .transport import Transport

logger = logging.getLogger(__name__)


def is_retryable_connection_error(exception: Any) -> bool:
    """Determine if a failed connect is worth retrying.

    Network level failures (refused, unreachable, timed out) are transient.
    Partial credentials and TLS failures will not fix themselves.

    Args:
        exception: The exception to check

    Returns:
        True if the error is retryable, False otherwise
    """
    if isinstance(exception, IncompleteCredentialsError):
        return False
    if not isinstance(exception, LeapConnectionError):
        return False

    cause = exception.__cause__
    if isinstance(cause, ssl.SSLError):
        return False
    return isinstance(cause, (OSError, asyncio.TimeoutError))


async def connect_with_retry(
    factory: Callable[[], Transport],
    attempts: int = 3,
    min_wait: float = 1.0,
    max_wait: float = 10.0,
) -> Transport:
    """Connect a transport, retrying transient failures.

    Args:
        factory: Builds a new, unconnected transport for each attempt
        attempts: Maximum number of connect attempts
        min_wait: Smallest delay between attempts in seconds
        max_wait: Largest delay between attempts in seconds

    Returns:
        The connected transport

    Raises:
        LeapConnectionError: The last failure, once attempts are exhausted
            or the failure is not retryable
    """
    retrying = AsyncRetrying(
        retry=retry_if_exception(is_retryable_connection_error),
        wait=wait_exponential(multiplier=1, min=min_wait, max=max_wait),
        stop=stop_after_attempt(attempts),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        reraise=True,
    )

    async for attempt in retrying:
        with attempt:
            transport = factory()
            await transport.connect()

    return transport
