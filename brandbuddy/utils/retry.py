"""
Retry helpers with exponential backoff for upstream feed calls.
"""
import asyncio
import random
from typing import Tuple, Type

import aiohttp


# Network-level failures worth another attempt
DEFAULT_RETRYABLE_EXCEPTIONS: Tuple[Type[Exception], ...] = (
    aiohttp.ClientConnectionError,
    asyncio.TimeoutError,
    ConnectionError,
)

RETRYABLE_STATUS_CODES: Tuple[int, ...] = (429, 500, 502, 503, 504)


def calculate_backoff(
    attempt: int,
    base_delay: float = 0.5,
    max_delay: float = 8.0,
    exponential_base: float = 2.0,
    jitter: bool = True
) -> float:
    """
    Calculate delay for exponential backoff.

    Args:
        attempt: Current attempt number (1-indexed)
        base_delay: Initial delay in seconds
        max_delay: Maximum delay cap
        exponential_base: Base for exponential calculation
        jitter: Add up to 25% randomness so parallel requests don't retry in lockstep

    Returns:
        Delay in seconds
    """
    delay = min(base_delay * (exponential_base ** (attempt - 1)), max_delay)
    if jitter:
        delay += delay * random.uniform(0, 0.25)
    return delay


def is_retryable_error(
    error: Exception,
    retryable_exceptions: Tuple[Type[Exception], ...] = DEFAULT_RETRYABLE_EXCEPTIONS,
) -> bool:
    """
    Check if an error is transient.

    Feed errors expose the upstream HTTP status as ``status``; only
    rate limiting and gateway/server failures are retried.
    """
    if isinstance(error, retryable_exceptions):
        return True

    status = getattr(error, "status", None)
    if status is not None:
        return status in RETRYABLE_STATUS_CODES

    return False
