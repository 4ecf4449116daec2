"""
Transient-failure classification shared by the pipeline and the queue.
"""

import asyncio
from typing import Iterable

import httpx

RETRYABLE_TYPES = (
    TimeoutError,
    asyncio.TimeoutError,
    ConnectionError,
    httpx.TimeoutException,
    httpx.TransportError,
)


def is_retryable_error(error: BaseException, keywords: Iterable[str]) -> bool:
    """
    Decide whether a failure looks transient.

    Structured signals win: an explicit ``retryable`` flag, then known
    transient exception types (including the chained cause). Otherwise the
    message is matched case-insensitively against ``keywords``.
    """
    if getattr(error, "retryable", None) is True:
        return True

    if isinstance(error, RETRYABLE_TYPES) or isinstance(error.__cause__, RETRYABLE_TYPES):
        return True

    message = str(error).lower()
    return any(keyword.lower() in message for keyword in keywords)
