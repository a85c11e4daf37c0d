"""Classification-aware retry with exponential backoff for remote calls."""

import asyncio
import logging
from enum import Enum
from typing import Awaitable, Callable, Optional, TypeVar

from intelliocr.config import MAX_RETRIES, RETRY_BASE_DELAY
from intelliocr.errors import (
    InvalidCredentialError,
    QuotaExceededError,
    ServerOverloadError,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

INVALID_CREDENTIAL_SIGNATURES = ("api key not valid", "key invalid", "400 bad request")
QUOTA_SIGNATURES = ("429", "quota", "exhausted")
OVERLOAD_SIGNATURES = ("503", "overloaded")


class ErrorKind(str, Enum):
    INVALID_CREDENTIAL = "invalid_credential"
    QUOTA = "quota"
    OVERLOAD = "overload"
    UNCLASSIFIED = "unclassified"


def _status_code(error: BaseException) -> Optional[int]:
    status = getattr(error, "status_code", None)
    if status is None:
        # httpx.HTTPStatusError keeps the status on the response
        response = getattr(error, "response", None)
        status = getattr(response, "status_code", None)
    return status if isinstance(status, int) else None


def classify_error(error: BaseException) -> ErrorKind:
    """Classify a remote-call failure.

    A structured HTTP status code wins when the exception carries one the
    classifier recognizes; otherwise the error text is matched
    case-insensitively against known signatures.
    """
    status = _status_code(error)
    if status in (401, 403):
        return ErrorKind.INVALID_CREDENTIAL
    if status == 429:
        return ErrorKind.QUOTA
    if status == 503:
        return ErrorKind.OVERLOAD

    message = str(error).lower()
    if any(sig in message for sig in INVALID_CREDENTIAL_SIGNATURES):
        return ErrorKind.INVALID_CREDENTIAL
    if any(sig in message for sig in QUOTA_SIGNATURES):
        return ErrorKind.QUOTA
    if any(sig in message for sig in OVERLOAD_SIGNATURES):
        return ErrorKind.OVERLOAD
    return ErrorKind.UNCLASSIFIED


async def with_retry(
    operation: Callable[[], Awaitable[T]],
    retries: int = MAX_RETRIES,
    base_delay: float = RETRY_BASE_DELAY,
) -> T:
    """Run a remote operation, retrying rate-limit and overload failures.

    Attempts are strictly sequential. After each retryable failure the call
    sleeps for the current delay, which then doubles.

    Args:
        operation: Zero-argument coroutine factory performing the remote call
        retries: Retries allowed after the first attempt
        base_delay: Delay in seconds before the first retry

    Returns:
        Result of the first successful attempt

    Raises:
        InvalidCredentialError: On a credential signature (never retried)
        QuotaExceededError: When rate-limit failures exhaust the budget
        ServerOverloadError: When overload failures exhaust the budget
        Exception: Unclassified failures, re-raised unchanged
    """
    delay = base_delay
    remaining = retries

    while True:
        try:
            return await operation()
        except Exception as e:
            kind = classify_error(e)

            if kind == ErrorKind.INVALID_CREDENTIAL:
                raise InvalidCredentialError() from e
            if kind == ErrorKind.UNCLASSIFIED:
                raise

            if remaining <= 0:
                logger.error(f"Giving up after {retries + 1} attempts: {e}")
                if kind == ErrorKind.QUOTA:
                    raise QuotaExceededError() from e
                raise ServerOverloadError() from e

            logger.warning(
                f"API limit hit ({kind.value}). Retrying in {delay:.1f}s... "
                f"({remaining} retries left)"
            )
            await asyncio.sleep(delay)
            delay *= 2
            remaining -= 1
