"""
Failure classification for provider calls.

Status codes are authoritative; message heuristics cover SDK errors and
providers that bury the status inside the error text.
"""

import asyncio
import re
from typing import Optional

import httpx
from openai import APIConnectionError, APITimeoutError

from shared.errors import ProviderCallError
from shared.models.provider import FailureClass

_RATE_LIMIT_PATTERN = re.compile(r"rate.?limit|quota|too many requests|\b429\b", re.IGNORECASE)
_AUTH_PATTERN = re.compile(
    r"unauthori[sz]ed|invalid.{0,10}(api.?)?key|forbidden|\b40[123]\b|requires more credits"
    r"|can only afford|insufficient credits|payment required|prompt tokens limit exceeded",
    re.IGNORECASE,
)
_SERVER_PATTERN = re.compile(r"\b50[0234]\b|internal server error|bad gateway|service unavailable", re.IGNORECASE)


def classify_status(status_code: Optional[int]) -> FailureClass:
    """
    Map an HTTP-like status to a failure class.

    401/402/403 -> auth_or_key, 429 -> rate_limit, 5xx -> server_error.
    """
    if status_code is None:
        return FailureClass.UNKNOWN
    if status_code in (401, 402, 403):
        return FailureClass.AUTH_OR_KEY
    if status_code == 429:
        return FailureClass.RATE_LIMIT
    if 500 <= status_code < 600:
        return FailureClass.SERVER_ERROR
    return FailureClass.UNKNOWN


def classify_message(message: str) -> FailureClass:
    """Heuristic classification from error text."""
    if _RATE_LIMIT_PATTERN.search(message):
        return FailureClass.RATE_LIMIT
    if _AUTH_PATTERN.search(message):
        return FailureClass.AUTH_OR_KEY
    if _SERVER_PATTERN.search(message):
        return FailureClass.SERVER_ERROR
    return FailureClass.UNKNOWN


def classify_failure(exc: BaseException) -> FailureClass:
    """
    Classify one failed provider call.

    Args:
        exc: Exception raised by the work function

    Returns:
        FailureClass for backoff and quarantine decisions
    """
    if isinstance(exc, ProviderCallError) and exc.failure_class is not None:
        return FailureClass(exc.failure_class)

    status_code = getattr(exc, "status_code", None)
    if status_code is None:
        response = getattr(exc, "response", None)
        status_code = getattr(response, "status_code", None)
    if isinstance(status_code, int):
        by_status = classify_status(status_code)
        if by_status != FailureClass.UNKNOWN:
            return by_status

    # Timeouts and dropped connections behave like an overloaded upstream
    if isinstance(exc, (APITimeoutError, APIConnectionError, httpx.TimeoutException, httpx.TransportError, asyncio.TimeoutError)):
        return FailureClass.SERVER_ERROR

    return classify_message(str(exc))
