"""Bounded retry policy shared by the Wikimedia clients.

Each client wraps a single HTTP exchange in a zero-argument coroutine
function (the *request*).  :func:`send_once` runs it and classifies the
outcome into an :class:`ApiResult`; :func:`call_with_retry` evaluates a
:class:`RetryPolicy` around it.

Error classes:

- transient: ``httpx.TimeoutException``, ``httpx.ConnectError`` and every
  other ``httpx.TransportError``, plus ``httpx.HTTPStatusError`` (rate
  limiting, 5xx, other non-success statuses): retried up to
  ``max_attempts`` in total. HTTP 429 waits ``rate_limit_delay`` first;
- structured API errors (:class:`WikiApiError`): retried like transient
  errors unless the policy sets ``retry_api_errors=False``;
- anything else: reported, then re-raised to the caller.

Only the final failure is reported.  Intermediate attempts are logged.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any, Generic, TypeVar

import httpx

from wiki_dashboard.core.exceptions import WikiApiError
from wiki_dashboard.wiki.config import MAX_ATTEMPTS, RATE_LIMIT_SLEEP_SECONDS

logger = logging.getLogger(__name__)

T = TypeVar("T")

TRANSIENT_ERRORS: tuple[type[Exception], ...] = (
    httpx.TimeoutException,
    httpx.ConnectError,
    httpx.TransportError,
    httpx.HTTPStatusError,
)
"""Exception classes that a fresh attempt may get past."""


@dataclass(frozen=True)
class WikiResponse:
    """The parts of a MediaWiki API response the pipeline consumes.

    Attributes:
        status: HTTP status code.
        body: Raw response text.
        data: The structured payload (the ``query`` block for
            ``action=query`` requests; the whole JSON document otherwise).
        continuation: The server's ``continue`` block, or ``None`` when the
            result set is complete.
    """

    status: int
    body: str
    data: dict[str, Any]
    continuation: dict[str, Any] | None = None


@dataclass(frozen=True)
class ApiResult(Generic[T]):
    """Outcome of a single request attempt."""

    value: T | None = None
    error: Exception | None = None
    retryable: bool = False

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(cls, value: T) -> "ApiResult[T]":
        return cls(value=value)

    @classmethod
    def failure(cls, error: Exception, *, retryable: bool) -> "ApiResult[T]":
        return cls(error=error, retryable=retryable)


@dataclass(frozen=True)
class RetryPolicy:
    """How many times to try a request and how long to wait in between.

    Attributes:
        max_attempts: Total attempts, including the first one.
        rate_limit_delay: Seconds to sleep after an HTTP 429 before the
            next attempt.
        retry_api_errors: Whether a structured API error is worth another
            attempt.
    """

    max_attempts: int = MAX_ATTEMPTS
    rate_limit_delay: float = RATE_LIMIT_SLEEP_SECONDS
    retry_api_errors: bool = True

    def delay_for(self, error: Exception | None) -> float:
        """Return the pause before retrying after *error*."""
        if is_rate_limited(error):
            return self.rate_limit_delay
        return 0.0


DEFAULT_RETRY_POLICY = RetryPolicy()


def is_rate_limited(error: Exception | None) -> bool:
    """Return ``True`` if *error* is an HTTP 429 Too Many Requests response."""
    return isinstance(error, httpx.HTTPStatusError) and error.response.status_code == 429


async def send_once(
    request: Callable[[], Awaitable[T]],
    policy: RetryPolicy = DEFAULT_RETRY_POLICY,
) -> ApiResult[T]:
    """Run *request* once and classify its outcome.

    Exceptions outside the known classes propagate unchanged.
    """
    try:
        value = await request()
    except WikiApiError as exc:
        return ApiResult.failure(exc, retryable=policy.retry_api_errors)
    except TRANSIENT_ERRORS as exc:
        return ApiResult.failure(exc, retryable=True)
    return ApiResult.success(value)


async def call_with_retry(
    request: Callable[[], Awaitable[T]],
    *,
    report: Callable[[BaseException], Awaitable[Any]],
    policy: RetryPolicy = DEFAULT_RETRY_POLICY,
    label: str = "request",
) -> T | None:
    """Run *request* under *policy*.

    Args:
        request: Zero-argument coroutine function performing one attempt.
        report: Coroutine called with the error that ends the call, either
            the last failure or an unexpected exception.
        policy: Retry policy to apply.
        label: Short description used in log lines.

    Returns:
        The request's value, or ``None`` once the attempts are exhausted or a
        non-retryable failure was returned.

    Raises:
        Exception: Any error outside the known classes, after reporting it.
    """
    result: ApiResult[T] | None = None
    for attempt in range(1, policy.max_attempts + 1):
        try:
            result = await send_once(request, policy)
        except Exception as exc:
            await report(exc)
            raise
        if result.ok:
            return result.value
        if not result.retryable:
            break
        if attempt < policy.max_attempts:
            logger.info(
                "%s failed (attempt %d/%d): %s, retrying",
                label,
                attempt,
                policy.max_attempts,
                result.error,
            )
            delay = policy.delay_for(result.error)
            if delay:
                await asyncio.sleep(delay)

    assert result is not None and result.error is not None
    await report(result.error)
    return None
