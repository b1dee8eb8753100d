"""Retry wrapper around remote executor calls.

Errors raised by the cache itself (EntityCacheError) describe a bad query
and are never retried; anything else is treated as a transport failure,
retried per RetryPolicy and finally surfaced as RemoteQueryError with the
backend's message untouched.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from typing import TypeVar

import tenacity

from entitycache.errors import EntityCacheError, RemoteQueryError
from entitycache.remote.models import RetryPolicy

logger = logging.getLogger(__name__)

T = TypeVar("T")


def build_retryer(policy: RetryPolicy) -> tenacity.AsyncRetrying:
    """Build a tenacity retryer from RetryPolicy configuration."""
    stop = tenacity.stop_after_attempt(max(policy.max_attempts, 1))

    wait: tenacity.wait.wait_base
    if policy.backoff == "exponential":
        wait = tenacity.wait_exponential(multiplier=policy.base_delay, min=policy.base_delay)
    elif policy.backoff == "linear":
        wait = tenacity.wait_incrementing(start=policy.base_delay, increment=policy.base_delay)
    else:
        wait = tenacity.wait_none()

    return tenacity.AsyncRetrying(
        stop=stop,
        wait=wait,
        retry=tenacity.retry_if_not_exception_type(EntityCacheError),
        before_sleep=_log_retry,
        reraise=False,
    )


def _log_retry(retry_state: tenacity.RetryCallState) -> None:
    outcome = retry_state.outcome
    error = outcome.exception() if outcome is not None else None
    logger.warning("Remote call failed (attempt %d): %s", retry_state.attempt_number, error)


async def call_remote(
    operation: Callable[[], Awaitable[T]],
    policy: RetryPolicy,
    resource_name: str | None = None,
) -> T:
    """Await ``operation()`` under ``policy``.

    Raises:
        EntityCacheError: Propagated as is from the executor.
        RemoteQueryError: When the executor keeps failing; ``__cause__`` is
            the last backend exception.
    """
    retryer = build_retryer(policy)
    try:
        async for attempt in retryer:
            with attempt:
                return await operation()
    except tenacity.RetryError as e:
        cause = e.last_attempt.exception()
        if isinstance(cause, EntityCacheError):
            raise cause from None
        raise RemoteQueryError(str(cause), resource_name=resource_name) from cause
    raise RemoteQueryError("Remote call produced no result", resource_name)  # pragma: no cover
