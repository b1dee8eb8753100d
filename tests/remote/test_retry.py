"""Tests for retrying remote calls.

Critical Invariants:
- Transport failures are retried up to max_attempts
- The backend's message survives unchanged; its exception is the __cause__
- Cache errors (bad queries) are never retried
"""

import logging

import pytest

from entitycache import (
    EntityManager,
    EntityQuery,
    RemoteQueryError,
    RetryPolicy,
    UnknownResourceError,
)
from entitycache.remote import build_retryer, call_remote


class Flaky:
    """Operation failing a fixed number of times before succeeding."""

    def __init__(self, failures, error=None):
        self.failures = failures
        self.error = error or ConnectionError("connection reset by peer")
        self.calls = 0

    async def __call__(self):
        self.calls += 1
        if self.calls <= self.failures:
            raise self.error
        return "ok"


@pytest.mark.asyncio
async def test_single_attempt_by_default():
    operation = Flaky(1)

    with pytest.raises(RemoteQueryError) as exc_info:
        await call_remote(operation, RetryPolicy(), resource_name="Orders")

    assert operation.calls == 1
    assert exc_info.value.message == "connection reset by peer"
    assert exc_info.value.details == {"resource_name": "Orders"}
    assert exc_info.value.__cause__ is operation.error


@pytest.mark.asyncio
async def test_retries_until_success(caplog):
    operation = Flaky(2)

    with caplog.at_level(logging.WARNING, logger="entitycache.remote.retry"):
        assert await call_remote(operation, RetryPolicy(max_attempts=3)) == "ok"

    assert operation.calls == 3
    assert "attempt 1" in caplog.text
    assert "attempt 2" in caplog.text


@pytest.mark.asyncio
async def test_gives_up_after_max_attempts():
    operation = Flaky(5)

    with pytest.raises(RemoteQueryError):
        await call_remote(operation, RetryPolicy(max_attempts=3))

    assert operation.calls == 3


@pytest.mark.asyncio
async def test_cache_errors_are_not_retried():
    operation = Flaky(5, UnknownResourceError("Custmers"))

    with pytest.raises(UnknownResourceError):
        await call_remote(operation, RetryPolicy(max_attempts=3))

    assert operation.calls == 1


@pytest.mark.parametrize("backoff", ["none", "linear", "exponential"])
def test_build_retryer_stops_after_max_attempts(backoff):
    retryer = build_retryer(RetryPolicy(max_attempts=4, backoff=backoff, base_delay=0.0))

    assert retryer.stop.max_attempt_number == 4


def test_build_retryer_treats_zero_attempts_as_one():
    assert build_retryer(RetryPolicy(max_attempts=0)).stop.max_attempt_number == 1


@pytest.mark.asyncio
async def test_manager_retries_transport_failures(catalog, service):
    manager = EntityManager(catalog, executor=service, retry_policy=RetryPolicy(max_attempts=3))
    service.inject_failure(TimeoutError("read timed out"), times=2)

    result = await EntityQuery.from_("Customers").using(manager).execute()

    assert len(result) == 5
    assert len(service.executed_queries) == 3


@pytest.mark.asyncio
async def test_manager_surfaces_backend_message(manager, service):
    service.inject_failure(ConnectionError("503 Service Unavailable"))

    with pytest.raises(RemoteQueryError, match="503 Service Unavailable") as exc_info:
        await EntityQuery.from_("Customers").using(manager).execute()

    assert isinstance(exc_info.value.__cause__, ConnectionError)
    assert exc_info.value.details["resource_name"] == "Customers"
