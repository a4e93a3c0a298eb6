"""
Pytest configuration and fixtures.
"""
from datetime import datetime, timedelta

import pytest

from minimonday.services.cache import LRUCache
from minimonday.services.circuit_breaker import CircuitBreakerConfig, CircuitBreakerRegistry
from minimonday.services.facade import DataAccessContext, ResilientFacade
from minimonday.services.retry import RetryOptions


class FakeClock:
    """Manually advanced stand-in for datetime.now."""

    def __init__(self, start: datetime = datetime(2025, 3, 3, 9, 0, 0)) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now += timedelta(**kwargs)


class RecordingSleep:
    """Async sleep that returns immediately and remembers what it was asked."""

    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


class CountingFetcher:
    """Fetcher that fails with the queued errors, then returns value."""

    def __init__(self, value=None, errors=()):
        self.value = value
        self.errors = list(errors)
        self.calls = 0

    async def __call__(self):
        self.calls += 1
        if self.errors:
            raise self.errors.pop(0)
        return self.value


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def sleep():
    return RecordingSleep()


@pytest.fixture
def context(clock):
    """Small context: 3 cache entries, breaker opening after 2 failures."""
    return DataAccessContext(
        cache=LRUCache(max_size=3, ttl=timedelta(seconds=30), clock=clock),
        breakers=CircuitBreakerRegistry(
            CircuitBreakerConfig(
                failure_threshold=2,
                reset_timeout=timedelta(seconds=60),
                success_threshold=2,
                window_size=timedelta(seconds=30),
            ),
            clock=clock,
        ),
    )


@pytest.fixture
def facade(context, sleep):
    """Resilient facade that retries twice with 100ms/200ms backoff."""
    return ResilientFacade(
        context,
        retry_options=RetryOptions(max_retries=2, initial_delay=timedelta(milliseconds=100)),
        sleep=sleep,
    )
