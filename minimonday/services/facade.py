"""
Data-access façade - one call path for reads from the spreadsheet store.

Combines:
- LRUCache for repeated reads of the same query
- CircuitBreaker (one per endpoint) for failure protection
- retry_with_backoff for transient failures
- RequestDeduplicator for concurrent identical misses (opt-in)

ResilientFacade applies all of the above; NoOpFacade calls the fetcher
directly. build_facade picks one of them once, from settings.
"""

import asyncio
from abc import ABC, abstractmethod
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Awaitable, Callable, TypeVar

from loguru import logger

from minimonday.services.occ import VersionCheck, check_version
from minimonday.services.cache import LRUCache
from minimonday.services.circuit_breaker import (
    CircuitBreakerConfig,
    CircuitBreakerRegistry,
)
from minimonday.services.deduplicator import RequestDeduplicator
from minimonday.services.retry import RetryOptions, retry_with_backoff
from minimonday.settings import Settings

T = TypeVar("T")

Fetcher = Callable[[], Awaitable[T]]

_MISSING = object()


@dataclass
class DataAccessContext:
    """
    Shared state of the data-access layer.

    Owned by whoever wires the application and handed to the façade, so
    tests can build a fresh one or reset it between cases.
    """

    cache: LRUCache[Any] = field(default_factory=LRUCache)
    breakers: CircuitBreakerRegistry = field(default_factory=CircuitBreakerRegistry)
    deduplicator: RequestDeduplicator | None = None

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        clock: Callable[[], datetime] = datetime.now,
    ) -> "DataAccessContext":
        breaker_config = CircuitBreakerConfig(
            failure_threshold=settings.breaker_failure_threshold,
            reset_timeout=timedelta(milliseconds=settings.breaker_reset_timeout_ms),
            success_threshold=settings.breaker_success_threshold,
            window_size=timedelta(milliseconds=settings.breaker_window_ms),
        )
        return cls(
            cache=LRUCache(
                max_size=settings.cache_max_size,
                ttl=timedelta(milliseconds=settings.cache_ttl_ms),
                clock=clock,
                debug=settings.debug,
            ),
            breakers=CircuitBreakerRegistry(breaker_config, clock=clock),
            deduplicator=(
                RequestDeduplicator(debug=settings.debug)
                if settings.single_flight
                else None
            ),
        )

    def reset(self) -> None:
        """Drop cached data and close every breaker."""
        self.cache.clear()
        self.breakers.reset_all()


def retry_options_from_settings(settings: Settings) -> RetryOptions:
    return RetryOptions(
        max_retries=settings.retry_max_retries,
        initial_delay=timedelta(milliseconds=settings.retry_initial_delay_ms),
        max_delay=timedelta(milliseconds=settings.retry_max_delay_ms),
        backoff_multiplier=settings.retry_backoff_multiplier,
    )


class DataAccessFacade(ABC):
    """Read path in front of the remote store."""

    @abstractmethod
    async def fetch_through_cache(self, endpoint: str, key: str, fetcher: Fetcher[T]) -> T:
        """Return the value for key, calling fetcher on a miss."""

    @abstractmethod
    def invalidate(self, *keys: str) -> int:
        """Forget cached values for keys. Returns how many were present."""

    @abstractmethod
    def invalidate_prefix(self, prefix: str) -> int:
        """Forget every cached value whose key starts with prefix."""

    @abstractmethod
    def check_version(
        self,
        resource: Mapping[str, Any] | None,
        payload: Mapping[str, Any],
    ) -> VersionCheck:
        """Compare a mutation payload against the current resource."""

    @abstractmethod
    def get_health_status(self) -> dict[str, Any]:
        """Report the state of the layer."""


class NoOpFacade(DataAccessFacade):
    """Pass-through: no caching, retries, breaking or version checks."""

    async def fetch_through_cache(self, endpoint: str, key: str, fetcher: Fetcher[T]) -> T:
        return await fetcher()

    def invalidate(self, *keys: str) -> int:
        return 0

    def invalidate_prefix(self, prefix: str) -> int:
        return 0

    def check_version(
        self,
        resource: Mapping[str, Any] | None,
        payload: Mapping[str, Any],
    ) -> VersionCheck:
        return VersionCheck(valid=True)

    def get_health_status(self) -> dict[str, Any]:
        return {"mode": "passthrough"}


class ResilientFacade(DataAccessFacade):
    """
    Cache, then circuit breaker around retried fetches.

    Usage:
        facade = ResilientFacade(DataAccessContext())

        tasks = await facade.fetch_through_cache(
            endpoint="/api/tasks",
            key=tasks_key("proj-1"),
            fetcher=lambda: tasks_service.get_tasks_by_project("proj-1"),
        )

    Failures propagate to the caller: there is no stale fallback, and a
    failed fetch never writes to the cache.
    """

    def __init__(
        self,
        context: DataAccessContext,
        retry_options: RetryOptions | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self._context = context
        self._retry_options = retry_options or RetryOptions()
        self._sleep = sleep

    @property
    def context(self) -> DataAccessContext:
        return self._context

    async def fetch_through_cache(self, endpoint: str, key: str, fetcher: Fetcher[T]) -> T:
        """
        Look key up in the cache; on a miss fetch it through the breaker
        of endpoint with retries, then cache the result.

        Raises:
            CircuitOpenError: If the endpoint's breaker is open
            Exception: The fetcher's last error once retries are spent
        """
        cached = self._context.cache.get(key, _MISSING)
        if cached is not _MISSING:
            return cached

        deduplicator = self._context.deduplicator
        if deduplicator is not None:
            return await deduplicator.dedupe(
                f"{endpoint}|{key}",
                lambda: self._fetch_and_store(endpoint, key, fetcher),
            )
        return await self._fetch_and_store(endpoint, key, fetcher)

    async def _fetch_and_store(self, endpoint: str, key: str, fetcher: Fetcher[T]) -> T:
        breaker = self._context.breakers.get(endpoint)

        result = await breaker.execute(
            lambda: retry_with_backoff(fetcher, self._retry_options, self._sleep)
        )
        self._context.cache.set(key, result)
        return result

    def invalidate(self, *keys: str) -> int:
        return sum(1 for key in keys if self._context.cache.delete(key))

    def invalidate_prefix(self, prefix: str) -> int:
        return self._context.cache.invalidate(prefix)

    def check_version(
        self,
        resource: Mapping[str, Any] | None,
        payload: Mapping[str, Any],
    ) -> VersionCheck:
        return check_version(resource, payload)

    def get_health_status(self) -> dict[str, Any]:
        status: dict[str, Any] = {
            "mode": "resilient",
            "cache": self._context.cache.get_stats().to_dict(),
            "circuit_breakers": self._context.breakers.get_all_status(),
            "open_circuits": self._context.breakers.get_open_circuits(),
        }
        if self._context.deduplicator is not None:
            status["deduplicator"] = self._context.deduplicator.get_stats().to_dict()
        return status


def build_facade(
    settings: Settings,
    context: DataAccessContext | None = None,
) -> DataAccessFacade:
    """Pick the façade implementation for this process."""
    if not settings.perf_hardening:
        logger.info("Data access running in pass-through mode")
        return NoOpFacade()

    logger.info(
        f"Data access hardened: cache {settings.cache_max_size} entries / "
        f"{settings.cache_ttl_ms}ms, single-flight "
        f"{'on' if settings.single_flight else 'off'}"
    )
    return ResilientFacade(
        context or DataAccessContext.from_settings(settings),
        retry_options=retry_options_from_settings(settings),
    )
