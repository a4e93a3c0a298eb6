"""
RequestDeduplicator - Single-flight for concurrent cache misses.

When several coroutines miss the same key at once, only the first one
starts a fetch; the others await that same task and receive its result
or its exception.
"""

import asyncio
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, TypeVar

from loguru import logger

T = TypeVar("T")


@dataclass
class DeduplicatorStats:
    """Statistics for request deduplication."""

    started: int = 0  # Fetches actually started
    joined: int = 0  # Callers that awaited an existing fetch
    in_flight: int = 0

    @property
    def dedup_rate(self) -> float:
        total = self.started + self.joined
        if total == 0:
            return 0.0
        return self.joined / total

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "started": self.started,
            "joined": self.joined,
            "in_flight": self.in_flight,
            "dedup_rate": f"{self.dedup_rate:.2%}",
        }


class RequestDeduplicator:
    """
    Shares one in-flight fetch between concurrent callers of the same key.

    Usage:
        dedup = RequestDeduplicator()
        rows = await dedup.dedupe("tasks:proj-1:all:all", load_rows)
    """

    def __init__(self, debug: bool = False):
        self._in_flight: dict[str, asyncio.Task[Any]] = {}
        self._debug = debug
        self._stats = DeduplicatorStats()

    async def dedupe(self, key: str, request_fn: Callable[[], Awaitable[T]]) -> T:
        """
        Run request_fn unless a fetch for key is already running.

        Registration happens before the first await, so no lock is needed
        on a single event loop.
        """
        task = self._in_flight.get(key)
        if task is None:
            self._stats.started += 1
            self._log(f"START: {key[:50]}")
            task = asyncio.ensure_future(request_fn())
            self._in_flight[key] = task
            task.add_done_callback(lambda done: self._forget(key, done))
        else:
            self._stats.joined += 1
            self._log(f"JOIN: {key[:50]}")

        # shield: one cancelled waiter must not cancel the fetch for the rest
        return await asyncio.shield(task)

    def _forget(self, key: str, task: asyncio.Task[Any]) -> None:
        if self._in_flight.get(key) is task:
            del self._in_flight[key]
        if not task.cancelled():
            # Mark the exception retrieved; waiters re-raise it themselves.
            task.exception()
        self._log(f"DONE: {key[:50]}")

    async def cancel_all(self) -> int:
        """Cancel every in-flight fetch."""
        tasks = list(self._in_flight.values())
        self._in_flight.clear()
        for task in tasks:
            task.cancel()
        if tasks:
            self._log(f"CANCEL_ALL: {len(tasks)} fetches cancelled")
        return len(tasks)

    def get_in_flight_keys(self) -> list[str]:
        """Get keys of all in-flight fetches."""
        return list(self._in_flight)

    def get_stats(self) -> DeduplicatorStats:
        """Get deduplication statistics."""
        self._stats.in_flight = len(self._in_flight)
        return self._stats

    def _log(self, message: str) -> None:
        """Log debug message if debug mode is enabled."""
        if self._debug:
            logger.debug(f"[Deduplicator] {message}")
