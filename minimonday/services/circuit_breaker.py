"""
CircuitBreaker - Stops calling an endpoint once it is observably failing.

States:
- CLOSED: Normal operation, calls pass through
- OPEN: Endpoint is failing, calls are rejected without being made
- HALF_OPEN: Probing whether the endpoint has recovered

Transitions:
- CLOSED → OPEN: failure_threshold failures inside the sliding window
- OPEN → HALF_OPEN: first call attempt after reset_timeout since the last failure
- HALF_OPEN → CLOSED: success_threshold successful probes
- HALF_OPEN → OPEN: any failed probe
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Awaitable, Callable, TypeVar

from loguru import logger

from minimonday.services.errors import CircuitOpenError

T = TypeVar("T")


class CircuitState(str, Enum):
    """Circuit breaker states."""

    CLOSED = "CLOSED"  # Normal operation
    OPEN = "OPEN"  # Rejecting calls
    HALF_OPEN = "HALF_OPEN"  # Probing recovery


@dataclass
class CircuitBreakerConfig:
    """Configuration for circuit breaker."""

    failure_threshold: int = 5  # Failures inside window before opening
    reset_timeout: timedelta = timedelta(seconds=60)  # Cooldown before probing
    success_threshold: int = 2  # Probe successes needed to close
    window_size: timedelta = timedelta(seconds=30)  # Failure counting window


class CircuitBreaker:
    """
    Circuit breaker for a single endpoint.

    Usage:
        cb = CircuitBreaker("/api/tasks")
        tasks = await cb.execute(lambda: sheets.read_range("Tasks!A:Z"))
    """

    def __init__(
        self,
        service_id: str,
        config: CircuitBreakerConfig | None = None,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.service_id = service_id
        self.config = config or CircuitBreakerConfig()
        self._clock = clock

        self._state = CircuitState.CLOSED
        self._failure_times: list[datetime] = []
        self._half_open_successes = 0
        self._last_failure_time: datetime | None = None

    @property
    def state(self) -> CircuitState:
        """Current state. Reading it never triggers a transition."""
        return self._state

    @property
    def failure_count(self) -> int:
        """Failures currently inside the sliding window."""
        self._prune_failures()
        return len(self._failure_times)

    async def execute(self, operation: Callable[[], Awaitable[T]]) -> T:
        """
        Run operation through the breaker.

        Raises:
            CircuitOpenError: If the circuit is open; operation is not called
            Exception: Whatever operation raised, after it was recorded
        """
        if self._state == CircuitState.OPEN:
            if self._should_attempt_reset():
                self._half_open()
            else:
                raise CircuitOpenError(
                    self.service_id,
                    self.get_time_until_reset() or 0,
                )

        try:
            result = await operation()
        except Exception:
            self.record_failure()
            raise

        self.record_success()
        return result

    def record_success(self) -> None:
        """Record a successful call."""
        self._prune_failures()

        if self._state == CircuitState.HALF_OPEN:
            self._half_open_successes += 1
            if self._half_open_successes >= self.config.success_threshold:
                self._close()

    def record_failure(self) -> None:
        """Record a failed call."""
        now = self._clock()
        self._failure_times.append(now)
        self._last_failure_time = now
        self._prune_failures()

        if self._state == CircuitState.HALF_OPEN:
            # A probe failure reopens immediately
            self._open()
        elif self._state == CircuitState.CLOSED:
            if len(self._failure_times) >= self.config.failure_threshold:
                self._open()

    def _should_attempt_reset(self) -> bool:
        if self._last_failure_time is None:
            return False
        return self._clock() - self._last_failure_time >= self.config.reset_timeout

    def _prune_failures(self) -> None:
        cutoff = self._clock() - self.config.window_size
        self._failure_times = [t for t in self._failure_times if t > cutoff]

    def _open(self) -> None:
        """Transition to OPEN state."""
        self._state = CircuitState.OPEN
        logger.warning(
            f"Circuit breaker '{self.service_id}' OPENED after "
            f"{len(self._failure_times)} failures"
        )

    def _half_open(self) -> None:
        """Transition to HALF_OPEN state."""
        self._state = CircuitState.HALF_OPEN
        self._half_open_successes = 0
        logger.info(f"Circuit breaker '{self.service_id}' transitioned to HALF_OPEN")

    def _close(self) -> None:
        """Transition to CLOSED state."""
        self._state = CircuitState.CLOSED
        self._failure_times = []
        self._half_open_successes = 0
        logger.info(f"Circuit breaker '{self.service_id}' CLOSED (recovered)")

    def reset(self) -> None:
        """Manually reset the circuit breaker."""
        self._state = CircuitState.CLOSED
        self._failure_times = []
        self._half_open_successes = 0
        self._last_failure_time = None
        logger.info(f"Circuit breaker '{self.service_id}' manually reset")

    def get_time_until_reset(self) -> float | None:
        """Get seconds until the next call would be let through as a probe."""
        if self._state != CircuitState.OPEN or not self._last_failure_time:
            return None

        reset_at = self._last_failure_time + self.config.reset_timeout
        remaining = (reset_at - self._clock()).total_seconds()
        return max(0, remaining)

    def get_status(self) -> dict[str, Any]:
        """Get current status as dictionary."""
        return {
            "service_id": self.service_id,
            "state": self._state.value,
            "failure_count": self.failure_count,
            "half_open_successes": self._half_open_successes,
            "last_failure": (
                self._last_failure_time.isoformat() if self._last_failure_time else None
            ),
            "time_until_reset": self.get_time_until_reset(),
        }


class CircuitBreakerRegistry:
    """
    One breaker per endpoint, created on first use.

    Usage:
        registry = CircuitBreakerRegistry()
        cb = registry.get("/api/tasks")
    """

    def __init__(
        self,
        default_config: CircuitBreakerConfig | None = None,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self._breakers: dict[str, CircuitBreaker] = {}
        self._default_config = default_config or CircuitBreakerConfig()
        self._clock = clock

    def get(
        self,
        service_id: str,
        config: CircuitBreakerConfig | None = None,
    ) -> CircuitBreaker:
        """Get or create the circuit breaker for an endpoint."""
        breaker = self._breakers.get(service_id)
        if breaker is None:
            breaker = CircuitBreaker(
                service_id,
                config or self._default_config,
                clock=self._clock,
            )
            self._breakers[service_id] = breaker
        return breaker

    def get_all_status(self) -> dict[str, dict[str, Any]]:
        """Get status of all circuit breakers."""
        return {
            service_id: cb.get_status() for service_id, cb in self._breakers.items()
        }

    def reset_all(self) -> None:
        """Reset all circuit breakers."""
        for cb in self._breakers.values():
            cb.reset()
        logger.info(f"Reset {len(self._breakers)} circuit breakers")

    def reset(self, service_id: str) -> bool:
        """Reset a specific circuit breaker."""
        if service_id in self._breakers:
            self._breakers[service_id].reset()
            return True
        return False

    def get_open_circuits(self) -> list[str]:
        """Get list of endpoints with open circuits."""
        return [
            service_id
            for service_id, cb in self._breakers.items()
            if cb.state == CircuitState.OPEN
        ]

    def __contains__(self, service_id: object) -> bool:
        return service_id in self._breakers

    def __len__(self) -> int:
        return len(self._breakers)
