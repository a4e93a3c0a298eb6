from datetime import timedelta

import pytest

from minimonday.services.circuit_breaker import (
    CircuitBreaker,
    CircuitBreakerConfig,
    CircuitBreakerRegistry,
    CircuitState,
)
from minimonday.services.errors import CircuitOpenError, ServiceError


def make_breaker(clock, **overrides):
    config = CircuitBreakerConfig(
        failure_threshold=overrides.get("failure_threshold", 3),
        reset_timeout=overrides.get("reset_timeout", timedelta(seconds=60)),
        success_threshold=overrides.get("success_threshold", 2),
        window_size=overrides.get("window_size", timedelta(seconds=30)),
    )
    return CircuitBreaker("/api/tasks", config, clock=clock)


async def succeed():
    return "ok"


async def fail():
    raise ConnectionError("sheets unreachable")


async def trip(breaker, times):
    for _ in range(times):
        with pytest.raises(ConnectionError):
            await breaker.execute(fail)


class TestClosed:
    async def test_initial_state(self, clock):
        breaker = make_breaker(clock)
        assert breaker.state == CircuitState.CLOSED
        assert breaker.failure_count == 0

    async def test_success_passes_result(self, clock):
        breaker = make_breaker(clock)
        assert await breaker.execute(succeed) == "ok"

    async def test_downstream_error_propagates_unchanged(self, clock):
        breaker = make_breaker(clock)
        error = ConnectionError("boom")

        async def raise_it():
            raise error

        with pytest.raises(ConnectionError) as exc_info:
            await breaker.execute(raise_it)

        assert exc_info.value is error
        assert breaker.failure_count == 1

    async def test_opens_after_threshold(self, clock):
        breaker = make_breaker(clock, failure_threshold=3)

        await trip(breaker, 2)
        assert breaker.state == CircuitState.CLOSED

        await trip(breaker, 1)
        assert breaker.state == CircuitState.OPEN

    async def test_failures_outside_window_are_forgotten(self, clock):
        breaker = make_breaker(clock, failure_threshold=3)

        await trip(breaker, 2)
        clock.advance(seconds=31)
        await trip(breaker, 1)

        assert breaker.state == CircuitState.CLOSED
        assert breaker.failure_count == 1

    async def test_success_does_not_clear_window(self, clock):
        breaker = make_breaker(clock, failure_threshold=3)

        await trip(breaker, 2)
        await breaker.execute(succeed)
        await trip(breaker, 1)

        assert breaker.state == CircuitState.OPEN


class TestOpen:
    async def test_rejects_without_invoking(self, clock):
        breaker = make_breaker(clock, failure_threshold=3)
        await trip(breaker, 3)
        calls = []

        async def operation():
            calls.append(1)
            return "ok"

        with pytest.raises(CircuitOpenError) as exc_info:
            await breaker.execute(operation)

        assert calls == []
        assert exc_info.value.service_id == "/api/tasks"
        assert exc_info.value.reset_after_seconds == pytest.approx(60)
        assert isinstance(exc_info.value, ServiceError)

    async def test_still_open_before_reset_timeout(self, clock):
        breaker = make_breaker(clock, failure_threshold=1)
        await trip(breaker, 1)

        clock.advance(seconds=59)

        with pytest.raises(CircuitOpenError):
            await breaker.execute(succeed)
        assert breaker.get_time_until_reset() == pytest.approx(1)

    async def test_reading_state_does_not_transition(self, clock):
        breaker = make_breaker(clock, failure_threshold=1)
        await trip(breaker, 1)

        clock.advance(seconds=120)

        assert breaker.state == CircuitState.OPEN


class TestHalfOpen:
    async def test_probe_successes_close_circuit(self, clock):
        breaker = make_breaker(clock, failure_threshold=1, success_threshold=2)
        await trip(breaker, 1)
        clock.advance(seconds=60)

        assert await breaker.execute(succeed) == "ok"
        assert breaker.state == CircuitState.HALF_OPEN

        await breaker.execute(succeed)
        assert breaker.state == CircuitState.CLOSED
        assert breaker.failure_count == 0

    async def test_probe_failure_reopens(self, clock):
        breaker = make_breaker(clock, failure_threshold=3, success_threshold=2)
        await trip(breaker, 3)
        clock.advance(seconds=60)

        await breaker.execute(succeed)
        await trip(breaker, 1)

        assert breaker.state == CircuitState.OPEN
        with pytest.raises(CircuitOpenError):
            await breaker.execute(succeed)

    async def test_reopened_circuit_waits_full_timeout_again(self, clock):
        breaker = make_breaker(clock, failure_threshold=1)
        await trip(breaker, 1)
        clock.advance(seconds=60)
        await trip(breaker, 1)

        clock.advance(seconds=30)
        with pytest.raises(CircuitOpenError):
            await breaker.execute(succeed)

        clock.advance(seconds=30)
        assert await breaker.execute(succeed) == "ok"


class TestResetAndStatus:
    async def test_manual_reset(self, clock):
        breaker = make_breaker(clock, failure_threshold=1)
        await trip(breaker, 1)

        breaker.reset()

        assert breaker.state == CircuitState.CLOSED
        assert await breaker.execute(succeed) == "ok"

    async def test_status(self, clock):
        breaker = make_breaker(clock, failure_threshold=1)
        await trip(breaker, 1)

        status = breaker.get_status()

        assert status["service_id"] == "/api/tasks"
        assert status["state"] == "OPEN"
        assert status["failure_count"] == 1
        assert status["last_failure"] == clock.now.isoformat()


class TestRegistry:
    async def test_one_breaker_per_endpoint(self, clock):
        registry = CircuitBreakerRegistry(clock=clock)

        assert registry.get("/api/tasks") is registry.get("/api/tasks")
        assert registry.get("/api/tasks") is not registry.get("/api/projects")
        assert len(registry) == 2

    async def test_breakers_do_not_share_failures(self, clock):
        registry = CircuitBreakerRegistry(
            CircuitBreakerConfig(failure_threshold=1), clock=clock
        )
        await trip(registry.get("/api/tasks"), 1)

        assert registry.get_open_circuits() == ["/api/tasks"]
        assert await registry.get("/api/projects").execute(succeed) == "ok"

    async def test_reset(self, clock):
        registry = CircuitBreakerRegistry(
            CircuitBreakerConfig(failure_threshold=1), clock=clock
        )
        await trip(registry.get("/api/tasks"), 1)
        await trip(registry.get("/api/users"), 1)

        assert registry.reset("/api/tasks") is True
        assert registry.reset("/api/unknown") is False
        assert registry.get_open_circuits() == ["/api/users"]

        registry.reset_all()
        assert registry.get_open_circuits() == []

    async def test_all_status(self, clock):
        registry = CircuitBreakerRegistry(clock=clock)
        registry.get("/api/tasks")

        statuses = registry.get_all_status()

        assert list(statuses) == ["/api/tasks"]
        assert statuses["/api/tasks"]["state"] == "CLOSED"
