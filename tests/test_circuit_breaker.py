import asyncio

import pytest

from shared.resilience import CircuitBreaker, CircuitOpenError, CircuitState


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


async def succeed():
    return "ok"


async def fail():
    raise ConnectionError("dependency down")


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def breaker(clock):
    return CircuitBreaker("test", failure_threshold=3, recovery_timeout=30.0, clock=clock)


class TestCircuitBreaker:
    async def test_opens_after_threshold_failures(self, breaker):
        for _ in range(2):
            with pytest.raises(ConnectionError):
                await breaker.execute(fail)
        assert breaker.state is CircuitState.CLOSED
        assert breaker.failure_count == 2

        with pytest.raises(ConnectionError):
            await breaker.execute(fail)
        assert breaker.state is CircuitState.OPEN

    async def test_open_circuit_rejects_without_calling(self, breaker):
        calls = []

        async def tracked():
            calls.append(1)
            return "ok"

        for _ in range(3):
            with pytest.raises(ConnectionError):
                await breaker.execute(fail)

        with pytest.raises(CircuitOpenError) as exc_info:
            await breaker.execute(tracked)
        assert calls == []
        assert exc_info.value.retry_after == pytest.approx(30.0)

    async def test_half_open_success_closes_and_resets(self, breaker, clock):
        for _ in range(3):
            with pytest.raises(ConnectionError):
                await breaker.execute(fail)

        clock.advance(30)
        assert breaker.state is CircuitState.HALF_OPEN
        assert await breaker.execute(succeed) == "ok"
        assert breaker.state is CircuitState.CLOSED
        assert breaker.failure_count == 0

    async def test_half_open_failure_reopens_and_restarts_cooldown(self, breaker, clock):
        for _ in range(3):
            with pytest.raises(ConnectionError):
                await breaker.execute(fail)

        clock.advance(31)
        with pytest.raises(ConnectionError):
            await breaker.execute(fail)
        assert breaker.state is CircuitState.OPEN

        clock.advance(29)
        with pytest.raises(CircuitOpenError):
            await breaker.execute(succeed)
        clock.advance(1)
        assert await breaker.execute(succeed) == "ok"

    async def test_half_open_allows_a_single_trial(self, breaker, clock):
        for _ in range(3):
            with pytest.raises(ConnectionError):
                await breaker.execute(fail)
        clock.advance(30)

        release = asyncio.Event()

        async def slow_trial():
            await release.wait()
            return "ok"

        trial = asyncio.create_task(breaker.execute(slow_trial))
        await asyncio.sleep(0)
        with pytest.raises(CircuitOpenError):
            await breaker.execute(succeed)

        release.set()
        assert await trial == "ok"
        assert breaker.state is CircuitState.CLOSED

    async def test_success_in_closed_state_zeroes_failures(self, breaker):
        with pytest.raises(ConnectionError):
            await breaker.execute(fail)
        await breaker.execute(succeed)
        assert breaker.failure_count == 0

    def test_rejects_invalid_threshold(self):
        with pytest.raises(ValueError):
            CircuitBreaker("bad", failure_threshold=0)
