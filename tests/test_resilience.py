"""
Unit tests for the circuit breaker, rate limiter and Resilience.execute
"""
import asyncio

import pytest

from wayfarer.errors import (
    CancelledByCaller,
    CircuitOpenError,
    ExternalTimeoutError,
    ProviderHTTPError,
    ToolError,
    UnknownLocationError,
)
from wayfarer.resilience import CircuitBreaker, CircuitState, RateLimiter, Resilience, TargetConfig
from wayfarer.resilience.policy import backoff_delay, is_retryable

from conftest import quick_resilience


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now

    def advance(self, s):
        self.now += s


class TestCircuitBreaker:
    """Breaker state transitions"""

    @pytest.fixture
    def clock(self):
        return FakeClock()

    @pytest.fixture
    def breaker(self, clock):
        return CircuitBreaker("weather", failure_threshold=5, success_threshold=3, reset_timeout_s=30, clock=clock)

    def test_opens_after_threshold(self, breaker):
        """Five consecutive failures trip the breaker"""
        for _ in range(4):
            breaker.before_call()
            breaker.record_failure()
            assert breaker.state == CircuitState.CLOSED
        breaker.before_call()
        breaker.record_failure()
        assert breaker.state == CircuitState.OPEN

    def test_success_resets_failure_count(self, breaker):
        """Failures must be consecutive"""
        for _ in range(4):
            breaker.record_failure()
        breaker.record_success()
        breaker.record_failure()
        assert breaker.state == CircuitState.CLOSED
        assert breaker.failure_count == 1

    def test_rejects_while_open(self, breaker, clock):
        """Open breaker fails fast until the reset window passes"""
        for _ in range(5):
            breaker.record_failure()
        clock.advance(10)
        with pytest.raises(CircuitOpenError) as exc:
            breaker.before_call()
        assert exc.value.retry_in_s == pytest.approx(20)

    def test_half_open_then_closed(self, breaker, clock):
        """After the reset timeout, three successes close the circuit"""
        for _ in range(5):
            breaker.record_failure()
        clock.advance(30)
        breaker.before_call()
        assert breaker.state == CircuitState.HALF_OPEN
        for i in range(3):
            if i:
                breaker.before_call()
            breaker.record_success()
        assert breaker.state == CircuitState.CLOSED

    def test_half_open_failure_reopens(self, breaker, clock):
        """A single failure while half-open goes straight back to open"""
        for _ in range(5):
            breaker.record_failure()
        clock.advance(31)
        breaker.before_call()
        breaker.record_failure()
        assert breaker.state == CircuitState.OPEN
        with pytest.raises(CircuitOpenError):
            breaker.before_call()

    def test_half_open_allows_one_trial(self, breaker, clock):
        """Concurrent callers are rejected while the trial call is in flight"""
        for _ in range(5):
            breaker.record_failure()
        clock.advance(30)
        breaker.before_call()
        with pytest.raises(CircuitOpenError):
            breaker.before_call()
        breaker.release()
        breaker.before_call()

    async def test_call_wrapper(self, breaker):
        """call() records outcomes around a coroutine"""
        async def ok():
            return 42

        async def bad():
            raise RuntimeError("x")

        assert await breaker.call(ok) == 42
        with pytest.raises(RuntimeError):
            await breaker.call(bad)
        assert breaker.failure_count == 1


class TestRateLimiter:
    """Concurrency cap and spacing"""

    async def test_caps_concurrency(self):
        """No more than max_concurrent bodies run at once"""
        limiter = RateLimiter(max_concurrent=2, min_interval_s=0.0)
        peak = 0

        async def work():
            nonlocal peak
            async with limiter:
                peak = max(peak, limiter.running)
                await asyncio.sleep(0.01)

        await asyncio.gather(*(work() for _ in range(6)))
        assert peak == 2
        assert limiter.stats() == {"running": 0, "queued": 0}

    async def test_spacing_uses_injected_sleep(self):
        """Back-to-back starts wait for min_interval_s"""
        clock = FakeClock()
        waits = []

        async def fake_sleep(s):
            waits.append(s)
            clock.advance(s)

        limiter = RateLimiter(max_concurrent=1, min_interval_s=0.5, clock=clock, sleep=fake_sleep)
        async with limiter:
            pass
        async with limiter:
            pass
        assert waits == [pytest.approx(0.5)]


class TestRetryPolicy:
    """Retry classification and backoff"""

    def test_is_retryable(self):
        assert is_retryable(ToolError("network"))
        assert is_retryable(ProviderHTTPError(503))
        assert is_retryable(ProviderHTTPError(429))
        assert not is_retryable(ProviderHTTPError(400))
        assert not is_retryable(UnknownLocationError("city", "Atlantis"))
        assert not is_retryable(CircuitOpenError("weather"))

    def test_backoff_is_capped(self):
        cfg = TargetConfig(initial_delay_s=0.2, max_delay_s=1.0)
        assert backoff_delay(1, cfg) == pytest.approx(0.2)
        assert backoff_delay(2, cfg) == pytest.approx(0.4)
        assert backoff_delay(10, cfg) == pytest.approx(1.0)


class TestResilienceExecute:
    """The full limiter -> breaker -> timeout -> retry wrapper"""

    async def test_retries_then_succeeds(self):
        """Transient errors are retried up to max_attempts"""
        res = quick_resilience(max_attempts=3)
        attempts = 0

        async def flaky():
            nonlocal attempts
            attempts += 1
            if attempts < 3:
                raise ToolError("network")
            return "ok"

        assert await res.execute("weather", flaky) == "ok"
        assert attempts == 3
        assert res.breaker("weather").failure_count == 0

    async def test_final_errors_not_retried(self):
        """not_found is returned on the first attempt and does not trip the breaker"""
        res = quick_resilience(max_attempts=3, failure_threshold=1)
        attempts = 0

        async def missing():
            nonlocal attempts
            attempts += 1
            raise UnknownLocationError("city", "Atlantis")

        with pytest.raises(UnknownLocationError):
            await res.execute("weather", missing)
        assert attempts == 1
        assert res.breaker("weather").state == CircuitState.CLOSED

    async def test_timeout_raises_typed_error(self):
        """Overruns become ExternalTimeoutError and count as a failure"""
        res = quick_resilience(timeout_s=0.05)

        async def slow():
            await asyncio.sleep(1)

        with pytest.raises(ExternalTimeoutError):
            await res.execute("weather", slow)
        assert res.breaker("weather").failure_count == 1

    async def test_fails_fast_once_open(self):
        """After the threshold, calls fail with CircuitOpenError without touching the target"""
        res = quick_resilience(failure_threshold=3, reset_timeout_s=60)
        calls = 0

        async def down():
            nonlocal calls
            calls += 1
            raise ToolError("network")

        for _ in range(3):
            with pytest.raises(ToolError):
                await res.execute("weather", down)
        with pytest.raises(CircuitOpenError):
            await res.execute("weather", down)
        assert calls == 3
        assert res.snapshot()["weather"]["state"] == "open"

    async def test_cancel_signal(self):
        """A set cancel event aborts the call"""
        res = quick_resilience()
        cancel = asyncio.Event()

        async def slow():
            await asyncio.sleep(1)

        async def trigger():
            await asyncio.sleep(0.01)
            cancel.set()

        asyncio.ensure_future(trigger())
        with pytest.raises(CancelledByCaller):
            await res.execute("weather", slow, cancel=cancel)
        assert res.breaker("weather").failure_count == 0

    def test_env_override(self, monkeypatch):
        """RESILIENCE_<TARGET>_<FIELD> overrides the preset"""
        monkeypatch.setenv("RESILIENCE_WEATHER_FAILURE_THRESHOLD", "2")
        res = Resilience()
        assert res.config_for("weather").failure_threshold == 2
        assert res.config_for("flights").failure_threshold == 5

    def test_registry_shares_breakers(self):
        """The same target always maps to the same breaker"""
        res = Resilience(use_env=False)
        assert res.breaker("weather") is res.breaker("weather")
        assert res.breaker("weather") is not res.breaker("search")
