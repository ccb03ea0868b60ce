import asyncio
import logging
import time
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, TypeVar

from wayfarer.errors import CircuitOpenError

log = logging.getLogger(__name__)

T = TypeVar("T")


class CircuitState(str, Enum):
    CLOSED = "closed"
    HALF_OPEN = "half_open"
    OPEN = "open"


class CircuitBreaker:
    """
    Consecutive-failure breaker for one external target.

    closed --(failure_threshold consecutive failures)--> open
    open --(reset_timeout_s elapsed, next call)--> half_open
    half_open --(success_threshold successes)--> closed
    half_open --(any failure)--> open, with a fresh reset window

    While half-open only one trial call is in flight at a time; concurrent
    callers are rejected as if the circuit were still open.
    """

    def __init__(
        self,
        name: str,
        failure_threshold: int = 5,
        success_threshold: int = 3,
        reset_timeout_s: float = 30.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.name = name
        self.failure_threshold = failure_threshold
        self.success_threshold = success_threshold
        self.reset_timeout_s = reset_timeout_s
        self._clock = clock

        self._state = CircuitState.CLOSED
        self.failure_count = 0
        self.success_count = 0
        self.last_failure_at = 0.0
        self.next_attempt_at = 0.0
        self._trial_in_flight = False

    @property
    def state(self) -> CircuitState:
        return self._state

    def before_call(self) -> None:
        now = self._clock()
        if self._state == CircuitState.OPEN:
            if now < self.next_attempt_at:
                raise CircuitOpenError(self.name, retry_in_s=self.next_attempt_at - now)
            self._state = CircuitState.HALF_OPEN
            self.success_count = 0
            self._trial_in_flight = False
            log.info("circuit_half_open", extra={"target": self.name})

        if self._state == CircuitState.HALF_OPEN:
            if self._trial_in_flight:
                raise CircuitOpenError(self.name)
            self._trial_in_flight = True

    def record_success(self) -> None:
        self.failure_count = 0
        if self._state == CircuitState.HALF_OPEN:
            self._trial_in_flight = False
            self.success_count += 1
            if self.success_count >= self.success_threshold:
                self._state = CircuitState.CLOSED
                self.success_count = 0
                log.info("circuit_closed", extra={"target": self.name})

    def record_failure(self) -> None:
        self.failure_count += 1
        self.last_failure_at = self._clock()
        if self._state == CircuitState.HALF_OPEN:
            self._trial_in_flight = False
            self._trip()
        elif self._state == CircuitState.CLOSED and self.failure_count >= self.failure_threshold:
            self._trip()

    def release(self) -> None:
        """Give back a half-open trial slot without counting an outcome."""
        self._trial_in_flight = False

    def _trip(self) -> None:
        self._state = CircuitState.OPEN
        self.success_count = 0
        self.next_attempt_at = self._clock() + self.reset_timeout_s
        log.warning(
            "circuit_open",
            extra={"target": self.name, "failures": self.failure_count, "reset_s": self.reset_timeout_s},
        )

    async def call(self, fn: Callable[[], Awaitable[T]]) -> T:
        self.before_call()
        try:
            result = await fn()
        except asyncio.CancelledError:
            self.release()
            raise
        except Exception:
            self.record_failure()
            raise
        self.record_success()
        return result

    def reset(self) -> None:
        self._state = CircuitState.CLOSED
        self.failure_count = 0
        self.success_count = 0
        self.last_failure_at = 0.0
        self.next_attempt_at = 0.0
        self._trial_in_flight = False

    def snapshot(self) -> Dict[str, Any]:
        return {
            "state": self._state.value,
            "failure_count": self.failure_count,
            "success_count": self.success_count,
            "last_failure_at": self.last_failure_at,
            "next_attempt_at": self.next_attempt_at,
        }
