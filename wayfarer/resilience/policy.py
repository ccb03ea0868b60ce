"""
Per-target resilience: limiter -> breaker -> timeout -> retry around every
outbound call.

One Resilience instance is built at startup and shared by reference, so a
failing provider throttles every thread, not just the one that noticed.
"""
import asyncio
import logging
import time
from dataclasses import dataclass, fields, replace
from typing import Any, Awaitable, Callable, Dict, Mapping, Optional, TypeVar

from wayfarer.config import env_override
from wayfarer.errors import (
    CancelledByCaller,
    CircuitOpenError,
    ExternalTimeoutError,
    ProviderHTTPError,
    ToolError,
)
from wayfarer.resilience.breaker import CircuitBreaker
from wayfarer.resilience.limiter import RateLimiter

log = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class TargetConfig:
    failure_threshold: int = 5
    success_threshold: int = 3
    reset_timeout_s: float = 30.0
    timeout_s: float = 10.0
    max_attempts: int = 3
    initial_delay_s: float = 0.2
    max_delay_s: float = 8.0
    max_concurrent: int = 3
    min_interval_s: float = 0.25


PRESETS: Dict[str, Dict[str, Any]] = {
    "weather": {"timeout_s": 8.0, "max_concurrent": 2, "min_interval_s": 0.25},
    "flights": {"timeout_s": 15.0, "max_concurrent": 2, "min_interval_s": 0.5},
    "attractions": {"timeout_s": 8.0, "max_concurrent": 3, "min_interval_s": 0.2},
    "search": {"timeout_s": 12.0, "max_concurrent": 1, "min_interval_s": 1.0},
    "countries": {"timeout_s": 6.0, "max_concurrent": 2, "min_interval_s": 0.2},
    "llm": {"timeout_s": 20.0, "max_attempts": 2, "min_interval_s": 0.0},
}

# tool failures that will not get better on a second try
_FINAL_REASONS = {"not_found", "not_configured", "missing_slots", "empty"}


def is_retryable(exc: BaseException) -> bool:
    if isinstance(exc, (CircuitOpenError, CancelledByCaller)):
        return False
    if isinstance(exc, ProviderHTTPError):
        return exc.status == 429 or exc.status >= 500
    if isinstance(exc, ToolError):
        return exc.reason not in _FINAL_REASONS
    return True


def backoff_delay(attempt: int, cfg: TargetConfig) -> float:
    """Delay before retry number `attempt` (1-based)."""
    return min(cfg.max_delay_s, cfg.initial_delay_s * (2 ** (attempt - 1)))


def _coerce(field_type: Any, raw: str) -> Any:
    if field_type in (int, "int"):
        return int(raw)
    return float(raw)


class Resilience:
    """
    Registry of per-target breakers and limiters plus the execute() wrapper.

        res = Resilience()
        data = await res.execute("weather", lambda: fetch(...))
    """

    def __init__(
        self,
        defaults: Optional[TargetConfig] = None,
        overrides: Optional[Mapping[str, Mapping[str, Any]]] = None,
        use_env: bool = True,
        clock: Callable[[], float] = time.monotonic,
        sleep=asyncio.sleep,
    ):
        self.defaults = defaults or TargetConfig()
        self._overrides = {k: dict(v) for k, v in (overrides or {}).items()}
        self._use_env = use_env
        self._clock = clock
        self._sleep = sleep
        self._configs: Dict[str, TargetConfig] = {}
        self._breakers: Dict[str, CircuitBreaker] = {}
        self._limiters: Dict[str, RateLimiter] = {}

    def config_for(self, target: str) -> TargetConfig:
        if target in self._configs:
            return self._configs[target]

        cfg = replace(self.defaults, **PRESETS.get(target, {}))
        if self._use_env:
            patch = {}
            for f in fields(TargetConfig):
                raw = env_override(target, f.name)
                if raw is None:
                    continue
                try:
                    patch[f.name] = _coerce(f.type, raw)
                except ValueError:
                    log.warning("bad_resilience_override", extra={"target": target, "field": f.name})
            cfg = replace(cfg, **patch)
        if target in self._overrides:
            cfg = replace(cfg, **self._overrides[target])

        self._configs[target] = cfg
        return cfg

    def breaker(self, target: str) -> CircuitBreaker:
        if target not in self._breakers:
            cfg = self.config_for(target)
            self._breakers[target] = CircuitBreaker(
                target,
                failure_threshold=cfg.failure_threshold,
                success_threshold=cfg.success_threshold,
                reset_timeout_s=cfg.reset_timeout_s,
                clock=self._clock,
            )
        return self._breakers[target]

    def limiter(self, target: str) -> RateLimiter:
        if target not in self._limiters:
            cfg = self.config_for(target)
            self._limiters[target] = RateLimiter(
                cfg.max_concurrent, cfg.min_interval_s, clock=self._clock, sleep=self._sleep
            )
        return self._limiters[target]

    async def execute(
        self,
        target: str,
        fn: Callable[[], Awaitable[T]],
        cancel: Optional[asyncio.Event] = None,
    ) -> T:
        """
        Run fn under the target's policy.

        Raises CircuitOpenError immediately while the breaker is open,
        ExternalTimeoutError when the whole attempt sequence overruns,
        CancelledByCaller when `cancel` is set, or the last error from fn.
        """
        cfg = self.config_for(target)
        breaker = self.breaker(target)

        if cancel is not None and cancel.is_set():
            raise CancelledByCaller(target)
        breaker.before_call()

        try:
            async with self.limiter(target):
                result = await asyncio.wait_for(
                    self._attempts(target, fn, cfg, cancel), timeout=cfg.timeout_s
                )
        except asyncio.TimeoutError:
            breaker.record_failure()
            log.warning("external_timeout", extra={"target": target, "timeout_s": cfg.timeout_s})
            raise ExternalTimeoutError(target, cfg.timeout_s) from None
        except (asyncio.CancelledError, CancelledByCaller):
            breaker.release()
            raise
        except ToolError as e:
            # the target answered; "not found" is not an outage
            if e.reason in _FINAL_REASONS:
                breaker.record_success()
            else:
                breaker.record_failure()
            raise
        except Exception:
            breaker.record_failure()
            raise

        breaker.record_success()
        return result

    async def _attempts(self, target, fn, cfg: TargetConfig, cancel) -> Any:
        attempt = 0
        while True:
            attempt += 1
            try:
                return await _run_cancellable(target, fn, cancel)
            except Exception as e:
                if attempt >= cfg.max_attempts or not is_retryable(e):
                    raise
                delay = backoff_delay(attempt, cfg)
                log.info(
                    "retrying",
                    extra={"target": target, "attempt": attempt, "delay_s": delay, "error": type(e).__name__},
                )
                await self._sleep(delay)
                if cancel is not None and cancel.is_set():
                    raise CancelledByCaller(target)

    def snapshot(self) -> Dict[str, Dict[str, Any]]:
        out = {}
        for target, br in self._breakers.items():
            out[target] = br.snapshot()
            if target in self._limiters:
                out[target].update(self._limiters[target].stats())
        return out

    def reset(self) -> None:
        for br in self._breakers.values():
            br.reset()


async def _run_cancellable(target: str, fn, cancel: Optional[asyncio.Event]):
    if cancel is None:
        return await fn()

    task = asyncio.ensure_future(fn())
    waiter = asyncio.ensure_future(cancel.wait())
    try:
        done, _ = await asyncio.wait({task, waiter}, return_when=asyncio.FIRST_COMPLETED)
    except asyncio.CancelledError:
        task.cancel()
        waiter.cancel()
        raise
    if task in done:
        waiter.cancel()
        return task.result()
    task.cancel()
    raise CancelledByCaller(target)
