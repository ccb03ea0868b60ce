from wayfarer.resilience.breaker import CircuitBreaker, CircuitState
from wayfarer.resilience.limiter import RateLimiter
from wayfarer.resilience.policy import PRESETS, Resilience, TargetConfig

__all__ = ["CircuitBreaker", "CircuitState", "RateLimiter", "Resilience", "TargetConfig", "PRESETS"]
