from typing import List, Optional


class WayfarerError(Exception):
    pass


class CircuitOpenError(WayfarerError):
    """Raised without calling the target while its breaker is open."""

    def __init__(self, target: str, retry_in_s: Optional[float] = None):
        super().__init__(f"circuit open for {target}")
        self.target = target
        self.retry_in_s = retry_in_s


class RateLimitedError(WayfarerError):
    def __init__(self, target: str):
        super().__init__(f"rate limited: {target}")
        self.target = target


class ExternalTimeoutError(WayfarerError):
    def __init__(self, target: str, timeout_s: float):
        super().__init__(f"{target} timed out after {timeout_s}s")
        self.target = target
        self.timeout_s = timeout_s


class ToolError(WayfarerError):
    def __init__(self, reason: str, detail: str = ""):
        super().__init__(f"{reason}: {detail}" if detail else reason)
        self.reason = reason
        self.detail = detail


class ProviderHTTPError(ToolError):
    def __init__(self, status: int, detail: str = ""):
        super().__init__("http_error", f"{status} {detail}".strip())
        self.status = status


class UnknownLocationError(ToolError):
    def __init__(self, field: str, query: str, suggestions: Optional[List[dict]] = None):
        super().__init__("not_found", f"Unknown {field}: {query}")
        self.field = field
        self.query = query
        self.suggestions = suggestions or []


class StoreError(WayfarerError):
    pass


class CancelledByCaller(WayfarerError):
    def __init__(self, target: str):
        super().__init__(f"{target} call cancelled by caller")
        self.target = target
