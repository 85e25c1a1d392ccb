"""Client-side request throttling for Kubernetes API clients.

Provides a token bucket limiter and an ApiClient subclass that takes a
token before every request.
"""

from __future__ import annotations

import threading
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from kubernetes.client import ApiClient, Configuration

from yatai_bento.config import Settings


@dataclass(frozen=True)
class RateLimitConfig:
    """Sustained rate and burst size for Kubernetes API requests.

    Attributes:
        qps: Requests per second refilled into the bucket.
        burst: Bucket capacity.
    """

    qps: float
    burst: int

    def __post_init__(self) -> None:
        """Validate limits after initialization."""
        if self.qps <= 0:
            raise ValueError("qps must be positive")
        if self.burst < 1:
            raise ValueError("burst must be at least 1")

    @classmethod
    def from_settings(cls, settings: Settings) -> RateLimitConfig:
        """Build the limits configured in settings."""
        return cls(qps=settings.kube_qps, burst=settings.kube_burst)


class RateLimiter:
    """Token bucket; callers wait for a token instead of being rejected."""

    def __init__(
        self,
        qps: float,
        burst: int,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.qps = qps
        self.burst = burst
        self._clock = clock
        self._sleep = sleep
        self._tokens = float(burst)
        self._updated = clock()
        self._lock = threading.Lock()

    def acquire(self) -> float:
        """Take one token, sleeping until it is available.

        Returns:
            Seconds spent waiting.
        """
        with self._lock:
            now = self._clock()
            elapsed = max(0.0, now - self._updated)
            self._tokens = min(float(self.burst), self._tokens + elapsed * self.qps)
            self._updated = now
            # A negative balance reserves tokens for waiting callers
            self._tokens -= 1.0
            wait = 0.0 if self._tokens >= 0 else -self._tokens / self.qps

        if wait > 0:
            self._sleep(wait)
        return wait


class RateLimitedApiClient(ApiClient):  # type: ignore[misc]
    """Kubernetes ApiClient that passes every call through a RateLimiter."""

    def __init__(self, configuration: Configuration, rate_limiter: RateLimiter) -> None:
        super().__init__(configuration=configuration)
        self.rate_limiter = rate_limiter

    def call_api(self, *args: Any, **kwargs: Any) -> Any:
        """Wait for a token, then perform the request."""
        self.rate_limiter.acquire()
        return super().call_api(*args, **kwargs)


__all__ = ["RateLimitConfig", "RateLimitedApiClient", "RateLimiter"]
