"""Rate limiting with token-bucket and sliding-window throughput control.

Manifesto:
Anything an untrusted caller can trigger repeatedly (log lines, parse
requests, expensive lookups) needs a ceiling on how often it can happen.
These limiters are the in-process ceiling; ``core.logging`` uses a token
bucket to bound log volume.

ARCHITECTURE
────────────
::

    RateLimiter (ABC)
      ├── acquire(tokens, block)   ─ one retry loop, sleeps outside the lock
      ├── require(tokens)          ─ LimitExceededError with retry_after
      ├── TokenBucketLimiter       ─ steady rate + burst capacity
      └── SlidingWindowLimiter     ─ exact count in a rolling window

    Subclasses only answer "how long until ``tokens`` fit?" under the lock.
    Refused requests are counted in ``denied``.

Example::

    limiter = TokenBucketLimiter(rate=10, capacity=20)
    limiter.require()   # raises LimitExceededError when empty

Tags:
    resguard, execution, rate-limit, throttle, token-bucket

Doc-Types:
    api-reference
"""

from __future__ import annotations

import math
import threading
import time
from abc import ABC, abstractmethod
from collections import deque
from dataclasses import dataclass, field

from resguard.core.errors import InvalidArgumentError, LimitExceededError


class RateLimiter(ABC):
    """Thread-safe limiter skeleton.

    ``_wait_locked`` runs with ``_lock`` held. It returns 0.0 when
    ``tokens`` fit now (consuming them if ``take``), the seconds until they
    would fit otherwise, or ``math.inf`` when they never can.
    """

    _lock: threading.Lock
    denied: int

    @abstractmethod
    def _wait_locked(self, tokens: int, now: float, *, take: bool) -> float: ...

    @staticmethod
    def _check_tokens(tokens: int) -> None:
        if tokens < 1:
            raise InvalidArgumentError(
                f"tokens must be at least 1, got {tokens}",
                operation="rate_limit",
                observed=tokens,
            )

    def acquire(self, tokens: int = 1, block: bool = False) -> bool:
        """Take ``tokens``; with ``block``, sleep until they fit."""
        self._check_tokens(tokens)
        while True:
            with self._lock:
                wait = self._wait_locked(tokens, time.monotonic(), take=True)
                if wait == 0.0:
                    return True
                if not block or math.isinf(wait):
                    self.denied += 1
                    return False
            time.sleep(wait)

    def get_wait_time(self, tokens: int = 1) -> float:
        """Seconds until ``tokens`` fit (0 if now, ``inf`` if never)."""
        self._check_tokens(tokens)
        with self._lock:
            return self._wait_locked(tokens, time.monotonic(), take=False)

    def require(self, tokens: int = 1, operation: str = "operation") -> None:
        """Acquire without blocking or raise ``LimitExceededError``."""
        if not self.acquire(tokens):
            raise LimitExceededError(
                f"Rate limit exceeded for '{operation}'",
                operation=operation,
                observed=tokens,
            ).with_context(retry_after=self.get_wait_time(tokens))


@dataclass
class TokenBucketLimiter(RateLimiter):
    """Refills ``rate`` tokens per second up to ``capacity``.

    Starts full, so a burst of ``capacity`` passes immediately.
    """

    rate: float
    capacity: float

    denied: int = field(default=0, init=False)
    _tokens: float = field(default=0.0, init=False, repr=False)
    _stamp: float = field(default_factory=time.monotonic, init=False, repr=False)
    _lock: threading.Lock = field(default_factory=threading.Lock, init=False, repr=False)

    def __post_init__(self):
        if self.rate <= 0 or self.capacity <= 0:
            raise InvalidArgumentError(
                f"rate and capacity must be positive, got {self.rate}, {self.capacity}",
                operation="rate_limit",
            )
        self._tokens = float(self.capacity)

    def _wait_locked(self, tokens: int, now: float, *, take: bool) -> float:
        if tokens > self.capacity:
            return math.inf
        self._tokens = min(self.capacity, self._tokens + (now - self._stamp) * self.rate)
        self._stamp = now
        shortfall = tokens - self._tokens
        if shortfall > 0:
            return shortfall / self.rate
        if take:
            self._tokens -= tokens
        return 0.0

    @property
    def available_tokens(self) -> float:
        with self._lock:
            self._wait_locked(0, time.monotonic(), take=False)
            return self._tokens


@dataclass
class SlidingWindowLimiter(RateLimiter):
    """At most ``max_requests`` in any ``window_seconds`` interval."""

    max_requests: int
    window_seconds: float

    denied: int = field(default=0, init=False)
    _stamps: deque[float] = field(default_factory=deque, init=False, repr=False)
    _lock: threading.Lock = field(default_factory=threading.Lock, init=False, repr=False)

    def __post_init__(self):
        if self.max_requests <= 0 or self.window_seconds <= 0:
            raise InvalidArgumentError(
                f"max_requests and window_seconds must be positive, got {self.max_requests}, {self.window_seconds}",
                operation="rate_limit",
            )

    def _expire(self, now: float) -> None:
        cutoff = now - self.window_seconds
        while self._stamps and self._stamps[0] <= cutoff:
            self._stamps.popleft()

    def _wait_locked(self, tokens: int, now: float, *, take: bool) -> float:
        if tokens > self.max_requests:
            return math.inf
        self._expire(now)
        excess = len(self._stamps) + tokens - self.max_requests
        if excess > 0:
            # The excess-th oldest request has to leave the window first
            return self._stamps[excess - 1] + self.window_seconds - now
        if take:
            self._stamps.extend([now] * tokens)
        return 0.0

    @property
    def current_count(self) -> int:
        with self._lock:
            self._expire(time.monotonic())
            return len(self._stamps)


__all__ = ["RateLimiter", "TokenBucketLimiter", "SlidingWindowLimiter"]
