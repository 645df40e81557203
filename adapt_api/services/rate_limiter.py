"""
Per-provider rate limiting for outpainting calls.

Adaptation batches fan out in parallel, so a single request can fire one
provider call per target size at the same moment. Each provider gets its own
token bucket with:
- a sustained requests-per-minute budget and a small burst,
- a minimum spacing between consecutive requests,
- exponential backoff after a 429 (30s, 60s, 120s, ... capped at 5 minutes).

The limiter only throttles; it never retries a failed call.
"""

from __future__ import annotations

import logging
import threading
import time
from typing import Dict, Optional

logger = logging.getLogger(__name__)

BASE_BACKOFF_SECONDS = 30.0
MAX_BACKOFF_SECONDS = 300.0


class ProviderRateLimiter:
    """Thread-safe token bucket for one provider."""

    def __init__(
        self,
        name: str,
        max_requests_per_minute: int = 60,
        burst_capacity: int = 6,
        min_interval_seconds: float = 0.5,
    ) -> None:
        self.name = name
        self.max_requests_per_minute = max_requests_per_minute
        self.burst_capacity = burst_capacity
        self.min_interval_seconds = min_interval_seconds

        self.tokens = float(burst_capacity)
        self.max_tokens = float(burst_capacity)
        self.refill_rate = max_requests_per_minute / 60.0
        self.last_refill = time.monotonic()
        self.last_request_time: Optional[float] = None

        self.rate_limited_until: Optional[float] = None
        self.consecutive_429s = 0

        self.lock = threading.Lock()

    def _refill_tokens(self, now: float) -> None:
        elapsed = now - self.last_refill
        self.tokens = min(self.max_tokens, self.tokens + elapsed * self.refill_rate)
        self.last_refill = now

    def backoff_seconds(self) -> float:
        """Backoff after the current run of 429s: 30s doubling, capped."""
        if self.consecutive_429s <= 0:
            return 0.0
        return min(BASE_BACKOFF_SECONDS * 2 ** (self.consecutive_429s - 1), MAX_BACKOFF_SECONDS)

    def _wait_time(self, now: float) -> float:
        """Seconds until a request may go out, 0 if one may go out now."""
        if self.rate_limited_until is not None:
            if now < self.rate_limited_until:
                return self.rate_limited_until - now
            self.rate_limited_until = None
            logger.info("Rate limit backoff for %s expired, resuming", self.name)

        self._refill_tokens(now)
        if self.tokens < 1.0:
            return (1.0 - self.tokens) / self.refill_rate if self.refill_rate > 0 else 1.0

        if self.last_request_time is not None:
            since_last = now - self.last_request_time
            if since_last < self.min_interval_seconds:
                return self.min_interval_seconds - since_last
        return 0.0

    def acquire(self, timeout: Optional[float] = None) -> bool:
        """
        Block until a request may be made.

        Returns False if `timeout` seconds pass first.
        """
        deadline = None if timeout is None else time.monotonic() + timeout
        while True:
            with self.lock:
                now = time.monotonic()
                wait = self._wait_time(now)
                if wait <= 0:
                    self.tokens -= 1.0
                    self.last_request_time = now
                    return True

            if deadline is not None:
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    logger.error("Rate limiter timeout for %s: %s", self.name, self.get_stats())
                    return False
                wait = min(wait, remaining)
            time.sleep(min(wait, 1.0))

    def report_429(self) -> None:
        with self.lock:
            self.consecutive_429s += 1
            backoff = self.backoff_seconds()
            self.rate_limited_until = time.monotonic() + backoff
            logger.warning(
                "%s returned 429 (consecutive: %d), backing off for %.0fs",
                self.name,
                self.consecutive_429s,
                backoff,
            )

    def report_success(self) -> None:
        with self.lock:
            if self.consecutive_429s > 0:
                self.consecutive_429s -= 1

    def get_stats(self) -> dict:
        with self.lock:
            now = time.monotonic()
            return {
                "provider": self.name,
                "tokens_available": self.tokens,
                "max_tokens": self.max_tokens,
                "consecutive_429s": self.consecutive_429s,
                "is_rate_limited": self.rate_limited_until is not None and now < self.rate_limited_until,
            }


_limiters: Dict[str, ProviderRateLimiter] = {}
_limiters_lock = threading.Lock()


def get_rate_limiter(provider: str) -> ProviderRateLimiter:
    """Get or create the limiter for a provider id."""
    with _limiters_lock:
        limiter = _limiters.get(provider)
        if limiter is None:
            limiter = ProviderRateLimiter(provider)
            _limiters[provider] = limiter
        return limiter
