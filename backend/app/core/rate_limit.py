# core/rate_limit.py
"""
Fixed-window request counting per client.

Counters live behind a small store interface so a shared backend can replace
the in-memory map when the API runs on more than one instance. This is an
approximate abuse guard; nothing in the payment flow relies on it for
correctness.
"""
import asyncio
import logging
import math
import time
from dataclasses import dataclass
from typing import Callable, Dict, Optional

from fastapi import Request

logger = logging.getLogger("storefront.ratelimit")

SWEEP_INTERVAL_SECONDS = 5 * 60


@dataclass(frozen=True)
class RateLimitConfig:
    max_requests: int
    window_seconds: int


@dataclass(frozen=True)
class RateLimitResult:
    success: bool
    remaining: int
    reset_in: int  # seconds until the window resets


RATE_LIMITS: Dict[str, RateLimitConfig] = {
    # Payment endpoints - strict
    "payment": RateLimitConfig(max_requests=10, window_seconds=60),
    # Notification endpoints - moderate
    "notification": RateLimitConfig(max_requests=20, window_seconds=60),
    # Gateway webhooks - relaxed
    "callback": RateLimitConfig(max_requests=50, window_seconds=60),
    "default": RateLimitConfig(max_requests=100, window_seconds=60),
}


class RateLimitExceeded(Exception):
    def __init__(self, bucket: str, result: RateLimitResult, message: str = "Too many requests. Please try again later."):
        super().__init__(message)
        self.bucket = bucket
        self.result = result
        self.message = message


class RateLimitStore:
    """Interface for window counters."""

    def hit(self, key: str, config: RateLimitConfig, now: float) -> RateLimitResult:
        raise NotImplementedError

    def sweep(self, now: float) -> int:
        raise NotImplementedError


class MemoryRateLimitStore(RateLimitStore):
    """Single-process store: {key: [count, reset_at]}."""

    def __init__(self):
        self._entries: Dict[str, list] = {}

    def hit(self, key: str, config: RateLimitConfig, now: float) -> RateLimitResult:
        entry = self._entries.get(key)

        if entry is None or entry[1] < now:
            self._entries[key] = [1, now + config.window_seconds]
            return RateLimitResult(
                success=True,
                remaining=config.max_requests - 1,
                reset_in=config.window_seconds,
            )

        reset_in = math.ceil(entry[1] - now)
        if entry[0] >= config.max_requests:
            return RateLimitResult(success=False, remaining=0, reset_in=reset_in)

        entry[0] += 1
        return RateLimitResult(
            success=True,
            remaining=config.max_requests - entry[0],
            reset_in=reset_in,
        )

    def sweep(self, now: float) -> int:
        expired = [key for key, entry in self._entries.items() if entry[1] < now]
        for key in expired:
            del self._entries[key]
        return len(expired)

    def __len__(self):
        return len(self._entries)


class RateLimiter:
    def __init__(self, store: Optional[RateLimitStore] = None, clock: Callable[[], float] = time.monotonic):
        self.store = store or MemoryRateLimitStore()
        self.clock = clock

    def check(self, identifier: str, config: RateLimitConfig) -> RateLimitResult:
        return self.store.hit(identifier, config, self.clock())

    def sweep(self) -> int:
        return self.store.sweep(self.clock())


def get_client_identifier(request: Request) -> str:
    forwarded_for = request.headers.get("x-forwarded-for")
    if forwarded_for:
        return forwarded_for.split(",")[0].strip()

    real_ip = request.headers.get("x-real-ip")
    if real_ip:
        return real_ip

    cf_ip = request.headers.get("cf-connecting-ip")
    if cf_ip:
        return cf_ip

    return "unknown"


# Process-wide default; swapped out through app.state / dependency overrides
rate_limiter = RateLimiter()


def get_rate_limiter(request: Request) -> RateLimiter:
    return getattr(request.app.state, "rate_limiter", None) or rate_limiter


def rate_limit(bucket: str):
    """FastAPI dependency factory enforcing the named bucket."""
    config = RATE_LIMITS.get(bucket, RATE_LIMITS["default"])

    def _dep(request: Request):
        limiter = get_rate_limiter(request)
        client_id = get_client_identifier(request)
        result = limiter.check(f"{bucket}:{client_id}", config)
        if not result.success:
            logger.warning(f"[RateLimit] {bucket} exceeded by {client_id}")
            raise RateLimitExceeded(bucket, result)
        return result

    return _dep


async def sweep_forever(limiter: RateLimiter, interval: int = SWEEP_INTERVAL_SECONDS):
    while True:
        await asyncio.sleep(interval)
        try:
            removed = limiter.sweep()
            if removed:
                logger.debug(f"Swept {removed} expired rate-limit windows")
        except Exception as e:
            logger.error(f"Rate-limit sweep failed: {e}")
