"""Fixed-window rate limiting per (action, identifier).

Counters live in process memory, so limits are per instance. That matches
the single-instance deployment this backend targets.
"""
import math
import threading
import time
from typing import Callable, NamedTuple, Optional

from pydantic import BaseModel

from app.core.logging import setup_logging

logger = setup_logging("rate_limit")


class RateLimitPolicy(NamedTuple):
    action: str
    max_attempts: int
    window_seconds: int


CHAT_POLICY = RateLimitPolicy("chat", 30, 60)
IMAGE_POLICY = RateLimitPolicy("image", 10, 60 * 60)
COMPANION_CREATE_POLICY = RateLimitPolicy("companion_create", 10, 60 * 60)
SETTINGS_POLICY = RateLimitPolicy("settings", 20, 60 * 60)


# Seconds between sweeps of expired counters.
SWEEP_INTERVAL_SECONDS = 60


class RateLimitResult(BaseModel):
    """Outcome of one rate-limit check."""

    allowed: bool
    remaining: int
    reset_at: float
    error: Optional[str] = None


class RateLimitExceededError(Exception):
    """Raised by services when a rate limit denies the action."""


class RateLimiter:
    """Counts attempts per key inside a fixed window starting at the first attempt."""

    def __init__(self, clock: Callable[[], float] = time.time) -> None:
        self._clock = clock
        self._records: dict[str, tuple[int, float]] = {}
        self._lock = threading.Lock()
        self._next_sweep = clock() + SWEEP_INTERVAL_SECONDS

    def check(self, identifier: str, policy: RateLimitPolicy) -> RateLimitResult:
        """Record one attempt and report whether it is allowed."""
        key = f"{policy.action}:{identifier}"
        now = self._clock()
        with self._lock:
            if now >= self._next_sweep:
                self._sweep(now)
            record = self._records.get(key)
            if record is None or now > record[1]:
                reset_at = now + policy.window_seconds
                self._records[key] = (1, reset_at)
                return RateLimitResult(
                    allowed=True, remaining=policy.max_attempts - 1, reset_at=reset_at
                )

            count, reset_at = record
            if count >= policy.max_attempts:
                minutes = max(1, math.ceil((reset_at - now) / 60))
                logger.info(
                    "Rate limit hit for %s",
                    policy.action,
                    extra={"user_id": identifier},
                )
                return RateLimitResult(
                    allowed=False,
                    remaining=0,
                    reset_at=reset_at,
                    error=(
                        f"Rate limit exceeded. Please try again in {minutes} "
                        f"minute{'s' if minutes != 1 else ''}."
                    ),
                )

            self._records[key] = (count + 1, reset_at)
            return RateLimitResult(
                allowed=True, remaining=policy.max_attempts - count - 1, reset_at=reset_at
            )

    def _sweep(self, now: float) -> None:
        """Drop counters whose window has ended. Caller holds the lock."""
        expired = [key for key, (_, reset_at) in self._records.items() if now > reset_at]
        for key in expired:
            del self._records[key]
        self._next_sweep = now + SWEEP_INTERVAL_SECONDS
