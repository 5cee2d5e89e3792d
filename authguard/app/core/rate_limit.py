"""Core rate limiting interfaces for request handlers."""
from __future__ import annotations

import math
from typing import TYPE_CHECKING

from authguard.app.core.logging import rate_limit_key_ctx

if TYPE_CHECKING:
    from authguard.app.services.rate_limit import RateLimitDecision, RateLimiter


class RateLimitExceeded(Exception):
    """Raised when a rate limit is exceeded."""

    def __init__(self, identifier: str, decision: "RateLimitDecision", now: float) -> None:
        super().__init__(f"Rate limit exceeded for {identifier}")
        self.identifier = identifier
        self.decision = decision
        self.now = now

    @property
    def retry_after_seconds(self) -> int | None:
        """Whole seconds until the lockout ends, or None for an unbounded lockout."""
        remaining = self.decision.retry_after_ms(self.now)
        if not math.isfinite(remaining):
            return None
        return max(1, math.ceil(remaining / 1000))


def check_rate_limit(limiter: "RateLimiter", identifier: str) -> "RateLimitDecision":
    """Consume an attempt for ``identifier``; raise RateLimitExceeded when denied."""
    token = rate_limit_key_ctx.set(identifier)
    try:
        decision = limiter.check_limit(identifier)
        if not decision.allowed:
            raise RateLimitExceeded(identifier, decision, limiter.now())
        return decision
    finally:
        rate_limit_key_ctx.reset(token)


def json_timestamp(value: float | None) -> float | None:
    """Timestamp safe for a JSON body; an unbounded lockout has no finite end and maps to None."""
    if value is None or not math.isfinite(value):
        return None
    return value
