"""Adaptive in-memory rate limiter.

Sliding-window attempt counting per identifier, with exponential lockout
escalation on repeated violations and decay back to the base lockout after
a quiet period.

Single-instance, not suitable for multi-process deployments: state lives in
process memory and is lost on restart.
"""
from __future__ import annotations

import math
import threading
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from authguard.app.core.clock import Clock, wall_clock_ms
from authguard.app.core.errors import InvalidConfigurationError, InvalidIdentifierError
from authguard.app.core.logging import get_logger

logger = get_logger(__name__)


class RateLimitConfig(BaseModel):
    """Limiter policy. All durations are in milliseconds."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    max_attempts: int = Field(default=5, gt=0)
    window_ms: int = Field(default=60_000, gt=0)
    block_duration_ms: int = Field(default=30_000, gt=0)
    backoff_multiplier: float = Field(default=2.0, ge=1)
    reset_period_ms: int | None = Field(default=None, gt=0)
    max_block_duration_ms: int | None = Field(default=None, gt=0)
    sweep_interval_ms: int | None = Field(default=None, gt=0)

    @model_validator(mode="after")
    def check_block_ceiling(self) -> "RateLimitConfig":
        if self.max_block_duration_ms is not None and self.max_block_duration_ms < self.block_duration_ms:
            raise ValueError("max_block_duration_ms must be >= block_duration_ms")
        return self

    @property
    def effective_reset_period_ms(self) -> int:
        """Quiet time before the backoff level decays (defaults to 3x the base block)."""
        if self.reset_period_ms is None:
            return 3 * self.block_duration_ms
        return self.reset_period_ms

    def lockout_ms(self, backoff_level: int) -> float:
        """Lockout length for the given (1-based) violation level."""
        try:
            lockout = self.block_duration_ms * self.backoff_multiplier ** (backoff_level - 1)
        except OverflowError:
            lockout = math.inf
        if self.max_block_duration_ms is not None:
            lockout = min(lockout, self.max_block_duration_ms)
        return lockout


@dataclass
class RateLimitState:
    attempts: list[float] = field(default_factory=list)
    blocked_until: float | None = None
    backoff_level: int = 0
    last_violation_time: float | None = None


@dataclass(frozen=True)
class RateLimitDecision:
    allowed: bool
    remaining_attempts: int
    blocked_until: float | None = None
    next_reset_time: float | None = None

    def retry_after_ms(self, now: float) -> float:
        """Time until the lockout ends, 0 when not blocked."""
        if self.blocked_until is None:
            return 0
        return max(0, self.blocked_until - now)


@dataclass(frozen=True)
class RateLimitStatus:
    attempts: tuple[float, ...]
    remaining_attempts: int
    blocked_until: float | None = None
    backoff_level: int = 0


def _coerce_config(config: RateLimitConfig | Mapping[str, Any] | None) -> RateLimitConfig:
    if isinstance(config, RateLimitConfig):
        return config
    try:
        return RateLimitConfig.model_validate(dict(config or {}))
    except ValidationError as exc:
        raise InvalidConfigurationError(str(exc)) from exc


def _validate_identifier(identifier: Any) -> str:
    if not isinstance(identifier, str) or not identifier.strip():
        raise InvalidIdentifierError("identifier must be a non-empty string")
    return identifier


class RateLimiter:
    """Per-identifier adaptive rate limiter.

    ``check_limit`` is the only operation that records attempts or escalates
    lockouts; ``get_status`` is a read path for display. One lock guards the
    whole identifier map, so every operation is atomic with respect to the
    others.
    """

    def __init__(
        self,
        config: RateLimitConfig | Mapping[str, Any] | None = None,
        *,
        clock: Clock | None = None,
    ) -> None:
        self._config = _coerce_config(config)
        self._clock = clock or wall_clock_ms
        self._lock = threading.Lock()
        self._states: dict[str, RateLimitState] = {}
        self._last_sweep: float | None = None

    @property
    def config(self) -> RateLimitConfig:
        return self._config

    def __len__(self) -> int:
        with self._lock:
            return len(self._states)

    def __contains__(self, identifier: object) -> bool:
        with self._lock:
            return identifier in self._states

    def now(self) -> float:
        return self._clock()

    def _prune(self, state: RateLimitState, now: float) -> None:
        window = self._config.window_ms
        state.attempts = [t for t in state.attempts if now - t < window]

    def _decay(self, state: RateLimitState, now: float) -> None:
        if (
            state.backoff_level > 0
            and state.last_violation_time is not None
            and now - state.last_violation_time > self._config.effective_reset_period_ms
        ):
            state.backoff_level = 0

    def check_limit(self, identifier: str) -> RateLimitDecision:
        """Record an attempt for ``identifier`` and decide whether it is allowed."""
        identifier = _validate_identifier(identifier)
        with self._lock:
            now = self._clock()
            self._maybe_sweep(now)
            cfg = self._config
            state = self._states.setdefault(identifier, RateLimitState())

            if state.blocked_until is not None:
                if now < state.blocked_until:
                    logger.info(
                        "Attempt denied while blocked",
                        data={"identifier": identifier, "blocked_until": state.blocked_until},
                    )
                    return RateLimitDecision(
                        allowed=False,
                        remaining_attempts=0,
                        blocked_until=state.blocked_until,
                    )
                # Block expired; the backoff level survives until the reset period elapses.
                state.blocked_until = None

            self._prune(state, now)
            self._decay(state, now)

            if len(state.attempts) < cfg.max_attempts:
                state.attempts.append(now)
                return RateLimitDecision(
                    allowed=True,
                    remaining_attempts=cfg.max_attempts - len(state.attempts),
                )

            state.backoff_level += 1
            state.last_violation_time = now
            lockout = cfg.lockout_ms(state.backoff_level)
            state.blocked_until = now + lockout
            logger.warning(
                "Rate limit exceeded",
                data={
                    "identifier": identifier,
                    "backoff_level": state.backoff_level,
                    "lockout_ms": lockout,
                },
            )
            return RateLimitDecision(
                allowed=False,
                remaining_attempts=0,
                blocked_until=state.blocked_until,
                next_reset_time=now + cfg.window_ms,
            )

    def get_status(self, identifier: str) -> RateLimitStatus:
        """Snapshot for display. Never consumes an attempt or escalates."""
        identifier = _validate_identifier(identifier)
        with self._lock:
            now = self._clock()
            state = self._states.setdefault(identifier, RateLimitState())
            self._prune(state, now)
            return RateLimitStatus(
                attempts=tuple(state.attempts),
                remaining_attempts=max(0, self._config.max_attempts - len(state.attempts)),
                blocked_until=state.blocked_until,
                backoff_level=state.backoff_level,
            )

    def reset(self, identifier: str) -> None:
        identifier = _validate_identifier(identifier)
        with self._lock:
            self._states.pop(identifier, None)

    def reset_all(self) -> None:
        with self._lock:
            self._states.clear()

    def update_config(self, **changes: Any) -> RateLimitConfig:
        """Merge ``changes`` into the live config.

        Existing lockouts keep the ``blocked_until`` computed under the old
        config. On invalid input the previous config stays in force.
        """
        with self._lock:
            merged = {**self._config.model_dump(), **changes}
            self._config = _coerce_config(merged)
            logger.info("Rate limit config updated", data={"changes": sorted(changes)})
            return self._config

    def sweep(self) -> int:
        """Evict records that carry no information beyond a fresh identifier."""
        with self._lock:
            return self._sweep(self._clock())

    def _sweep(self, now: float) -> int:
        idle = []
        for identifier, state in self._states.items():
            if state.blocked_until is not None and now < state.blocked_until:
                continue
            self._prune(state, now)
            self._decay(state, now)
            if not state.attempts and state.backoff_level == 0:
                idle.append(identifier)
        for identifier in idle:
            del self._states[identifier]
        self._last_sweep = now
        if idle:
            logger.debug("Evicted idle rate limit records", data={"evicted": len(idle)})
        return len(idle)

    def _maybe_sweep(self, now: float) -> None:
        interval = self._config.sweep_interval_ms
        if interval is None:
            return
        if self._last_sweep is None:
            self._last_sweep = now
            return
        if now - self._last_sweep >= interval:
            self._sweep(now)


__all__ = [
    "RateLimitConfig",
    "RateLimitDecision",
    "RateLimitState",
    "RateLimitStatus",
    "RateLimiter",
]
