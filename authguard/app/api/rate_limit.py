"""Operator endpoints for inspecting and tuning the login rate limiter."""
from fastapi import APIRouter, Depends
from pydantic import BaseModel, ConfigDict

from authguard.app.auth.deps import get_rate_limiter, require_admin_key
from authguard.app.core.errors import APIError, InvalidConfigurationError
from authguard.app.core.logging import get_logger
from authguard.app.core.rate_limit import json_timestamp
from authguard.app.services.rate_limit import RateLimiter

router = APIRouter(
    prefix="/admin/rate-limit",
    tags=["admin"],
    dependencies=[Depends(require_admin_key)],
)
logger = get_logger(__name__)


class RateLimitConfigUpdate(BaseModel):
    """Partial config; only fields present in the body are changed.

    Field constraints are not repeated here: the merged result is validated
    as a whole by ``RateLimiter.update_config``, which rejects bad values
    with InvalidConfigurationError and keeps the previous config.
    """

    model_config = ConfigDict(extra="forbid")

    max_attempts: int | None = None
    window_ms: int | None = None
    block_duration_ms: int | None = None
    backoff_multiplier: float | None = None
    reset_period_ms: int | None = None
    max_block_duration_ms: int | None = None
    sweep_interval_ms: int | None = None


@router.get("/config")
def get_config(limiter: RateLimiter = Depends(get_rate_limiter)) -> dict:
    return limiter.config.model_dump()


@router.patch("/config")
def update_config(body: RateLimitConfigUpdate, limiter: RateLimiter = Depends(get_rate_limiter)) -> dict:
    changes = body.model_dump(exclude_unset=True)
    try:
        config = limiter.update_config(**changes)
    except InvalidConfigurationError as exc:
        raise APIError(code="INVALID_RATE_LIMIT_CONFIG", message=str(exc), status_code=400) from exc
    return config.model_dump()


@router.post("/sweep")
def sweep(limiter: RateLimiter = Depends(get_rate_limiter)) -> dict:
    return {"evicted": limiter.sweep()}


@router.get("/{identifier:path}")
def get_status(identifier: str, limiter: RateLimiter = Depends(get_rate_limiter)) -> dict:
    status = limiter.get_status(identifier)
    # An unbounded lockout has no finite blocked_until to report.
    blocked = status.blocked_until is not None and limiter.now() < status.blocked_until
    return {
        "identifier": identifier,
        "attempts": list(status.attempts),
        "remaining_attempts": status.remaining_attempts,
        "blocked": blocked,
        "blocked_until": json_timestamp(status.blocked_until) if blocked else None,
        "backoff_level": status.backoff_level,
    }


@router.delete("/{identifier:path}")
def reset_identifier(identifier: str, limiter: RateLimiter = Depends(get_rate_limiter)) -> dict:
    limiter.reset(identifier)
    logger.info("Rate limit record reset", data={"identifier": identifier})
    return {"reset": identifier}


@router.delete("")
def reset_all(limiter: RateLimiter = Depends(get_rate_limiter)) -> dict:
    limiter.reset_all()
    logger.info("All rate limit records reset")
    return {"reset": "all"}
