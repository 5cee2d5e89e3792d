from fastapi import APIRouter, Depends

from authguard.app.auth.deps import get_rate_limiter
from authguard.app.services.rate_limit import RateLimiter

router = APIRouter()

VERSION = "0.1.0"


@router.get("/health")
def health():
    """Constant-time health check."""
    return {"status": "healthy"}


@router.get("/health/deep")
def health_deep(limiter: RateLimiter = Depends(get_rate_limiter)):
    """Health check that also reports limiter occupancy."""
    return {
        "status": "healthy",
        "rate_limiter": {
            "tracked_identifiers": len(limiter),
            "max_attempts": limiter.config.max_attempts,
            "window_ms": limiter.config.window_ms,
        },
    }


@router.get("/version")
async def version():
    return {"version": VERSION}
