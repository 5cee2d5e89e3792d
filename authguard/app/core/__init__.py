from .clock import Clock, wall_clock_ms
from .errors import APIError, InvalidConfigurationError, InvalidIdentifierError
from .logging import get_logger, request_id_ctx, setup_logging
from .rate_limit import RateLimitExceeded, check_rate_limit

__all__ = [
    "Clock",
    "wall_clock_ms",
    "APIError",
    "InvalidConfigurationError",
    "InvalidIdentifierError",
    "get_logger",
    "request_id_ctx",
    "setup_logging",
    "RateLimitExceeded",
    "check_rate_limit",
]
