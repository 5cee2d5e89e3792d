"""Shared error helpers."""
from dataclasses import dataclass


@dataclass
class APIError(Exception):
    code: str
    message: str
    status_code: int = 400
    detail: dict | None = None


class InvalidIdentifierError(ValueError):
    """Raised when a rate limit identifier is empty or not a string."""


class InvalidConfigurationError(ValueError):
    """Raised when a rate limit configuration would make the limiter degenerate."""
