from __future__ import annotations


def cors_kwargs(origins: list[str]) -> dict:
    return {
        "allow_origins": origins,
        "allow_credentials": False,
        "allow_methods": ["GET", "POST", "PATCH", "DELETE", "OPTIONS"],
        "allow_headers": ["Authorization", "Content-Type", "X-Request-Id", "X-Admin-Key"],
        # Clients read Retry-After to show the lockout countdown.
        "expose_headers": ["X-Request-Id", "Retry-After"],
    }
