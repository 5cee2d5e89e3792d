#!/usr/bin/env python3
"""Run the authguard API under uvicorn.

Bind address, port and log level come from the environment (see
``authguard.app.config.settings``). Auto-reload follows ``DEBUG``.
"""
import uvicorn

from authguard.app.config.settings import Settings, get_settings

APP_PATH = "authguard.app.main:app"


def uvicorn_options(settings: Settings) -> dict:
    return {
        "host": settings.host,
        "port": settings.port,
        "reload": settings.debug,
        "log_level": settings.log_level.lower(),
        # Our own JSON handler owns the access log.
        "access_log": False,
    }


def main() -> None:
    uvicorn.run(APP_PATH, **uvicorn_options(get_settings()))


if __name__ == "__main__":
    main()
