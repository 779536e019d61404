from __future__ import annotations

import logging
from logging.config import dictConfig

from cashwise_api.core.config import Settings

DEFAULT_LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def configure_logging(settings: Settings | None = None) -> None:
    """Configure process logging from ``CASHWISE_LOG_LEVEL``."""
    settings = settings or Settings()
    level = str(settings.log_level or "INFO").upper()

    dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {
                "default": {
                    "format": DEFAULT_LOG_FORMAT,
                },
            },
            "handlers": {
                "default": {
                    "class": "logging.StreamHandler",
                    "formatter": "default",
                },
            },
            "root": {
                "handlers": ["default"],
                "level": level,
            },
        }
    )

    # Request lines are emitted by the app middleware.
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
