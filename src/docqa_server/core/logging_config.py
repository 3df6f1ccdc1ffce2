"""
Logging configuration.

All modules log through named ``docqa.*`` loggers; this module wires them to a
single stream handler once at startup.
"""

from __future__ import annotations

import logging.config

from ..config import settings


def configure_logging(level: str | None = None) -> None:
    """Configure root and ``docqa`` loggers."""

    logging.config.dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {
                "default": {
                    "format": "%(asctime)s %(levelname)s [%(name)s] %(message)s",
                },
            },
            "handlers": {
                "default": {
                    "class": "logging.StreamHandler",
                    "formatter": "default",
                },
            },
            "root": {
                "level": "WARNING",
                "handlers": ["default"],
            },
            "loggers": {
                "docqa": {
                    "level": (level or settings.log_level).upper(),
                    "handlers": ["default"],
                    "propagate": False,
                },
            },
        }
    )
