"""Centralized logging configuration for the user API."""

from __future__ import annotations

import logging
from logging.config import dictConfig

_LOGGING_CONFIG = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "standard": {
            "format": "%(asctime)s | %(levelname)s | %(name)s | %(message)s",
        },
    },
    "handlers": {
        "console": {
            "class": "logging.StreamHandler",
            "formatter": "standard",
        }
    },
    "loggers": {
        "uvicorn": {"handlers": ["console"], "level": "INFO", "propagate": False},
        "uvicorn.error": {"handlers": ["console"], "level": "INFO", "propagate": False},
        "uvicorn.access": {"handlers": ["console"], "level": "INFO", "propagate": False},
        "user_api": {"handlers": ["console"], "level": "INFO", "propagate": False},
        "user_api.request": {"handlers": ["console"], "level": "INFO", "propagate": False},
    },
}


def configure_logging(level: str = "INFO") -> None:
    """Configure application-wide logging once."""

    config = _LOGGING_CONFIG.copy()
    config["loggers"] = {
        name: {**logger, "level": level.upper()} if name.startswith("user_api") else logger
        for name, logger in _LOGGING_CONFIG["loggers"].items()
    }
    config["root"] = {"level": level.upper(), "handlers": ["console"]}
    dictConfig(config)


def get_logger(name: str | None = None) -> logging.Logger:
    """Return a namespaced logger within the user_api hierarchy."""

    full_name = f"user_api.{name}" if name else "user_api"
    return logging.getLogger(full_name)
