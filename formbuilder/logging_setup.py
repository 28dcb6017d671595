"""Logging configuration for the service.

Every record goes to stdout with the current request id attached by
``RequestIdLogFilter``. The service's own loggers (``formbuilder.*``) and
SQLAlchemy's engine logger take their levels from the ``logging`` config
section, so an operator can turn on SQL tracing without redeploying.
"""
from __future__ import annotations

import logging
from logging.config import dictConfig
from typing import Any, Dict, Optional

from formbuilder.config import get_config

LOG_FORMAT = "%(asctime)s %(levelname)s:%(name)s:[%(request_id)s] %(message)s"


def build_logging_config(level: str = "INFO", sql_level: str = "WARNING") -> Dict[str, Any]:
    """Return the dictConfig mapping for the given levels."""
    console = {"level": level, "handlers": ["console"], "propagate": False}
    return {
        "version": 1,
        "disable_existing_loggers": False,
        "filters": {"request_id": {"()": "formbuilder.http.request_id.RequestIdLogFilter"}},
        "formatters": {"default": {"format": LOG_FORMAT}},
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "level": "DEBUG",
                "formatter": "default",
                "filters": ["request_id"],
                "stream": "ext://sys.stdout",
            }
        },
        "root": {"level": "WARNING", "handlers": ["console"]},
        "loggers": {
            "formbuilder": console,
            "uvicorn": {"level": "INFO", "handlers": ["console"], "propagate": False},
            "uvicorn.access": {"level": "INFO", "handlers": ["console"], "propagate": False},
            "sqlalchemy.engine": {"level": sql_level},
        },
    }


def configure_logging(level: Optional[str] = None, sql_level: Optional[str] = None) -> bool:
    """Apply logging configuration once per process.

    Returns False without changes when the root logger already has handlers
    (reloaders, pytest's log capture).
    """
    if logging.getLogger().handlers:
        return False
    settings = get_config().logging
    dictConfig(build_logging_config(level or settings.level, sql_level or settings.sql_level))
    return True


__all__ = ["LOG_FORMAT", "build_logging_config", "configure_logging"]
