"""
Logging setup for the facility import service.

Every module logs through ``logging.getLogger(__name__)``; this module wires
those loggers to a single stdout handler. Import progress logs under
``app.domain.imports`` and can be tuned separately from SQL noise.
"""
from __future__ import annotations

import logging
from logging.config import dictConfig
from typing import Optional


_is_configured = False

LOG_FORMAT = "%(asctime)s | %(levelname)-7s | %(threadName)s | %(name)s | %(message)s"


def configure_logging(level: Optional[str] = None, sql_level: str = "WARNING") -> None:
    """
    Configure logging once per process.

    Args:
        level: Level for the root and ``app`` loggers (e.g. "DEBUG", "INFO").
        sql_level: Level for ``sqlalchemy.engine``; per-row inserts echo at INFO.
    """
    global _is_configured

    if _is_configured:
        return

    log_level = (level or "INFO").upper()

    dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {
                "standard": {
                    "format": LOG_FORMAT,
                    "datefmt": "%Y-%m-%d %H:%M:%S",
                }
            },
            "handlers": {
                "console": {
                    "class": "logging.StreamHandler",
                    "formatter": "standard",
                    "level": log_level,
                }
            },
            "root": {
                "handlers": ["console"],
                "level": log_level,
            },
            "loggers": {
                "app": {"level": log_level},
                "sqlalchemy.engine": {"level": sql_level.upper()},
                "uvicorn.access": {"level": "WARNING"},
            },
        }
    )

    _is_configured = True
    logging.getLogger(__name__).debug("Logging configured at %s", log_level)
