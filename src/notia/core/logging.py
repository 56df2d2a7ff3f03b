"""
Logging Configuration

One console handler on stdout shared by the application and the servers
it embeds. Library loggers that are chatty at INFO (SQL echo, one line per
outgoing HTTP call) are held at WARNING.
"""

import sys
from logging.config import dictConfig

from notia.core.config import settings

LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# Third-party logger name → level
_LIBRARY_LEVELS = {
    "uvicorn": "INFO",
    "uvicorn.access": "INFO",
    "sqlalchemy.engine": "WARNING",
    "httpx": "WARNING",
    "sentence_transformers": "WARNING",
}


def _console_logger(level: str) -> dict:
    return {"level": level, "handlers": ["console"], "propagate": False}


def setup_logging(level: str | None = None) -> None:
    """
    Configure logging for the API process and the maintenance scripts.

    Args:
        level: Overrides ``LOG_LEVEL`` from settings when given.
    """
    app_level = (level or settings.LOG_LEVEL).upper()

    loggers = {name: _console_logger(lvl) for name, lvl in _LIBRARY_LEVELS.items()}
    loggers["notia"] = _console_logger(app_level)

    dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {"default": {"format": LOG_FORMAT, "datefmt": DATE_FORMAT}},
            "handlers": {
                "console": {
                    "class": "logging.StreamHandler",
                    "stream": sys.stdout,
                    "formatter": "default",
                },
            },
            "root": {"level": app_level, "handlers": ["console"]},
            "loggers": loggers,
        }
    )
