"""
Logging setup.
"""
import logging
import logging.config

from boardvote.core.config import settings


class HealthEndpointFilter(logging.Filter):
    """Drop successful health-check access lines."""

    def filter(self, record: logging.LogRecord) -> bool:
        message = record.getMessage()
        if "/api/health" in message:
            return " 200" not in message
        return True


def configure_logging(level: str | None = None) -> None:
    level = (level or settings.LOG_LEVEL).upper()
    logging.config.dictConfig({
        "version": 1,
        "disable_existing_loggers": False,
        "filters": {
            "health": {"()": HealthEndpointFilter},
        },
        "formatters": {
            "default": {
                "format": "%(asctime)s %(levelname)s [%(name)s] %(message)s",
            },
        },
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "formatter": "default",
            },
            "access": {
                "class": "logging.StreamHandler",
                "formatter": "default",
                "filters": ["health"],
            },
        },
        "loggers": {
            "boardvote": {"level": level},
            "uvicorn.access": {"handlers": ["access"], "level": "INFO", "propagate": False},
        },
        "root": {"handlers": ["console"], "level": "WARNING"},
    })
