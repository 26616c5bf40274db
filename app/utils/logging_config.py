import logging
from logging.config import dictConfig

from app.core.config import LOG_JSON, LOG_LEVEL

LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"
JSON_FORMAT = '{"time":"%(asctime)s","level":"%(levelname)s","logger":"%(name)s","message":"%(message)s"}'

# Client libraries that log every HTTP request at INFO.
NOISY_LOGGERS = ["httpx", "httpcore", "hpack"]


def setup_logging():
    dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {
                "default": {"format": LOG_FORMAT},
                "json": {"format": JSON_FORMAT},
            },
            "handlers": {
                "console": {
                    "class": "logging.StreamHandler",
                    "formatter": "json" if LOG_JSON else "default",
                },
            },
            "loggers": {name: {"level": "WARNING"} for name in NOISY_LOGGERS},
            "root": {
                "level": LOG_LEVEL,
                "handlers": ["console"],
            },
        }
    )
    logging.getLogger(__name__).info(
        f"logging_configured level={LOG_LEVEL} json={LOG_JSON}"
    )
