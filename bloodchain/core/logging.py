"""
Logging setup for the BloodChain service.

Application loggers live under ``bloodchain``: services log under their module
name, published domain events under ``bloodchain.events``, and HTTP traffic
under ``bloodchain.http``. Every record carries a ``request_id`` (``N/A``
outside a request) so the format string can always reference it.
"""
import logging
import logging.handlers
import os
import sys

from bloodchain.core.config import Settings, settings

APP_LOGGER = "bloodchain"
EVENTS_LOGGER = "bloodchain.events"


class RequestIDFilter(logging.Filter):
    def filter(self, record):
        record.request_id = getattr(record, "request_id", "N/A")
        return True


def setup_logging(config: Settings = settings) -> logging.Logger:
    """Install console (and, outside debug, rotating file) handlers and return the app logger."""
    level = getattr(logging, config.LOG_LEVEL.upper(), logging.INFO)
    formatter = logging.Formatter(config.LOG_FORMAT)
    request_ids = RequestIDFilter()

    root_logger = logging.getLogger()
    root_logger.setLevel(logging.WARNING)
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    handlers = [logging.StreamHandler(sys.stdout)]
    if not config.DEBUG and config.LOG_FILE:
        log_dir = os.path.dirname(config.LOG_FILE)
        if log_dir:
            os.makedirs(log_dir, exist_ok=True)
        handlers.append(logging.handlers.RotatingFileHandler(
            config.LOG_FILE,
            maxBytes=10*1024*1024,  # 10MB
            backupCount=5,
            encoding="utf-8",
        ))
    for handler in handlers:
        handler.setFormatter(formatter)
        handler.addFilter(request_ids)
        root_logger.addHandler(handler)

    # Third-party loggers stay at WARNING; uvicorn keeps its startup lines
    logging.getLogger("uvicorn").setLevel(logging.INFO)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)

    app_logger = logging.getLogger(APP_LOGGER)
    app_logger.setLevel(level)
    logging.getLogger(EVENTS_LOGGER).setLevel(level if config.LOG_EVENTS else logging.WARNING)
    return app_logger


logger = setup_logging()
