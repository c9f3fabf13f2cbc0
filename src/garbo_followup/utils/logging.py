"""Shared logging configuration for garbo-followup."""

import logging
import json
from datetime import datetime, timezone


# Attributes every LogRecord carries; anything else came in through ``extra``.
_RECORD_ATTRS = set(
    vars(logging.LogRecord("", logging.INFO, "", 0, "", (), None))
) | {"message", "asctime", "taskName"}


class JSONFormatter(logging.Formatter):
    """Format logs as JSON for better parsing."""

    def format(self, record):
        log_data = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }
        for key, value in record.__dict__.items():
            if key not in _RECORD_ATTRS and key not in log_data:
                log_data[key] = value
        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)
        return json.dumps(log_data, default=str)


def setup_logging(name: str, level=logging.INFO) -> logging.Logger:
    """Set up structured logging.

    Safe to call more than once for the same logger name: the JSON handler
    is only attached the first time.
    """
    logger = logging.getLogger(name)
    logger.setLevel(level)

    if not any(isinstance(h.formatter, JSONFormatter) for h in logger.handlers):
        handler = logging.StreamHandler()
        handler.setFormatter(JSONFormatter())
        logger.addHandler(handler)

    return logger
