"""
Structured Logging for the GAEN Key Store

Usage:
    from gaenstore.core.structured_logging import get_logger

    logger = get_logger("Ingestion")
    logger.info("keys_ingested", batch_size=12, countries=3)

Log events must never carry key material or un-bucketed upload instants.
"""

import json
import logging
import sys
from datetime import datetime, timezone

ROOT_LOGGER_NAME = "gaenstore"

_setup_done = False


class JSONLogFormatter(logging.Formatter):
    """Render log records as single-line JSON"""

    def format(self, record: logging.LogRecord) -> str:
        log_entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "component": getattr(record, "component", record.name),
            "event": getattr(record, "event", record.getMessage()),
        }

        extra_fields = getattr(record, "extra_fields", {})
        if extra_fields:
            log_entry.update(extra_fields)

        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_entry, ensure_ascii=False, default=str)


class StructuredLogger:
    """Logger wrapper that attaches keyword fields to every event"""

    def __init__(self, component: str, logger: logging.Logger = None):
        self.component = component
        self._logger = logger or logging.getLogger(f"{ROOT_LOGGER_NAME}.{component}")

    def _log(self, level: int, event: str, exc_info=None, **kwargs) -> None:
        extra = {
            "component": self.component,
            "event": event,
            "extra_fields": kwargs,
        }
        if kwargs:
            message = event + " " + " ".join(f"{k}={v}" for k, v in kwargs.items())
        else:
            message = event
        self._logger.log(level, message, exc_info=exc_info, extra=extra)

    def debug(self, event: str, **kwargs) -> None:
        self._log(logging.DEBUG, event, **kwargs)

    def info(self, event: str, **kwargs) -> None:
        self._log(logging.INFO, event, **kwargs)

    def warning(self, event: str, **kwargs) -> None:
        self._log(logging.WARNING, event, **kwargs)

    def error(self, event: str, exc_info=None, **kwargs) -> None:
        self._log(logging.ERROR, event, exc_info=exc_info, **kwargs)

    def critical(self, event: str, exc_info=None, **kwargs) -> None:
        self._log(logging.CRITICAL, event, exc_info=exc_info, **kwargs)


def get_logger(component: str) -> StructuredLogger:
    """Return a structured logger for a component (e.g. "Ingestion")"""
    return StructuredLogger(component)


def setup_structured_logging(
    level: str = "INFO",
    json_output: bool = True,
) -> None:
    """
    Configure the gaenstore logger hierarchy.

    Args:
        level: Log level name (DEBUG, INFO, WARNING, ERROR)
        json_output: Emit JSON lines instead of plain text
    """
    global _setup_done

    if _setup_done:
        return

    root_logger = logging.getLogger(ROOT_LOGGER_NAME)
    root_logger.setLevel(getattr(logging, level.upper()))
    root_logger.handlers.clear()

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(getattr(logging, level.upper()))

    if json_output:
        handler.setFormatter(JSONLogFormatter())
    else:
        handler.setFormatter(logging.Formatter(
            "[%(asctime)s] [%(levelname)s] [%(name)s] %(message)s"
        ))

    root_logger.addHandler(handler)

    # SQL statement logging is controlled by DB_ECHO, keep the pool quiet
    logging.getLogger("sqlalchemy.pool").setLevel(logging.WARNING)

    _setup_done = True


def reset_structured_logging() -> None:
    """Allow setup_structured_logging to run again (tests)"""
    global _setup_done
    logging.getLogger(ROOT_LOGGER_NAME).handlers.clear()
    _setup_done = False
