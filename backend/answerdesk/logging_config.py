"""
Structured JSON logging configuration (Monolog-style).

Channels: http, db, flags, tracking, notifications. Every entry is one
JSON object on stdout carrying the service name and the request id of
the request that produced it.
"""

import logging
import json
import uuid
from datetime import datetime, timezone
from contextvars import ContextVar

# Set by the request-id middleware; empty outside a request.
request_id_var: ContextVar[str] = ContextVar("request_id", default="")

CHANNELS = ["http", "db", "flags", "tracking", "notifications"]
LOGGER_PREFIX = "answerdesk"


class StructuredJsonFormatter(logging.Formatter):
    """
    One JSON object per record: timestamp (UTC, millisecond precision),
    level, service, channel, message, context, extra and, when a traceback
    is attached, exception.
    """

    def __init__(self, service: str = "answerdesk"):
        super().__init__()
        self.service = service

    def format(self, record: logging.LogRecord) -> str:
        context = {"request_id": request_id_var.get("")}
        context.update(getattr(record, "context", None) or {})

        log_entry = {
            "timestamp": datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%f")[:-3] + "Z",
            "level": record.levelname,
            "service": self.service,
            "channel": getattr(record, "channel", None) or _channel_of(record.name),
            "message": record.getMessage(),
            "context": context,
            "extra": getattr(record, "extra_data", None) or {},
        }
        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(log_entry, default=str)


def _channel_of(logger_name: str) -> str:
    if logger_name.startswith(LOGGER_PREFIX + "."):
        return logger_name[len(LOGGER_PREFIX) + 1:]
    return "app"


def setup_logging(level: str = "INFO", service: str = "answerdesk") -> logging.Logger:
    """
    Route all logging through one stdout handler with the JSON formatter.

    Calling it again replaces the handler, so building several apps in one
    process (as the tests do) does not duplicate output.
    """
    log_level = getattr(logging, level.upper(), logging.INFO)

    handler = logging.StreamHandler()
    handler.setFormatter(StructuredJsonFormatter(service))

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    root_logger.handlers = [handler]

    for channel in CHANNELS:
        get_logger(channel).setLevel(log_level)
    # SQL echo is controlled by settings.db_echo, not by the log level
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)

    return root_logger


def get_logger(channel: str) -> logging.Logger:
    return logging.getLogger(f"{LOGGER_PREFIX}.{channel}")


def log_with_context(logger: logging.Logger, level: str, message: str,
                     context: dict = None, extra_data: dict = None,
                     exc_info: bool = False):
    """
    Emit a structured log entry.

    Args:
        logger: channel logger from get_logger()
        level: INFO, WARNING, ERROR or DEBUG
        message: human-readable message
        context: business ids (answer_sheet_id, tracking_id, recipient_id, ...)
        extra_data: metadata (duration_ms, counts, error text, ...)
        exc_info: attach the traceback of the exception being handled
    """
    logger.log(
        getattr(logging, level.upper(), logging.INFO),
        message,
        exc_info=exc_info,
        extra={"context": context or {}, "extra_data": extra_data or {}, "channel": _channel_of(logger.name)},
    )


def generate_request_id() -> str:
    return str(uuid.uuid4())
