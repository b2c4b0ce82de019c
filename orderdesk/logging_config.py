"""JSON logging configuration for OrderDesk API.

Records go to stdout as one JSON object per line. Conversation identifiers
passed in ``extra={"context": {...}}`` are also copied to the top level so a
single turn can be followed across the pipeline, and provider credentials that
leak into messages through request URLs are masked.
"""

import json
import logging
import re
import sys
from datetime import datetime, timezone

# Keys promoted from the structured context to the top of the record.
TRACE_KEYS = ("business_id", "correlation_id", "channel")

SECRET_PATTERNS = (
    # Telegram bot API: https://api.telegram.org/bot<token>/sendMessage
    (re.compile(r"/bot[^/\s]+/"), "/bot***/"),
    # Graph API query string and Authorization headers
    (re.compile(r"(access_token=)[^&\s\"']+"), r"\1***"),
    (re.compile(r"(Bearer\s+)[A-Za-z0-9._\-]+"), r"\1***"),
)


def redact(text: str) -> str:
    for pattern, replacement in SECRET_PATTERNS:
        text = pattern.sub(replacement, text)
    return text


class JSONFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": redact(record.getMessage()),
        }

        context = getattr(record, "context", None)
        if context:
            for key in TRACE_KEYS:
                if key in context:
                    log_data[key] = str(context[key])
            log_data["context"] = context

        if record.exc_info:
            log_data["exception"] = redact(self.formatException(record.exc_info))

        return json.dumps(log_data, ensure_ascii=False, default=str)


def setup_logging(level: str = "INFO") -> None:
    """Replace root handlers with a single JSON stdout handler."""
    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, level.upper()))

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(JSONFormatter())
    root_logger.addHandler(handler)

    # httpx logs full request URLs at INFO, tokens included.
    for noisy in ("httpx", "httpcore", "uvicorn.access"):
        logging.getLogger(noisy).setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(f"orderdesk.{name}")
