import json
import logging
import logging.config
from datetime import datetime, timezone
from typing import Optional

from flask import has_request_context, request


class RequestContextFilter(logging.Filter):
    """Inject method/path/client ip into log records when inside a request."""

    def filter(self, record: logging.LogRecord) -> bool:
        if has_request_context():
            record.method = request.method
            record.path = request.path
            record.client_ip = request.headers.get("X-Forwarded-For", request.remote_addr)
        else:
            record.method = record.path = record.client_ip = "-"
        return True


class JsonFormatter(logging.Formatter):
    """Lightweight JSON formatter to keep logs structured."""

    # attributes every LogRecord has; anything else came in through `extra=`
    _RESERVED = set(vars(logging.LogRecord("", 0, "", 0, "", (), None))) | {
        "message", "asctime", "method", "path", "client_ip",
    }

    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "method": getattr(record, "method", "-"),
            "path": getattr(record, "path", "-"),
            "client_ip": getattr(record, "client_ip", "-"),
        }
        for key, value in vars(record).items():
            if key not in self._RESERVED and not key.startswith("_"):
                payload[key] = value
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str)


def configure_logging(level: Optional[str] = None) -> None:
    log_level = (level or "INFO").upper()
    logging.config.dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "filters": {
                "request_context": {"()": RequestContextFilter},
            },
            "formatters": {
                "json": {"()": JsonFormatter},
            },
            "handlers": {
                "default": {
                    "class": "logging.StreamHandler",
                    "level": log_level,
                    "formatter": "json",
                    "filters": ["request_context"],
                    "stream": "ext://sys.stdout",
                },
            },
            "loggers": {
                "": {"handlers": ["default"], "level": log_level},
                "werkzeug": {"handlers": ["default"], "level": log_level, "propagate": False},
            },
        }
    )
