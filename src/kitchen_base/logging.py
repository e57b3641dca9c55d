"""
Logging setup shared by all services.

Every process calls setup_logging() once at import time of its entry point.
Modules then use logging.getLogger(__name__) and pass structured fields via
``extra={...}``; the JSON formatter emits those fields next to the standard
ones (timestamp, level, service, hostname, request_id).
"""

import contextvars
import json
import logging
import socket
import sys
from datetime import datetime, timezone

from kitchen_base.settings import get_settings

# Correlation id of the request or message currently being handled
request_id_var: contextvars.ContextVar[str] = contextvars.ContextVar("request_id", default="")

# Attributes every LogRecord has; anything else came from extra={...}
_RESERVED = set(
    logging.LogRecord("", 0, "", 0, "", (), None).__dict__.keys()
) | {"message", "asctime", "request_id", "service", "hostname"}

_configured = False


class ContextFilter(logging.Filter):
    """Stamp service, hostname and current request id on every record."""

    def __init__(self, service: str):
        super().__init__()
        self.service = service
        self.hostname = socket.gethostname()

    def filter(self, record: logging.LogRecord) -> bool:
        record.service = self.service
        record.hostname = self.hostname
        record.request_id = request_id_var.get()
        return True


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "service": getattr(record, "service", ""),
            "hostname": getattr(record, "hostname", ""),
            "logger": record.name,
            "message": record.getMessage(),
            "request_id": getattr(record, "request_id", ""),
        }
        for key, value in record.__dict__.items():
            if key not in _RESERVED and not key.startswith("_"):
                payload[key] = value
        if record.exc_info:
            payload["error"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str)


def setup_logging(service: str | None = None) -> None:
    """Configure the root logger. Safe to call more than once."""
    global _configured
    if _configured:
        return

    settings = get_settings()
    handler = logging.StreamHandler(sys.stdout)
    handler.addFilter(ContextFilter(service or settings.SERVICE_NAME))

    if settings.LOG_FORMAT == "json":
        handler.setFormatter(JsonFormatter())
    else:
        handler.setFormatter(
            logging.Formatter("%(asctime)s %(levelname)s [%(service)s] %(name)s %(request_id)s %(message)s")
        )

    root = logging.getLogger()
    root.handlers = [handler]
    root.setLevel(settings.LOG_LEVEL.upper())

    # pika logs every frame at INFO
    logging.getLogger("pika").setLevel(logging.WARNING)

    _configured = True
