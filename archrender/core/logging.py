import json
import logging
import re
from logging.handlers import RotatingFileHandler
from datetime import datetime, timezone

from archrender.core.config import Settings


_PROXY_PASSWORD_RE = re.compile(r":[^:@/]*@")


def mask_proxy_url(url: str | None) -> str | None:
    """Hide the password part of a proxy URL (user:secret@host -> user:****@host)."""
    if not url:
        return url
    return _PROXY_PASSWORD_RE.sub(":****@", url)


class JsonFormatter(logging.Formatter):
    """JSON log formatter with support for extra fields."""

    # Fields to extract from log record's extra dict
    EXTRA_FIELDS = (
        "request_id", "path", "method", "status_code", "latency_ms",
        "model", "style", "strength", "attempt", "max_attempts",
        "delay_seconds", "error", "error_code", "category", "proxy",
        "bytes", "usage_log", "input_tokens", "output_tokens",
    )

    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "ts": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        # Extract extra fields from record
        for field in self.EXTRA_FIELDS:
            value = getattr(record, field, None)
            if value is not None:
                payload[field] = value

        # Include exception info if present
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)

        return json.dumps(payload, ensure_ascii=False)


def configure_logging(settings: Settings) -> None:
    formatter = JsonFormatter()
    handler = logging.StreamHandler()
    handler.setFormatter(formatter)
    root = logging.getLogger()
    root.setLevel(settings.log_level.upper())
    handlers: list[logging.Handler] = [handler]
    if settings.log_file:
        file_handler = RotatingFileHandler(
            settings.log_file,
            maxBytes=settings.log_max_bytes,
            backupCount=settings.log_backup_count,
        )
        file_handler.setFormatter(formatter)
        handlers.append(file_handler)
    root.handlers = handlers
