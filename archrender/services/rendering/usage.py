"""
Append-only token usage log (JSON Lines, one record per successful generation).
Writing is best effort: failures are logged and never reach the caller.
"""
import asyncio
import json
import logging
import os
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from archrender.services.rendering.base import TokenUsage
from archrender.utils.metrics import usage_log_failures_total

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class UsageRecord:
    timestamp: str
    model: str
    input_tokens: int
    output_tokens: int
    total_tokens: int
    style: str
    strength: float
    user_id: str = "anonymous"

    @classmethod
    def create(cls, model: str, usage: TokenUsage, style: str, strength: float) -> "UsageRecord":
        return cls(
            timestamp=datetime.now(timezone.utc).isoformat(),
            model=model,
            input_tokens=usage.input_tokens,
            output_tokens=usage.output_tokens,
            total_tokens=usage.total_tokens,
            style=style,
            strength=strength,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "timestamp": self.timestamp,
            "model": self.model,
            "inputTokens": self.input_tokens,
            "outputTokens": self.output_tokens,
            "totalTokens": self.total_tokens,
            "userId": self.user_id,
            "style": self.style,
            "strength": self.strength,
        }

    def to_line(self) -> bytes:
        return (json.dumps(self.to_dict(), ensure_ascii=False) + "\n").encode("utf-8")


class UsageRecorder:
    """Appends UsageRecord lines to a file shared by all requests (and processes)."""

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)

    def append(self, record: UsageRecord) -> None:
        """One os.write on an O_APPEND descriptor per record, so concurrent writers never interleave."""
        line = record.to_line()
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd = os.open(self.path, os.O_WRONLY | os.O_APPEND | os.O_CREAT, 0o644)
        try:
            os.write(fd, line)
        finally:
            os.close(fd)

    async def record(self, record: UsageRecord) -> bool:
        """Append off the event loop. Returns False (and logs) on failure."""
        try:
            await asyncio.to_thread(self.append, record)
        except (OSError, TypeError, ValueError):
            usage_log_failures_total.inc()
            logger.exception("usage_log_write_failed", extra={"usage_log": str(self.path)})
            return False
        logger.info(
            "usage_logged",
            extra={
                "usage_log": str(self.path),
                "model": record.model,
                "input_tokens": record.input_tokens,
                "output_tokens": record.output_tokens,
            },
        )
        return True
