"""
Architecture rendering pipeline on top of Gemini generateContent.
"""
from .base import (
    RenderRequest,
    RenderResult,
    TokenUsage,
    TransportResult,
    RenderingError,
    TransportError,
    TransportErrorCode,
)
from .failure_types import ClassifiedError, ErrorCategory, classify_error
from .runner import RetryPolicy, send_with_retry
from .service import RenderService
from .transport import HttpTransport
from .usage import UsageRecord, UsageRecorder

__all__ = [
    "RenderRequest",
    "RenderResult",
    "TokenUsage",
    "TransportResult",
    "RenderingError",
    "TransportError",
    "TransportErrorCode",
    "ClassifiedError",
    "ErrorCategory",
    "classify_error",
    "RetryPolicy",
    "send_with_retry",
    "RenderService",
    "HttpTransport",
    "UsageRecord",
    "UsageRecorder",
]
