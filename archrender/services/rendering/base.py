"""
Base types and errors for the rendering pipeline.
Used by payload builder, transport, runner, extractor and service.
"""
import re
from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any


DATA_URI_RE = re.compile(r"^data:([^;]+);base64,(.+)$", re.DOTALL)


@dataclass
class RenderRequest:
    """Inbound request: white-model image as data URI + style options."""
    image: str
    style: str = "modern"
    prompt: str | None = None
    strength: float = 0.5


@dataclass(frozen=True)
class ImageData:
    """Decoded data URI (mime type + base64 payload, payload not decoded)."""
    mime_type: str
    data: str

    @property
    def data_uri(self) -> str:
        return f"data:{self.mime_type};base64,{self.data}"


@dataclass(frozen=True)
class TransportResult:
    """Raw outcome of one HTTP attempt."""
    status_code: int
    headers: Mapping[str, str]
    body: str


@dataclass(frozen=True)
class TokenUsage:
    input_tokens: int = 0
    output_tokens: int = 0
    total_tokens: int = 0

    def to_dict(self) -> dict[str, int]:
        return {
            "inputTokens": self.input_tokens,
            "outputTokens": self.output_tokens,
            "totalTokens": self.total_tokens,
        }


@dataclass(frozen=True)
class RenderResult:
    """Successful generation: exactly one per completed request."""
    image_data_uri: str
    prompt_used: str
    usage: TokenUsage
    model: str


@dataclass
class DiagnosticsReport:
    """Outcome of the connectivity check (GET /diagnostics)."""
    success: bool
    message: str
    environment: str
    model: str
    proxy: str | None
    status_code: int | None = None
    response: str | None = None
    body: str | None = None
    error_code: str | None = None
    error_name: str | None = None
    logs: list[str] = field(default_factory=list)


class TransportErrorCode(str, Enum):
    """Fixed taxonomy of low-level network failures."""

    DNS_FAILURE = "ENOTFOUND"
    CONNECTION_REFUSED = "ECONNREFUSED"
    TIMEOUT = "ETIMEDOUT"
    TLS_FAILURE = "CERT_ERROR"
    CONNECTION_RESET = "ECONNRESET"
    CONNECTION_CLOSED = "EHANGUP"  # peer closed before a response ("socket hang up")
    UNKNOWN = "EUNKNOWN"


class RenderingError(Exception):
    """Base error for the pipeline; detail holds structured fields for logging/classification."""

    def __init__(self, message: str, detail: dict[str, Any] | None = None):
        super().__init__(message)
        self.detail = detail or {}


class InvalidImageError(RenderingError):
    """Image missing or not a base64 data URI. Raised before any network call."""


class MissingCredentialsError(RenderingError):
    """GEMINI_API_KEY is not configured."""


class TransportError(RenderingError):
    """One attempt failed at the network level."""

    def __init__(
        self,
        message: str,
        code: TransportErrorCode = TransportErrorCode.UNKNOWN,
        detail: dict[str, Any] | None = None,
    ):
        super().__init__(message, detail)
        self.code = code


class TransportTimeoutError(TransportError):
    """Attempt exceeded its wall-clock limit; the connection was torn down."""

    def __init__(self, message: str, detail: dict[str, Any] | None = None):
        super().__init__(message, TransportErrorCode.TIMEOUT, detail)


class UpstreamStatusError(RenderingError):
    """Provider answered with a non-200 status."""

    def __init__(self, status_code: int, body: str):
        super().__init__(f"Upstream returned status {status_code}", {"http_status": status_code})
        self.status_code = status_code
        self.body = body


class ResponseFormatError(RenderingError):
    """Provider body could not be interpreted (bad JSON, missing parts)."""

    def __init__(self, message: str, kind: str, detail: dict[str, Any] | None = None):
        super().__init__(message, detail)
        self.kind = kind


class NoImageGeneratedError(ResponseFormatError):
    """Response had no candidates at all."""

    def __init__(self, detail: dict[str, Any] | None = None):
        super().__init__("No image generated", "no_candidates", detail)


class NoImageInResponseError(ResponseFormatError):
    """Candidates present but no part carried inline binary data."""

    def __init__(self, detail: dict[str, Any] | None = None):
        super().__init__("No image in API response", "no_image_part", detail)


class CallerTimeoutError(RenderingError):
    """End-to-end deadline of the inbound request expired; in-flight work was cancelled."""


def parse_data_uri(value: str | None) -> ImageData:
    """Split data:<mime>;base64,<payload>; raise InvalidImageError on any other shape."""
    if not value:
        raise InvalidImageError("Image is required")
    match = DATA_URI_RE.match(value)
    if not match:
        raise InvalidImageError("Invalid image format")
    return ImageData(mime_type=match.group(1), data=match.group(2))
