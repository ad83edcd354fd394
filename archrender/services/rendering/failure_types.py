"""
Failure classification for the inbound boundary.
Maps pipeline exceptions to a fixed set of categories, each with its own
user-facing title, remediation text and HTTP status.
"""
from dataclasses import dataclass
from enum import Enum

from archrender.services.rendering.base import (
    CallerTimeoutError,
    InvalidImageError,
    MissingCredentialsError,
    NoImageGeneratedError,
    NoImageInResponseError,
    ResponseFormatError,
    TransportError,
    TransportErrorCode,
    UpstreamStatusError,
)
from archrender.services.rendering.transport import code_from_message

API_KEY_HELP_URL = "https://aistudio.google.com/apikey"


class ErrorCategory(str, Enum):
    """Formal failure categories returned to callers."""

    INVALID_INPUT = "invalid_input"
    MISSING_CREDENTIALS = "missing_credentials"
    DNS_FAILURE = "dns_failure"
    CONNECTION_REFUSED = "connection_refused"
    TIMEOUT = "timeout"
    TLS_FAILURE = "tls_failure"
    CONNECTION_RESET = "connection_reset"
    UPSTREAM_STATUS = "upstream_status"
    INVALID_RESPONSE = "invalid_response"
    NO_IMAGE_GENERATED = "no_image_generated"
    NO_IMAGE_IN_RESPONSE = "no_image_in_response"
    CALLER_TIMEOUT = "caller_timeout"
    INTERNAL = "internal"


@dataclass(frozen=True)
class ClassifiedError:
    category: ErrorCategory
    title: str
    details: str
    http_status: int
    help_url: str | None = None
    upstream_body: str | None = None
    error_code: str | None = None


NETWORK_REMEDIATION = (
    "Possible fixes:\n"
    "1. Check your network connection\n"
    "2. If the Google API is not reachable directly from your region, configure a proxy (VPN)\n"
    "3. Check firewall settings\n"
    "4. Make sure the API key is correct\n\n"
    "Proxy setup: set HTTP_PROXY and HTTPS_PROXY in the environment."
)

SETUP_GUIDANCE = (
    "To use rendering, configure the API key:\n"
    f"1. Get an API key at {API_KEY_HELP_URL}\n"
    "2. Add it to the .env file:\n"
    "   GEMINI_API_KEY=<your key>\n"
    "3. Restart the server"
)

# code -> (category, title, details)
_NETWORK_MESSAGES: dict[TransportErrorCode, tuple[ErrorCategory, str, str]] = {
    TransportErrorCode.DNS_FAILURE: (
        ErrorCategory.DNS_FAILURE,
        "DNS resolution failed",
        "Could not resolve the Google API host name. Check your network or DNS settings.",
    ),
    TransportErrorCode.CONNECTION_REFUSED: (
        ErrorCategory.CONNECTION_REFUSED,
        "Connection refused",
        "The connection was refused. A firewall or the proxy configuration may be blocking it.",
    ),
    TransportErrorCode.TIMEOUT: (
        ErrorCategory.TIMEOUT,
        "Connection timeout",
        "Timed out talking to the Google API server. Image generation can take a while; "
        "if the server is unreachable from your network you may need a proxy.",
    ),
    TransportErrorCode.TLS_FAILURE: (
        ErrorCategory.TLS_FAILURE,
        "SSL certificate error",
        "SSL certificate verification failed. Check that the system clock is correct.",
    ),
    TransportErrorCode.CONNECTION_RESET: (
        ErrorCategory.CONNECTION_RESET,
        "Connection interrupted",
        "The connection was reset. The proxy may be unstable, the network dropped, "
        "or the request was too large. Retried several times; please try again later.",
    ),
    TransportErrorCode.CONNECTION_CLOSED: (
        ErrorCategory.CONNECTION_RESET,
        "Connection interrupted",
        "The connection was closed unexpectedly (socket hang up). The proxy may be unstable, "
        "the network dropped, or the request was too large. Retried several times; please try again later.",
    ),
}


def _network_error(error: TransportError) -> ClassifiedError:
    code = error.code
    if code is TransportErrorCode.UNKNOWN:
        code = code_from_message(str(error))
    entry = _NETWORK_MESSAGES.get(code)
    if entry is None:
        category, title = ErrorCategory.INTERNAL, "Cannot connect to Gemini API"
        details = f"Network error: {error or 'unknown error'}"
    else:
        category, title, details = entry
    return ClassifiedError(
        category=category,
        title=title,
        details=f"{details}\n\n{NETWORK_REMEDIATION}",
        http_status=503,
        error_code=error.code.value,
    )


def classify_error(exc: BaseException) -> ClassifiedError:
    """
    Deterministic exception -> category mapping.
    Order: typed pipeline errors, then the structured transport code, then message text.
    """
    if isinstance(exc, InvalidImageError):
        return ClassifiedError(ErrorCategory.INVALID_INPUT, str(exc), str(exc), 400)
    if isinstance(exc, MissingCredentialsError):
        return ClassifiedError(
            ErrorCategory.MISSING_CREDENTIALS,
            "Gemini API key is not configured",
            SETUP_GUIDANCE,
            500,
            help_url=API_KEY_HELP_URL,
        )
    if isinstance(exc, UpstreamStatusError):
        return ClassifiedError(
            ErrorCategory.UPSTREAM_STATUS,
            "Failed to generate rendering",
            exc.body,
            exc.status_code,
            upstream_body=exc.body,
        )
    if isinstance(exc, NoImageGeneratedError):
        return ClassifiedError(
            ErrorCategory.NO_IMAGE_GENERATED,
            "No image generated",
            "The API returned no candidates for this request.",
            500,
        )
    if isinstance(exc, NoImageInResponseError):
        return ClassifiedError(
            ErrorCategory.NO_IMAGE_IN_RESPONSE,
            "No image in API response",
            "The API did not return a generated image. Please check the API response format.",
            500,
        )
    if isinstance(exc, ResponseFormatError):
        return ClassifiedError(
            ErrorCategory.INVALID_RESPONSE,
            str(exc),
            "Could not parse the API response.",
            500,
        )
    if isinstance(exc, TransportError):
        return _network_error(exc)
    if isinstance(exc, CallerTimeoutError):
        return ClassifiedError(
            ErrorCategory.CALLER_TIMEOUT,
            "Request timeout",
            "The rendering did not finish in time. Please try again later.",
            504,
        )
    return ClassifiedError(ErrorCategory.INTERNAL, "Internal server error", str(exc), 500)
