"""
Response extractor for Gemini generateContent bodies.
Finds the generated image among known part shapes and reads token usage
from whichever field naming the provider used.
"""
import json
import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from archrender.services.rendering.base import (
    ImageData,
    NoImageGeneratedError,
    NoImageInResponseError,
    ResponseFormatError,
    TokenUsage,
)

logger = logging.getLogger(__name__)

DEFAULT_MIME_TYPE = "image/png"


@dataclass(frozen=True)
class ExtractedImage:
    image: ImageData
    usage: TokenUsage
    extractor: str

    @property
    def data_uri(self) -> str:
        return self.image.data_uri


def _inline(container: Any, key: str, mime_key: str) -> ImageData | None:
    if not isinstance(container, dict):
        return None
    inline = container.get(key)
    if not isinstance(inline, dict):
        return None
    data = inline.get("data")
    if not isinstance(data, str) or not data:
        return None
    mime_type = inline.get(mime_key) or DEFAULT_MIME_TYPE
    return ImageData(mime_type=str(mime_type), data=data)


def _inline_data(part: dict[str, Any]) -> ImageData | None:
    return _inline(part, "inlineData", "mimeType")


def _inline_data_legacy(part: dict[str, Any]) -> ImageData | None:
    return _inline(part, "inline_data", "mime_type")


def _nested_image(part: dict[str, Any]) -> ImageData | None:
    return _inline(part.get("image"), "inlineData", "mimeType")


# Tried in order for each part; first match wins.
PART_EXTRACTORS: tuple[tuple[str, Callable[[dict[str, Any]], ImageData | None]], ...] = (
    ("inline_data", _inline_data),
    ("inline_data_legacy", _inline_data_legacy),
    ("nested_image", _nested_image),
)

_USAGE_FIELDS = {
    "input": ("promptTokenCount", "input_tokens", "inputTokens"),
    "output": ("candidatesTokenCount", "output_tokens", "outputTokens"),
    "total": ("totalTokenCount", "total_tokens", "totalTokens"),
}


def _first_int(source: dict[str, Any], keys: tuple[str, ...]) -> int | None:
    for key in keys:
        value = source.get(key)
        if value is None:
            continue
        try:
            return int(value)
        except (TypeError, ValueError):
            continue
    return None


def extract_usage(result: dict[str, Any]) -> TokenUsage:
    """Token counters; absent fields are 0, absent total is input + output."""
    meta = result.get("usageMetadata") or result.get("usage") or {}
    if not isinstance(meta, dict):
        meta = {}
    input_tokens = _first_int(meta, _USAGE_FIELDS["input"]) or 0
    output_tokens = _first_int(meta, _USAGE_FIELDS["output"]) or 0
    total_tokens = _first_int(meta, _USAGE_FIELDS["total"])
    if total_tokens is None:
        total_tokens = input_tokens + output_tokens
    return TokenUsage(input_tokens, output_tokens, total_tokens)


def parse_body(body: str) -> dict[str, Any]:
    try:
        result = json.loads(body)
    except (json.JSONDecodeError, TypeError) as e:
        raise ResponseFormatError(
            "Invalid API response format", "invalid_json", {"error": str(e)}
        ) from e
    if not isinstance(result, dict):
        raise ResponseFormatError(
            "Invalid API response format", "invalid_json", {"error": "top-level value is not an object"}
        )
    return result


def find_image(parts: list[Any]) -> tuple[str, ImageData] | None:
    for part in parts:
        if not isinstance(part, dict):
            continue
        for name, extractor in PART_EXTRACTORS:
            image = extractor(part)
            if image is not None:
                return name, image
    return None


def extract_render(body: str) -> ExtractedImage:
    """Parse a 200 body and return the first inline image of the first candidate."""
    result = parse_body(body)
    usage = extract_usage(result)

    candidates = result.get("candidates") or []
    if not isinstance(candidates, list) or not candidates:
        raise NoImageGeneratedError({"response": result})

    c0 = candidates[0] if isinstance(candidates[0], dict) else {}
    content = c0.get("content") or {}
    parts = content.get("parts") if isinstance(content, dict) else None
    if not isinstance(parts, list):
        raise ResponseFormatError(
            "Invalid response format", "invalid_format",
            {"finish_reason": c0.get("finishReason")},
        )

    found = find_image(parts)
    if found is None:
        logger.error(
            "no_image_in_response",
            extra={"error": json.dumps(sanitize_response_for_log(result), ensure_ascii=False)},
        )
        raise NoImageInResponseError({
            "response": result,
            "finish_reason": c0.get("finishReason"),
        })

    name, image = found
    return ExtractedImage(image=image, usage=usage, extractor=name)


def extract_text_sample(body: str, limit: int = 200) -> str | None:
    """First text part of the first candidate, truncated; None if absent."""
    result = parse_body(body)
    try:
        text = result["candidates"][0]["content"]["parts"][0]["text"]
    except (KeyError, IndexError, TypeError):
        return None
    return str(text)[:limit]


def _sanitize_value(value: Any) -> Any:
    """Recursively replace base64 data with placeholder."""
    if value is None:
        return None
    if isinstance(value, dict):
        if "data" in value and ("mimeType" in value or "mime_type" in value):
            mime_key = "mimeType" if "mimeType" in value else "mime_type"
            return {mime_key: value.get(mime_key), "data": "[REDACTED]"}
        return {k: _sanitize_value(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_sanitize_value(v) for v in value]
    return value


def sanitize_response_for_log(result: dict[str, Any]) -> dict[str, Any]:
    """
    Return a copy of the Gemini response safe for logging (no base64 image data).
    """
    if not result:
        return {}
    out = _sanitize_value(result)
    return out if isinstance(out, dict) else {}
