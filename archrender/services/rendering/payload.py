"""
Payload builder: request -> Gemini generateContent body.
Pure functions, no I/O.
"""
import json
import math
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Mapping

from archrender.services.rendering.base import ImageData, RenderRequest
from archrender.services.rendering.styles import get_style_prompt

SUBTLE = "subtly enhance"
MODERATE = "significantly modify"
COMPLETE = "completely transform"

MODERATE_THRESHOLD = 0.5  # inclusive lower bound
COMPLETE_THRESHOLD = 0.7  # exclusive lower bound

GENERATION_CONFIG: Mapping[str, Any] = MappingProxyType({
    "responseModalities": ("IMAGE",),
    "temperature": 1.0,
    "topP": 0.9,
    "topK": 40,
})

DIAGNOSTICS_PROMPT = 'Say "API is working" if you can read this.'


@dataclass(frozen=True)
class ProviderPayload:
    """Immutable request envelope; body is rendered once to bytes."""
    instruction: str
    image: ImageData
    generation_config: Mapping[str, Any] = field(default_factory=lambda: GENERATION_CONFIG)

    def to_dict(self) -> dict[str, Any]:
        config = dict(self.generation_config)
        config["responseModalities"] = list(config.get("responseModalities", ()))
        return {
            "contents": [
                {
                    "parts": [
                        {"text": self.instruction},
                        {"inlineData": {"mimeType": self.image.mime_type, "data": self.image.data}},
                    ],
                }
            ],
            "generationConfig": config,
        }

    def to_bytes(self) -> bytes:
        return json.dumps(self.to_dict(), ensure_ascii=False).encode("utf-8")


def clamp_strength(strength: Any) -> float:
    try:
        value = float(strength)
    except (TypeError, ValueError):
        return 0.0
    if math.isnan(value):
        return 0.0
    return max(0.0, min(1.0, value))


def strength_intent(strength: float) -> str:
    """[0, 0.5) subtle, [0.5, 0.7] moderate, (0.7, 1] complete."""
    value = clamp_strength(strength)
    if value > COMPLETE_THRESHOLD:
        return COMPLETE
    if value >= MODERATE_THRESHOLD:
        return MODERATE
    return SUBTLE


def build_instruction(style: str | None, strength: float, prompt: str | None = None) -> str:
    style_prompt = get_style_prompt(style)
    intent = strength_intent(strength)
    text = (
        "Transform this architectural white model/sketch into a photorealistic architectural "
        f"rendering with {style_prompt} style. {intent} the design while maintaining accurate "
        "perspective and proportions. Include realistic materials, textures, natural lighting "
        "with shadows, and professional visualization quality."
    )
    extra = (prompt or "").strip()
    if extra:
        text += f" {extra}"
    return text


def build_payload(request: RenderRequest, image: ImageData) -> ProviderPayload:
    instruction = build_instruction(request.style, request.strength, request.prompt)
    return ProviderPayload(instruction=instruction, image=image)


def build_diagnostics_body() -> bytes:
    body = {"contents": [{"parts": [{"text": DIAGNOSTICS_PROMPT}]}]}
    return json.dumps(body).encode("utf-8")
