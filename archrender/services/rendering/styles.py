"""
Style catalog: style id -> prompt fragment for the architecture rendering instruction.
"""

DEFAULT_STYLE = "modern"

STYLE_PROMPTS: dict[str, str] = {
    "modern": (
        "modern architecture, sleek design, glass facade, steel structure, "
        "contemporary building, clean lines, minimalist exterior"
    ),
    "traditional": (
        "traditional architecture, classic design, ornate details, stone facade, "
        "elegant columns, heritage style, timeless building"
    ),
    "minimalist": (
        "minimalist architecture, simple forms, white walls, clean geometry, "
        "zen aesthetic, understated elegance, pure design"
    ),
    "industrial": (
        "industrial architecture, exposed brick, metal beams, raw concrete, "
        "factory aesthetic, urban loft style, warehouse conversion"
    ),
    "futuristic": (
        "futuristic architecture, sci-fi design, curved surfaces, innovative materials, "
        "parametric architecture, advanced technology"
    ),
    "natural": (
        "biophilic architecture, green building, living walls, organic forms, "
        "sustainable design, nature integration, eco-friendly"
    ),
}


def available_styles() -> list[str]:
    return list(STYLE_PROMPTS)


def resolve_style(style: str | None) -> str:
    """Known style id, or DEFAULT_STYLE for anything unknown."""
    key = (style or "").strip()
    return key if key in STYLE_PROMPTS else DEFAULT_STYLE


def get_style_prompt(style: str | None) -> str:
    return STYLE_PROMPTS[resolve_style(style)]
