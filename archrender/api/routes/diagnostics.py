"""
Operational troubleshooting endpoints. Not used by the generation path.
"""
from dataclasses import asdict

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from archrender.core.config import Settings
from archrender.core.logging import mask_proxy_url
from archrender.api.routes.render import get_app_settings, get_render_service
from archrender.services.rendering import RenderService

router = APIRouter(prefix="/diagnostics", tags=["diagnostics"])


def _camel(name: str) -> str:
    head, *rest = name.split("_")
    return head + "".join(word.title() for word in rest)


def _key_preview(key: str) -> str:
    start = key[:15]
    end = "..." + key[-10:] if len(key) > 15 else ""
    return start + end


@router.get("")
async def diagnostics(service: RenderService = Depends(get_render_service)) -> JSONResponse:
    """Round trip to the provider with a tiny text prompt (30s timeout, no retry)."""
    report = await service.check_connectivity()
    content = {
        _camel(k): v for k, v in asdict(report).items() if v is not None
    }
    content["proxyUsed"] = report.proxy is not None
    if report.success:
        status_code = 200
    elif report.status_code:
        status_code = report.status_code
    elif not service.settings.has_api_key:
        status_code = 400
    else:
        status_code = 500
    return JSONResponse(status_code=status_code, content=content)


@router.get("/config")
def diagnostics_config(settings: Settings = Depends(get_app_settings)) -> dict:
    """Effective configuration without secrets; no network call."""
    key = settings.gemini_api_key
    return {
        "environment": "managed" if settings.is_managed_hosting else "local",
        "appEnv": settings.app_env,
        "model": settings.gemini_model,
        "hasApiKey": bool(key),
        "apiKeyLength": len(key),
        "apiKeyPreview": _key_preview(key) if key else "",
        "apiKeyStartsWithAIza": key.startswith("AIza"),
        "proxy": mask_proxy_url(settings.proxy_url),
        "generationTimeoutSeconds": settings.generation_timeout_seconds,
        "maxRetries": settings.retry_max_retries,
    }
