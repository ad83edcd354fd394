"""
Render API: POST /generate (white model image + style -> photorealistic rendering).
Every failure is returned as {error, details, ...} JSON; nothing escapes as a raw 500.
"""
import json
import logging
import time
import traceback
from typing import Any

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from archrender.core.config import Settings
from archrender.services.rendering import (
    ClassifiedError,
    ErrorCategory,
    RenderRequest,
    RenderService,
    classify_error,
)
from archrender.services.rendering.base import NoImageInResponseError, RenderingError
from archrender.services.rendering.styles import DEFAULT_STYLE
from archrender.utils.metrics import render_duration_seconds, render_requests_total

logger = logging.getLogger(__name__)

router = APIRouter(tags=["render"])


class GenerateBody(BaseModel):
    image: str | None = None  # data:<mime>;base64,<payload>; checked by the service for a 400
    style: str = DEFAULT_STYLE
    prompt: str | None = None
    strength: float = Field(default=0.5, ge=0, le=1)


class UsageOut(BaseModel):
    inputTokens: int
    outputTokens: int
    totalTokens: int


class GenerateOut(BaseModel):
    success: bool = True
    result: str
    prompt: str
    usage: UsageOut


def get_render_service(request: Request) -> RenderService:
    return request.app.state.render_service


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


def error_response(
    classified: ClassifiedError,
    exc: BaseException | None = None,
    settings: Settings | None = None,
) -> JSONResponse:
    """ClassifiedError -> JSON body. Stack traces only outside production."""
    content: dict[str, Any] = {"error": classified.title, "details": classified.details}
    if classified.category is not ErrorCategory.INVALID_INPUT:
        content["category"] = classified.category.value
    if classified.help_url:
        content["helpUrl"] = classified.help_url
    if classified.error_code:
        content["errorCode"] = classified.error_code
    if isinstance(exc, NoImageInResponseError) and "response" in exc.detail:
        content["response"] = json.dumps(exc.detail["response"], ensure_ascii=False)
    if (
        classified.category is ErrorCategory.INTERNAL
        and exc is not None
        and settings is not None
        and not settings.is_production
    ):
        content["stack"] = "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))
    return JSONResponse(status_code=classified.http_status, content=content)


@router.post("/generate", response_model=GenerateOut)
async def generate(
    body: GenerateBody,
    service: RenderService = Depends(get_render_service),
    settings: Settings = Depends(get_app_settings),
):
    """Render a white model image in the requested style."""
    start = time.monotonic()
    logger.info(
        "generate_called",
        extra={"style": body.style, "strength": body.strength, "model": settings.gemini_model},
    )
    request = RenderRequest(
        image=body.image or "",
        style=body.style,
        prompt=body.prompt,
        strength=body.strength,
    )
    try:
        result = await service.generate_with_deadline(request)
    except RenderingError as e:
        classified = classify_error(e)
        render_requests_total.labels(outcome=classified.category.value).inc()
        logger.warning(
            "generate_failed",
            extra={
                "category": classified.category.value,
                "status_code": classified.http_status,
                "error": str(e),
            },
        )
        return error_response(classified, e, settings)
    except Exception as e:
        classified = classify_error(e)
        render_requests_total.labels(outcome=classified.category.value).inc()
        logger.exception("generate_error", extra={"category": classified.category.value})
        return error_response(classified, e, settings)
    finally:
        render_duration_seconds.observe(time.monotonic() - start)

    render_requests_total.labels(outcome="success").inc()
    return GenerateOut(
        result=result.image_data_uri,
        prompt=result.prompt_used,
        usage=UsageOut(**result.usage.to_dict()),
    )
