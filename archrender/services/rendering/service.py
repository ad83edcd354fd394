"""
Rendering pipeline: validate -> build payload -> send with retry -> extract -> record usage.
One RenderService per app; per-request state lives only inside generate().
"""
import asyncio
import logging
import time

from archrender.core.config import Settings
from archrender.core.logging import mask_proxy_url
from archrender.services.rendering.base import (
    CallerTimeoutError,
    DiagnosticsReport,
    InvalidImageError,
    MissingCredentialsError,
    RenderRequest,
    RenderResult,
    ResponseFormatError,
    TransportError,
    UpstreamStatusError,
    parse_data_uri,
)
from archrender.services.rendering.extractor import extract_render, extract_text_sample
from archrender.services.rendering.payload import build_diagnostics_body, build_payload
from archrender.services.rendering.runner import RetryPolicy, send_with_retry
from archrender.services.rendering.styles import resolve_style
from archrender.services.rendering.transport import HttpTransport, Transport
from archrender.services.rendering.usage import UsageRecord, UsageRecorder
from archrender.utils.metrics import render_tokens_total

logger = logging.getLogger(__name__)

LARGE_IMAGE_BYTES = 10 * 1024 * 1024
SAMPLE_LIMIT = 200
ERROR_BODY_LIMIT = 500


class RenderService:
    def __init__(
        self,
        settings: Settings,
        transport: Transport | None = None,
        recorder: UsageRecorder | None = None,
    ) -> None:
        self.settings = settings
        self.transport = transport or HttpTransport(proxy_url=settings.proxy_url)
        self.recorder = recorder or UsageRecorder(settings.usage_log_path)
        self.policy = RetryPolicy(
            max_retries=settings.retry_max_retries,
            backoff_base_seconds=settings.retry_backoff_seconds,
        )

    @property
    def environment(self) -> str:
        return "managed" if self.settings.is_managed_hosting else "local"

    def _headers(self, body: bytes) -> dict[str, str]:
        return {
            "Content-Type": "application/json",
            "x-goog-api-key": self.settings.gemini_api_key,
            "Content-Length": str(len(body)),
        }

    async def generate(self, request: RenderRequest) -> RenderResult:
        """Raises RenderingError subclasses; the route turns them into responses."""
        if not request.image:
            raise InvalidImageError("Image is required")
        if not self.settings.has_api_key:
            logger.error("gemini_api_key_missing")
            raise MissingCredentialsError("GEMINI_API_KEY is not configured")
        image = parse_data_uri(request.image)

        if len(image.data) > LARGE_IMAGE_BYTES:
            logger.warning("large_input_image", extra={"bytes": len(image.data)})

        payload = build_payload(request, image)
        body = payload.to_bytes()
        model = self.settings.gemini_model
        logger.info(
            "render_request",
            extra={
                "model": model,
                "style": resolve_style(request.style),
                "strength": request.strength,
                "bytes": len(body),
            },
        )

        start = time.monotonic()
        result = await send_with_retry(
            self.transport,
            self.settings.generate_url,
            self._headers(body),
            body,
            timeout=self.settings.generation_timeout_seconds,
            policy=self.policy,
        )
        latency_ms = int((time.monotonic() - start) * 1000)

        if result.status_code != 200:
            logger.error(
                "gemini_api_error",
                extra={"status_code": result.status_code, "latency_ms": latency_ms},
            )
            raise UpstreamStatusError(result.status_code, result.body)

        extracted = extract_render(result.body)
        usage = extracted.usage
        render_tokens_total.labels(direction="input").inc(usage.input_tokens)
        render_tokens_total.labels(direction="output").inc(usage.output_tokens)

        record = UsageRecord.create(
            model=model,
            usage=usage,
            style=request.style,
            strength=request.strength,
        )
        await self.recorder.record(record)

        logger.info(
            "render_completed",
            extra={"model": model, "latency_ms": latency_ms, "status_code": result.status_code},
        )
        return RenderResult(
            image_data_uri=extracted.data_uri,
            prompt_used=payload.instruction,
            usage=usage,
            model=model,
        )

    async def generate_with_deadline(self, request: RenderRequest, deadline: float | None = None) -> RenderResult:
        """generate() under the caller-side timeout; expiry cancels the in-flight attempt."""
        deadline = deadline if deadline is not None else self.settings.request_timeout_seconds
        try:
            return await asyncio.wait_for(self.generate(request), timeout=deadline)
        except asyncio.TimeoutError as e:
            logger.error("render_caller_timeout", extra={"latency_ms": int(deadline * 1000)})
            raise CallerTimeoutError(
                f"Request did not complete within {deadline:g} seconds",
                {"timeout_seconds": deadline},
            ) from e

    async def check_connectivity(self) -> DiagnosticsReport:
        """Minimal text-only round trip; one attempt, short timeout, never raises."""
        settings = self.settings
        proxy = mask_proxy_url(settings.proxy_url)
        logs: list[str] = []

        def log(message: str) -> None:
            logs.append(message)
            logger.info(message)

        report = DiagnosticsReport(
            success=False,
            message="",
            environment=self.environment,
            model=settings.gemini_model,
            proxy=proxy,
            logs=logs,
        )
        log(f"diagnostics: environment={report.environment} model={report.model} proxy={proxy or 'none'}")

        if not settings.has_api_key:
            report.message = "API key is not configured"
            return report

        body = build_diagnostics_body()
        log(f"diagnostics: connecting to {settings.generate_url}")
        try:
            result = await self.transport.send(
                settings.generate_url,
                "POST",
                self._headers(body),
                body,
                settings.diagnostics_timeout_seconds,
            )
        except TransportError as e:
            log(f"diagnostics: connection error {e.code.value}: {e}")
            report.message = str(e)
            report.error_code = e.code.value
            report.error_name = type(e.__cause__ or e).__name__
            return report

        report.status_code = result.status_code
        if result.status_code != 200:
            log(f"diagnostics: API returned {result.status_code}")
            report.message = f"API returned error: {result.status_code}"
            report.body = result.body[:ERROR_BODY_LIMIT]
            return report

        report.success = True
        try:
            sample = extract_text_sample(result.body, SAMPLE_LIMIT)
        except ResponseFormatError:
            log("diagnostics: response received but could not be parsed")
            report.message = "API responded but the response could not be parsed"
            report.body = result.body[:ERROR_BODY_LIMIT]
            return report
        report.message = "API connection OK"
        report.response = sample if sample is not None else "(no text in response)"
        log("diagnostics: API connection OK")
        return report
