"""POST /generate through the FastAPI app with a stubbed provider."""
import json

from fastapi.testclient import TestClient

from archrender.core.config import Settings
from archrender.main import create_app
from archrender.services.rendering.base import (
    TransportError,
    TransportErrorCode,
    TransportResult,
)
from archrender.services.rendering.service import RenderService
from archrender.services.rendering.usage import UsageRecorder


class StubProvider:
    """Echoes the uploaded image back unless an outcome is scripted."""

    def __init__(self, outcomes=None):
        self.outcomes = list(outcomes or [])
        self.calls = 0

    async def send(self, url, method, headers, body, timeout):
        self.calls += 1
        if self.outcomes:
            outcome = self.outcomes.pop(0)
            if isinstance(outcome, BaseException):
                raise outcome
            return outcome
        inline = json.loads(body)["contents"][0]["parts"][1]["inlineData"]
        reply = {
            "candidates": [{"content": {"parts": [{"inlineData": inline}]}}],
            "usageMetadata": {"promptTokenCount": 10, "candidatesTokenCount": 20},
        }
        return TransportResult(200, {"content-type": "application/json"}, json.dumps(reply))


def _client(tmp_path, provider, **overrides):
    values = {
        "_env_file": None,
        "gemini_api_key": "AIza-test-key",
        "https_proxy": "",
        "http_proxy": "",
        "retry_backoff_seconds": 0.0,
        "usage_log_path": str(tmp_path / "token-usage.log"),
    }
    values.update(overrides)
    settings = Settings(**values)
    service = RenderService(settings, transport=provider, recorder=UsageRecorder(settings.usage_log_path))
    return TestClient(create_app(settings, service))


def _usage_lines(tmp_path):
    path = tmp_path / "token-usage.log"
    return path.read_text(encoding="utf-8").splitlines() if path.exists() else []


def test_generate_success(tmp_path):
    client = _client(tmp_path, StubProvider())

    resp = client.post(
        "/generate",
        json={"image": "data:image/png;base64,AAAA", "style": "modern", "strength": 0.8},
    )

    assert resp.status_code == 200
    data = resp.json()
    assert data["success"] is True
    assert data["result"] == "data:image/png;base64,AAAA"
    assert data["usage"] == {"inputTokens": 10, "outputTokens": 20, "totalTokens": 30}
    assert "completely transform" in data["prompt"]
    assert len(_usage_lines(tmp_path)) == 1


def test_image_without_data_prefix_is_400(tmp_path):
    provider = StubProvider()
    client = _client(tmp_path, provider)

    resp = client.post("/generate", json={"image": "image/png;base64,AAAA", "style": "modern", "strength": 0.5})

    assert resp.status_code == 400
    assert resp.json()["error"] == "Invalid image format"
    assert provider.calls == 0
    assert _usage_lines(tmp_path) == []


def test_missing_image_is_400(tmp_path):
    resp = _client(tmp_path, StubProvider()).post("/generate", json={"style": "modern", "strength": 0.5})
    assert resp.status_code == 400
    assert resp.json()["error"] == "Image is required"


def test_invalid_strength_is_400(tmp_path):
    resp = _client(tmp_path, StubProvider()).post(
        "/generate", json={"image": "data:image/png;base64,AAAA", "strength": 3}
    )
    assert resp.status_code == 400
    assert resp.json()["error"] == "Invalid request"


def test_missing_credentials_is_500_with_guidance(tmp_path):
    provider = StubProvider()
    client = _client(tmp_path, provider, gemini_api_key="")

    resp = client.post("/generate", json={"image": "data:image/png;base64,AAAA", "strength": 0.5})

    assert resp.status_code == 500
    data = resp.json()
    assert data["helpUrl"] == "https://aistudio.google.com/apikey"
    assert "GEMINI_API_KEY" in data["details"]
    assert provider.calls == 0


def test_network_failure_is_503(tmp_path):
    provider = StubProvider([TransportError("getaddrinfo ENOTFOUND", TransportErrorCode.DNS_FAILURE)])
    resp = _client(tmp_path, provider).post(
        "/generate", json={"image": "data:image/png;base64,AAAA", "strength": 0.5}
    )

    assert resp.status_code == 503
    data = resp.json()
    assert data["error"] == "DNS resolution failed"
    assert data["category"] == "dns_failure"
    assert data["errorCode"] == "ENOTFOUND"
    assert provider.calls == 1


def test_retryable_failures_exhausted_is_503(tmp_path):
    resets = [TransportError("read ECONNRESET", TransportErrorCode.CONNECTION_RESET) for _ in range(3)]
    provider = StubProvider(resets)
    resp = _client(tmp_path, provider).post(
        "/generate", json={"image": "data:image/png;base64,AAAA", "strength": 0.5}
    )

    assert resp.status_code == 503
    assert resp.json()["error"] == "Connection interrupted"
    assert provider.calls == 3


def test_upstream_status_passthrough(tmp_path):
    provider = StubProvider([TransportResult(429, {}, '{"error": {"code": 429}}')])
    resp = _client(tmp_path, provider).post(
        "/generate", json={"image": "data:image/png;base64,AAAA", "strength": 0.5}
    )

    assert resp.status_code == 429
    assert resp.json() == {
        "error": "Failed to generate rendering",
        "details": '{"error": {"code": 429}}',
        "category": "upstream_status",
    }


def test_no_image_in_response_includes_serialized_response(tmp_path):
    reply = {"candidates": [{"content": {"parts": [{"text": "sorry"}]}}]}
    provider = StubProvider([TransportResult(200, {}, json.dumps(reply))])
    resp = _client(tmp_path, provider).post(
        "/generate", json={"image": "data:image/png;base64,AAAA", "strength": 0.5}
    )

    assert resp.status_code == 500
    data = resp.json()
    assert data["error"] == "No image in API response"
    assert json.loads(data["response"]) == reply
    assert _usage_lines(tmp_path) == []


def test_empty_candidates(tmp_path):
    provider = StubProvider([TransportResult(200, {}, json.dumps({"candidates": []}))])
    resp = _client(tmp_path, provider).post(
        "/generate", json={"image": "data:image/png;base64,AAAA", "strength": 0.5}
    )
    assert resp.status_code == 500
    assert resp.json()["error"] == "No image generated"


def test_internal_error_stack_only_outside_production(tmp_path):
    class Broken:
        async def send(self, url, method, headers, body, timeout):
            raise RuntimeError("boom")

    dev = _client(tmp_path, Broken()).post("/generate", json={"image": "data:image/png;base64,AAAA"})
    prod = _client(tmp_path, Broken(), app_env="production").post(
        "/generate", json={"image": "data:image/png;base64,AAAA"}
    )

    assert dev.status_code == prod.status_code == 500
    assert dev.json()["error"] == "Internal server error"
    assert "RuntimeError" in dev.json()["stack"]
    assert "stack" not in prod.json()


def test_health(tmp_path):
    resp = _client(tmp_path, StubProvider()).get("/health")
    assert resp.json() == {"status": "ok"}
