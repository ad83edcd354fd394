"""
Prometheus-based metrics for production monitoring.
Provides /metrics endpoint for scraping.
"""
from prometheus_client import Counter, Histogram, generate_latest, CONTENT_TYPE_LATEST
from fastapi import APIRouter, Response


# Counters
render_requests_total = Counter(
    "render_requests_total",
    "Total /generate requests by outcome",
    ["outcome"],  # success or an ErrorCategory value
)

provider_attempts_total = Counter(
    "provider_attempts_total",
    "Total provider HTTP attempts",
    ["result"],  # ok or a TransportErrorCode value
)

provider_retries_total = Counter(
    "provider_retries_total",
    "Total provider retries scheduled",
    ["error_code"],
)

render_tokens_total = Counter(
    "render_tokens_total",
    "Tokens reported by the provider",
    ["direction"],  # input, output
)

usage_log_failures_total = Counter(
    "usage_log_failures_total",
    "Usage records that could not be appended",
)

# Histograms
render_duration_seconds = Histogram(
    "render_duration_seconds",
    "End-to-end /generate duration",
    buckets=[1, 5, 10, 30, 60, 120, 300],
)


# Metrics endpoint router
router = APIRouter()


@router.get("/metrics")
def metrics_endpoint() -> Response:
    """Prometheus metrics endpoint for scraping."""
    return Response(
        content=generate_latest(),
        media_type=CONTENT_TYPE_LATEST,
    )
