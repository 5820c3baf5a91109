# ─────────────────────────────────────────────────────────────────────────────
# Prometheus Metrics Endpoint — text exposition format
# ─────────────────────────────────────────────────────────────────────────────
# GET /metrics/prometheus → text/plain Prometheus format
# Bridges RequestMetrics → prometheus-client gauges on scrape.
# ─────────────────────────────────────────────────────────────────────────────

from fastapi import APIRouter, Depends
from fastapi.responses import Response
from prometheus_client import CollectorRegistry, Gauge, generate_latest

from lyricsmith.dependencies import get_metrics
from lyricsmith.services.metrics import RequestMetrics

router = APIRouter()

# ── Prometheus metrics (custom registry to avoid default process metrics) ─────

_registry = CollectorRegistry()

_requests_total = Gauge(
    "lyricsmith_requests_total",
    "Requests seen by the pipeline, by response status",
    ["status"],
    registry=_registry,
)

_request_latency = Gauge(
    "lyricsmith_request_latency_ms",
    "Request latency over the recent window",
    ["quantile"],
    registry=_registry,
)

_rate_limited_total = Gauge(
    "lyricsmith_rate_limited_total",
    "Requests rejected with 429",
    registry=_registry,
)

_cors_rejected_total = Gauge(
    "lyricsmith_cors_rejected_total",
    "Requests rejected by the origin allow-list",
    registry=_registry,
)

_provider_calls_total = Gauge(
    "lyricsmith_provider_calls_total",
    "Upstream LLM calls, by outcome",
    ["outcome"],
    registry=_registry,
)

_uptime_seconds = Gauge(
    "lyricsmith_uptime_seconds",
    "Seconds since the metrics object was created",
    registry=_registry,
)


def _sync_metrics(metrics: RequestMetrics) -> None:
    """Sync RequestMetrics data into Prometheus gauges."""
    data = metrics.to_dict()

    for status, count in metrics.status_counts().items():
        _requests_total.labels(status=str(status)).set(count)

    _request_latency.labels(quantile="0.5").set(data["latency_p50_ms"])
    _request_latency.labels(quantile="0.95").set(data["latency_p95_ms"])

    _rate_limited_total.set(data["rate_limited_total"])
    _cors_rejected_total.set(data["cors_rejected_total"])

    failures = data["provider_failures_total"]
    _provider_calls_total.labels(outcome="success").set(data["provider_calls_total"] - failures)
    _provider_calls_total.labels(outcome="failure").set(failures)

    _uptime_seconds.set(data["uptime_seconds"])


@router.get("/metrics/prometheus")
async def prometheus_metrics(
    metrics: RequestMetrics = Depends(get_metrics),
) -> Response:
    """Prometheus text exposition format metrics endpoint."""
    _sync_metrics(metrics)
    return Response(
        content=generate_latest(_registry),
        media_type="text/plain; version=0.0.4; charset=utf-8",
    )
