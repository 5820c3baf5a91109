# ─────────────────────────────────────────────────────────────────────────────
# Health Check Routes — liveness, service health, and metrics
# ─────────────────────────────────────────────────────────────────────────────
#   /health        → Liveness probe. "Is the process alive?" Near-zero cost.
#                    Returns 200 always. Not rate limited.
#
#   /api/health    → Service health in the success envelope: database,
#                    LLM configuration, environment. 503 HEALTH_CHECK_ERROR
#                    only when the database itself is unusable; missing
#                    provider keys report "degraded" with 200.
#
#   /metrics       → Request pipeline metrics (counts, latency, outcomes).
# ─────────────────────────────────────────────────────────────────────────────

from datetime import UTC, datetime
from typing import Any

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from lyricsmith.config import APP_VERSION, Settings
from lyricsmith.dependencies import get_llm, get_metrics, get_settings_dep, get_store
from lyricsmith.exceptions import LyricsmithError
from lyricsmith.providers.protocol import LyricsProvider
from lyricsmith.responses import success_response
from lyricsmith.schemas import HealthResponse, LivenessResponse
from lyricsmith.services.metrics import RequestMetrics
from lyricsmith.store.song_store import SongStore

router = APIRouter()
api_router = APIRouter()


@router.get("/health", response_model=LivenessResponse)
async def liveness() -> LivenessResponse:
    """Liveness probe — is the process alive?

    Keep it absolutely minimal: no deps, no I/O.
    """
    return LivenessResponse(status="ok")


@router.get("/metrics")
async def metrics_endpoint(
    metrics: RequestMetrics = Depends(get_metrics),
) -> dict[str, Any]:
    """Request pipeline metrics — counts, outcomes, latency."""
    return metrics.to_dict()


@api_router.get("/health")
async def service_health(
    store: SongStore = Depends(get_store),
    llm: LyricsProvider = Depends(get_llm),
    settings: Settings = Depends(get_settings_dep),
) -> JSONResponse:
    """Database, LLM and environment status."""
    database = await _database_status(store)

    openai_configured = bool(settings.openai_api_key.get_secret_value())
    anthropic_configured = bool(settings.anthropic_api_key.get_secret_value())
    env_checks = {
        "llmProvider": bool(settings.llm_provider),
        "openaiKey": openai_configured,
        "anthropicKey": anthropic_configured,
        "databaseUrl": bool(settings.database_url),
    }
    llm_configured = bool(settings.active_llm_key)

    health = HealthResponse(
        status="healthy" if llm_configured else "degraded",
        timestamp=datetime.now(UTC),
        version=APP_VERSION,
        services={
            "database": database,
            "llm": {
                "status": "configured" if llm_configured else "misconfigured",
                "details": {
                    "provider": settings.llm_provider,
                    "service": llm.name,
                    "openaiConfigured": openai_configured,
                    "anthropicConfigured": anthropic_configured,
                },
            },
            "environment": {
                "status": "healthy" if all(env_checks.values()) else "warning",
                "details": env_checks,
            },
        },
        endpoints={
            "generateSong": f"{settings.api_prefix}/generate-song",
            "revise": f"{settings.api_prefix}/revise",
            "suggestMusic": f"{settings.api_prefix}/suggest-music",
            "chat": f"{settings.api_prefix}/chat",
            "generateVoice": f"{settings.api_prefix}/generate-voice",
            "previewVoice": f"{settings.api_prefix}/preview-voice",
        },
    )
    return success_response(health)


async def _database_status(store: SongStore) -> dict[str, Any]:
    """Health plus row counts; raises HEALTH_CHECK_ERROR if the store is down."""
    if await store.health_check():
        try:
            stats = {
                "totalSongs": await store.total_songs(),
                "totalRevisions": await store.total_revisions(),
                "usageStats": await store.usage_stats(3600),
            }
        except Exception as exc:
            error = f"{type(exc).__name__}: {exc}"
        else:
            return {"status": "healthy", "details": {"healthy": True, "stats": stats}}
    else:
        error = "Database health check failed"

    raise LyricsmithError(
        "Health check failed",
        status_code=503,
        code="HEALTH_CHECK_ERROR",
        details={"timestamp": datetime.now(UTC).isoformat(), "error": error},
    )
