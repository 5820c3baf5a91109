# FastAPI application factory with lifespan management.
# Entrypoint: uvicorn lyricsmith.main:create_app --factory --host 0.0.0.0 --port 8080

import asyncio
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

import structlog
from fastapi import FastAPI

from lyricsmith.config import APP_VERSION, Settings, get_settings
from lyricsmith.cors import CorsPolicy
from lyricsmith.exceptions import register_exception_handlers
from lyricsmith.logging_config import configure_logging
from lyricsmith.middleware import RequestPipelineMiddleware
from lyricsmith.providers.llm import create_llm_service
from lyricsmith.providers.protocol import LyricsProvider, SpeechProvider
from lyricsmith.providers.voice import VoiceService
from lyricsmith.rate_limit import (
    PREVIEW_ENDPOINT_KEY,
    InMemoryUsageStore,
    RateLimiter,
    RateLimitPolicy,
    UsageStore,
)
from lyricsmith.routes import health, songs, voice
from lyricsmith.routes import prometheus as prometheus_routes
from lyricsmith.services.metrics import RequestMetrics
from lyricsmith.services.songwriter import SongwriterService
from lyricsmith.services.voice_studio import VoiceStudioService
from lyricsmith.store.song_store import SongStore

logger = structlog.get_logger(__name__)

if TYPE_CHECKING:
    from opentelemetry.sdk.trace import TracerProvider


def _configure_otel(exporter_type: str) -> "TracerProvider | None":
    """Configure OpenTelemetry tracing (console only)."""
    if exporter_type != "console":
        logger.warning("unknown_otel_exporter", exporter=exporter_type)
        return None

    from opentelemetry import trace
    from opentelemetry.sdk.trace import TracerProvider
    from opentelemetry.sdk.trace.export import BatchSpanProcessor, ConsoleSpanExporter

    provider = TracerProvider()
    provider.add_span_processor(BatchSpanProcessor(ConsoleSpanExporter()))
    trace.set_tracer_provider(provider)
    logger.info("otel_configured", exporter=exporter_type)
    return provider


def init_state(
    app: FastAPI,
    settings: Settings,
    *,
    llm: LyricsProvider | None = None,
    voice: SpeechProvider | None = None,
    store: SongStore | None = None,
    usage_store: UsageStore | None = None,
) -> None:
    """Build every collaborator and hang it on app.state.

    Called by the lifespan; tests call it directly with fakes.
    """
    store = store or SongStore(settings.database_url)
    if usage_store is None:
        usage_store = store if settings.rate_limit_storage == "sqlite" else InMemoryUsageStore()
    llm = llm or create_llm_service(settings)
    voice = voice or VoiceService.from_settings(settings)
    metrics = RequestMetrics()

    preview_limiter = RateLimiter(
        usage_store,
        RateLimitPolicy(settings.preview_rate_limit_requests, settings.preview_rate_limit_window),
        fail_open=settings.rate_limit_fail_open,
        record_rejected=True,
        fixed_endpoint=PREVIEW_ENDPOINT_KEY,
    )

    app.state.settings = settings
    app.state.song_store = store
    app.state.usage_store = usage_store
    app.state.llm = llm
    app.state.voice = voice
    app.state.metrics = metrics
    app.state.api_prefix = settings.api_prefix
    app.state.cors_policy = CorsPolicy.from_setting(settings.cors_origin)
    app.state.rate_limiter = RateLimiter(
        usage_store,
        RateLimitPolicy(settings.rate_limit_requests, settings.rate_limit_window),
        fail_open=settings.rate_limit_fail_open,
    )
    app.state.songwriter = SongwriterService(llm, store, metrics=metrics)
    app.state.voice_studio = VoiceStudioService(
        voice,
        store,
        preview_limiter,
        default_preview_duration=settings.voice_preview_duration,
        max_preview_duration=settings.voice_preview_max_duration,
    )


async def _purge_usage_periodically(
    usage_store: UsageStore,
    retention_seconds: int,
    interval_seconds: int,
) -> None:
    """Drop usage records older than the retention window, forever."""
    while True:
        await asyncio.sleep(interval_seconds)
        try:
            removed = await usage_store.cleanup_usage(time.time() - retention_seconds)
        except Exception:
            logger.exception("usage_cleanup_failed")
            continue
        if removed:
            logger.info("usage_cleanup_complete", removed=removed)


def _on_cleanup_done(task: asyncio.Task[None]) -> None:
    """Log background cleanup task failures (suppresses silent exceptions)."""
    if task.cancelled():
        return
    if exc := task.exception():
        logger.critical(
            "usage_cleanup_task_failed",
            error=str(exc),
            error_type=type(exc).__name__,
        )


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Manage startup/shutdown: open the store, start the usage purge."""
    settings = get_settings()

    otel_provider = None
    if settings.otel_exporter:
        otel_provider = _configure_otel(settings.otel_exporter)

    init_state(app, settings)
    store: SongStore = app.state.song_store
    await store.connect()

    # Task ref stored on app.state so it is not garbage collected
    task = asyncio.create_task(
        _purge_usage_periodically(
            app.state.usage_store,
            settings.usage_retention_seconds,
            settings.usage_cleanup_interval_seconds,
        )
    )
    task.add_done_callback(_on_cleanup_done)
    app.state._usage_cleanup_task = task
    logger.info("startup_complete", version=APP_VERSION, llm=app.state.llm.name)

    yield

    task.cancel()
    try:
        await task
    except asyncio.CancelledError:
        pass

    # Flush OTel spans before shutdown
    if otel_provider is not None:
        otel_provider.shutdown()

    await store.disconnect()


def create_app() -> FastAPI:
    """Application factory. Invoked by: uvicorn lyricsmith.main:create_app --factory"""
    settings = get_settings()
    configure_logging(log_level=settings.log_level, json_output=settings.log_json)

    app = FastAPI(
        title="Lyricsmith",
        description="AI songwriting assistant: lyrics, revisions, arrangement and voice",
        version=APP_VERSION,
        lifespan=lifespan,
    )

    app.add_middleware(RequestPipelineMiddleware)
    register_exception_handlers(app)

    app.include_router(health.router, tags=["health"])
    app.include_router(prometheus_routes.router, tags=["prometheus"])
    app.include_router(health.api_router, prefix=settings.api_prefix, tags=["health"])
    app.include_router(songs.router, prefix=settings.api_prefix, tags=["songs"])
    app.include_router(voice.router, prefix=settings.api_prefix, tags=["voice"])

    return app
