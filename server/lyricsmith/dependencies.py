# ─────────────────────────────────────────────────────────────────────────────
# Dependency Injection — FastAPI Depends() providers
# ─────────────────────────────────────────────────────────────────────────────
# State flows: lifespan creates → app.state stores → Depends() injects.
# No global variables. Every dependency is explicit in endpoint signatures.
# ─────────────────────────────────────────────────────────────────────────────


from fastapi import Request

from lyricsmith.config import Settings
from lyricsmith.providers.protocol import LyricsProvider
from lyricsmith.rate_limit import client_identifier
from lyricsmith.services.metrics import RequestMetrics
from lyricsmith.services.songwriter import SongwriterService
from lyricsmith.services.voice_studio import VoiceStudioService
from lyricsmith.store.song_store import SongStore


def get_settings_dep(request: Request) -> Settings:
    """Inject Settings into endpoints via Depends()."""
    return request.app.state.settings  # type: ignore[no-any-return]


def get_store(request: Request) -> SongStore:
    """Inject SongStore into endpoints via Depends()."""
    return request.app.state.song_store  # type: ignore[no-any-return]


def get_llm(request: Request) -> LyricsProvider:
    return request.app.state.llm  # type: ignore[no-any-return]


def get_metrics(request: Request) -> RequestMetrics:
    """Inject RequestMetrics into endpoints via Depends()."""
    return request.app.state.metrics  # type: ignore[no-any-return]


def get_songwriter(request: Request) -> SongwriterService:
    """Inject SongwriterService into endpoints via Depends()."""
    return request.app.state.songwriter  # type: ignore[no-any-return]


def get_voice_studio(request: Request) -> VoiceStudioService:
    """Inject VoiceStudioService into endpoints via Depends()."""
    return request.app.state.voice_studio  # type: ignore[no-any-return]


def get_client_id(request: Request) -> str:
    """Client identifier used as the rate-limit key."""
    return client_identifier(request)
