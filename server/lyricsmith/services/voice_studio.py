# Voice generation and short previews on top of the speech provider.

from __future__ import annotations

import math
from dataclasses import dataclass

import structlog

from lyricsmith.exceptions import (
    LyricsmithError,
    ProviderError,
    RateLimitExceededError,
    ServiceNotConfiguredError,
    UpstreamUnavailableError,
    translating_errors,
)
from lyricsmith.providers.protocol import SpeechProvider, SpeechResult
from lyricsmith.rate_limit import RateLimiter
from lyricsmith.schemas import VoiceGenerationRequest, VoicePreviewRequest
from lyricsmith.store.song_store import SongStore

logger = structlog.get_logger(__name__)

PREVIEW_CHARS_PER_SECOND = 28
MIN_PREVIEW_CHARS = 120
PREVIEW_EMOTION = "preview"


def _voice_errors(exc: ProviderError) -> LyricsmithError | None:
    if isinstance(exc, ServiceNotConfiguredError):
        return UpstreamUnavailableError("Voice generation not configured", "VOICE_SERVICE_UNAVAILABLE")
    return None


def preview_duration(requested: float | None, default: float, maximum: float) -> float:
    """Requested duration, never above the configured default or the hard max."""
    return min(requested or default, min(default, maximum))


def constrain_preview_text(lyrics: str, duration: float) -> str:
    max_chars = max(MIN_PREVIEW_CHARS, math.floor(duration * PREVIEW_CHARS_PER_SECOND))
    return lyrics[:max_chars]


@dataclass(frozen=True)
class PreviewResult:
    speech: SpeechResult
    duration: float


class VoiceStudioService:
    def __init__(
        self,
        voice: SpeechProvider,
        store: SongStore,
        preview_limiter: RateLimiter,
        default_preview_duration: float = 10,
        max_preview_duration: float = 15,
    ) -> None:
        self._voice = voice
        self._store = store
        self._preview_limiter = preview_limiter
        self._default_preview_duration = default_preview_duration
        self._max_preview_duration = max_preview_duration

    async def generate_voice(self, request: VoiceGenerationRequest) -> SpeechResult:
        """Render full lyrics; the generation is recorded best-effort."""
        with translating_errors("Failed to generate voice", "VOICE_GENERATION_ERROR", _voice_errors):
            speech = await self._voice.generate_voice(
                request.lyrics, request.artist_style, request.tempo, request.emotion
            )

        try:
            await self._store.create_voice_generation(
                voice_style=str(speech.voice_style),
                voice_preset=str(speech.voice_preset),
                song_id=None,
                voice_url=None,
                duration=speech.duration,
            )
        except Exception:
            logger.warning("voice_generation_tracking_failed", exc_info=True)
        return speech

    async def preview_voice(self, request: VoicePreviewRequest, client: str) -> PreviewResult:
        """Render a short, text-capped preview under its own strict quota."""
        duration = preview_duration(
            request.duration, self._default_preview_duration, self._max_preview_duration
        )

        decision = await self._preview_limiter.check(client)
        if not decision.allowed:
            raise RateLimitExceededError(
                decision.limit,
                decision.window_seconds,
                message="Preview rate limit exceeded",
                code="VOICE_PREVIEW_RATE_LIMIT",
            )

        text = constrain_preview_text(request.lyrics, duration)
        with translating_errors("Failed to generate voice preview", "VOICE_PREVIEW_ERROR", _voice_errors):
            speech = await self._voice.generate_voice(
                text, request.artist_style, 1.0, PREVIEW_EMOTION
            )
        return PreviewResult(speech=speech, duration=duration)
