# ─────────────────────────────────────────────────────────────────────────────
# Voice Service — OpenAI text-to-speech with artist-style presets
# ─────────────────────────────────────────────────────────────────────────────
# Artist styles map onto the provider's built-in voices plus a speed factor.
# Calls are retried a fixed number of times with linear backoff; the last
# failure is translated to a typed ProviderError.
# ─────────────────────────────────────────────────────────────────────────────

from __future__ import annotations

import asyncio
import math
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TypeVar

import openai
import structlog
from opentelemetry import trace

from lyricsmith.config import Settings
from lyricsmith.exceptions import ProviderError, ServiceNotConfiguredError
from lyricsmith.providers.llm import classify_sdk_error
from lyricsmith.providers.protocol import SpeechResult
from lyricsmith.schemas import VoicePreset, VoiceStyle

logger = structlog.get_logger(__name__)
tracer = trace.get_tracer(__name__)

T = TypeVar("T")

MIN_SPEED = 0.25
MAX_SPEED = 2.0


@dataclass(frozen=True)
class VoiceMapping:
    preset: VoicePreset
    pitch: int = 0  # Semitone hint for downstream processing
    speed: float = 1.0
    emotion_hint: str | None = None


VOICE_MAPPINGS: dict[VoiceStyle, VoiceMapping] = {
    VoiceStyle.taylor_swift: VoiceMapping(VoicePreset.nova, pitch=2, speed=1.0, emotion_hint="bright"),
    VoiceStyle.ed_sheeran: VoiceMapping(VoicePreset.onyx, pitch=0, speed=1.0, emotion_hint="warm"),
    VoiceStyle.drake: VoiceMapping(VoicePreset.echo, pitch=-1, speed=0.95, emotion_hint="confident"),
    VoiceStyle.billie_eilish: VoiceMapping(VoicePreset.shimmer, pitch=1, speed=0.9, emotion_hint="intimate"),
    VoiceStyle.adele: VoiceMapping(VoicePreset.fable, pitch=1, speed=0.98, emotion_hint="powerful"),
    VoiceStyle.weeknd: VoiceMapping(VoicePreset.alloy, pitch=0, speed=1.05, emotion_hint="atmospheric"),
}


def map_artist_to_voice(artist_style: VoiceStyle) -> VoiceMapping:
    try:
        return VOICE_MAPPINGS[VoiceStyle(artist_style)]
    except (KeyError, ValueError):
        raise ValueError(f"Unsupported artist style: {artist_style}") from None


def normalize_speed(tempo: float, mapping_speed: float = 1.0) -> float:
    """Combine style speed and requested tempo, clamped to what the API accepts."""
    combined = mapping_speed * (tempo or 1.0)
    if not math.isfinite(combined):
        combined = 1.0
    return min(MAX_SPEED, max(MIN_SPEED, combined))


class VoiceService:
    """Text-to-speech through OpenAI's audio.speech endpoint.

    Disabled (every call raises ServiceNotConfiguredError) when no API key
    is available or TTS is switched off.
    """

    def __init__(
        self,
        api_key: str,
        model: str = "gpt-4o-mini-tts",
        enabled: bool = True,
        retry_attempts: int = 3,
        retry_delay_ms: int = 400,
    ) -> None:
        # The "openai" placeholder value means "use the default model".
        self._model = model if model and model != "openai" else "gpt-4o-mini-tts"
        self._retry_attempts = max(1, retry_attempts)
        self._retry_delay_s = retry_delay_ms / 1000
        self._client: openai.AsyncOpenAI | None = None
        if api_key and enabled:
            # Retries are ours; the SDK's would multiply them.
            self._client = openai.AsyncOpenAI(api_key=api_key, max_retries=0)

    @classmethod
    def from_settings(cls, settings: Settings) -> VoiceService:
        service = cls(
            api_key=settings.openai_api_key.get_secret_value(),
            model=settings.default_voice_model,
            enabled=settings.openai_tts_enabled,
            retry_attempts=settings.voice_retry_attempts,
            retry_delay_ms=settings.voice_retry_delay_ms,
        )
        if service.enabled:
            logger.info("voice_service_configured", model=service._model)
        else:
            logger.warning("voice_service_disabled", tts_enabled=settings.openai_tts_enabled)
        return service

    @property
    def enabled(self) -> bool:
        return self._client is not None

    async def generate_voice(
        self,
        lyrics: str,
        artist_style: VoiceStyle,
        tempo: float = 1.0,
        emotion: str | None = None,
    ) -> SpeechResult:
        if self._client is None:
            raise ServiceNotConfiguredError(
                "Voice generation not configured. Set OPENAI_API_KEY and OPENAI_TTS_ENABLED.",
                provider="openai",
            )

        mapping = map_artist_to_voice(artist_style)
        speed = normalize_speed(tempo, mapping.speed)
        client = self._client

        async def _synthesize() -> bytes:
            response = await client.audio.speech.create(
                model=self._model,
                voice=mapping.preset.value,
                input=lyrics,
                speed=speed,
                response_format="mp3",
            )
            return response.content

        with tracer.start_as_current_span("voice_synthesis") as span:
            span.set_attribute("voice.style", str(artist_style))
            span.set_attribute("voice.preset", mapping.preset.value)
            span.set_attribute("voice.chars", len(lyrics))
            audio = await self._call_with_retry(_synthesize)

        logger.info(
            "voice_generated",
            style=str(artist_style),
            preset=mapping.preset.value,
            speed=round(speed, 3),
            emotion=emotion or mapping.emotion_hint,
            bytes=len(audio),
        )
        return SpeechResult(
            audio=audio,
            voice_style=VoiceStyle(artist_style),
            voice_preset=mapping.preset,
        )

    async def _call_with_retry(self, fn: Callable[[], Awaitable[T]]) -> T:
        """Run `fn` up to `retry_attempts` times, sleeping delay × attempt between tries."""
        attempt = 1
        while True:
            try:
                return await fn()
            except openai.OpenAIError as exc:
                logger.warning(
                    "voice_attempt_failed",
                    attempt=attempt,
                    max_attempts=self._retry_attempts,
                    error_type=type(exc).__name__,
                )
                if attempt >= self._retry_attempts:
                    error: ProviderError = classify_sdk_error(exc, "openai")
                    raise error from exc
                await asyncio.sleep(self._retry_delay_s * attempt)
                attempt += 1
