# ─────────────────────────────────────────────────────────────────────────────
# LLM Service — OpenAI / Anthropic chat completions for songwriting
# ─────────────────────────────────────────────────────────────────────────────
# SDK exceptions are translated into the typed ProviderError hierarchy by
# class, so callers never inspect error message text.
#
#   openai.AuthenticationError / PermissionDeniedError   → ProviderAuthError
#   openai.RateLimitError                                → ProviderRateLimitError
#   openai.APITimeoutError / APIConnectionError          → ProviderUnavailableError
#   any other SDK error, empty or unparseable output     → ProviderResponseError
#
# (same mapping for the anthropic SDK classes)
# ─────────────────────────────────────────────────────────────────────────────

from __future__ import annotations

import json
import re
from typing import Any, Literal

import anthropic
import openai
import structlog
from opentelemetry import trace

from lyricsmith.config import Settings
from lyricsmith.exceptions import (
    ProviderAuthError,
    ProviderError,
    ProviderRateLimitError,
    ProviderResponseError,
    ProviderUnavailableError,
)
from lyricsmith.providers import prompts
from lyricsmith.providers.protocol import LyricsProvider, RevisionResult

logger = structlog.get_logger(__name__)
tracer = trace.get_tracer(__name__)

ProviderName = Literal["openai", "anthropic"]

DEFAULT_MODELS: dict[str, str] = {
    "openai": "gpt-4o-mini",
    "anthropic": "claude-3-5-sonnet-20241022",
}

# Keys a lyrics payload may carry; anything else the model returns is dropped.
LYRIC_SECTIONS = ("verse1", "verse2", "chorus", "preChorus", "bridge", "hook")

_JSON_OBJECT = re.compile(r"\{[\s\S]*\}")

_AUTH_ERRORS = (
    openai.AuthenticationError,
    openai.PermissionDeniedError,
    anthropic.AuthenticationError,
    anthropic.PermissionDeniedError,
)
_RATE_LIMIT_ERRORS = (openai.RateLimitError, anthropic.RateLimitError)
# APITimeoutError subclasses APIConnectionError in both SDKs.
_UNAVAILABLE_ERRORS = (openai.APIConnectionError, anthropic.APIConnectionError)
_SDK_ERRORS = (openai.OpenAIError, anthropic.AnthropicError)


def classify_sdk_error(exc: Exception, provider: str) -> ProviderError:
    """Map an SDK exception onto the ProviderError hierarchy."""
    if isinstance(exc, _AUTH_ERRORS):
        return ProviderAuthError(f"{provider} rejected the API key", provider)
    if isinstance(exc, _RATE_LIMIT_ERRORS):
        return ProviderRateLimitError(f"{provider} rate limit or quota exceeded", provider)
    if isinstance(exc, _UNAVAILABLE_ERRORS):
        return ProviderUnavailableError(f"{provider} timed out or is unreachable", provider)
    return ProviderResponseError(f"{provider} request failed: {type(exc).__name__}", provider)


def validate_lyrics(payload: Any) -> dict[str, str]:
    """Keep known sections with non-empty string values.

    Raises:
        ProviderResponseError: if neither verse1 nor chorus survives.
    """
    if not isinstance(payload, dict):
        raise ProviderResponseError("Lyrics response is not a JSON object")
    lyrics = {
        section: payload[section]
        for section in LYRIC_SECTIONS
        if isinstance(payload.get(section), str) and payload[section]
    }
    if "verse1" not in lyrics and "chorus" not in lyrics:
        raise ProviderResponseError("Generated lyrics must include at least verse1 or chorus")
    return lyrics


def parse_revision(payload: Any) -> RevisionResult:
    if not isinstance(payload, dict):
        raise ProviderResponseError("Revision response is not a JSON object")
    revised = payload.get("revisedSection")
    changes = payload.get("changes")
    return RevisionResult(
        revised_section=revised if isinstance(revised, str) else "",
        changes=[str(c) for c in changes] if isinstance(changes, list) else ["Revision completed"],
    )


class LLMService:
    """Songwriting operations against one configured provider.

    Args:
        provider: "openai" or "anthropic".
        api_key: Provider API key.
        model: Model id; empty selects the provider default.
        max_retries: SDK-level retries on transient failures.
        timeout: SDK request timeout in seconds; None keeps the SDK default.
    """

    def __init__(
        self,
        provider: ProviderName,
        api_key: str,
        model: str = "",
        max_retries: int = 2,
        timeout: float | None = None,
    ) -> None:
        self._provider = provider
        self._model = model or DEFAULT_MODELS[provider]
        client_kwargs: dict[str, Any] = {"api_key": api_key, "max_retries": max_retries}
        if timeout is not None:
            client_kwargs["timeout"] = timeout

        self._openai: openai.AsyncOpenAI | None = None
        self._anthropic: anthropic.AsyncAnthropic | None = None
        if provider == "openai":
            self._openai = openai.AsyncOpenAI(**client_kwargs)
        elif provider == "anthropic":
            self._anthropic = anthropic.AsyncAnthropic(**client_kwargs)
        else:
            raise ValueError(f"Unsupported LLM provider: {provider}")

    @property
    def name(self) -> str:
        return self._provider

    @property
    def model(self) -> str:
        return self._model

    # ── Operations ───────────────────────────────────────────────────────────

    async def generate_lyrics(
        self,
        genre: str,
        vibe: str,
        theme: str,
        style: str | None = None,
        seed_phrase: str | None = None,
        sections: list[str] | None = None,
    ) -> dict[str, str]:
        system = prompts.build_generate_prompt(genre, vibe, theme, style, seed_phrase, sections)
        payload = await self._complete_json(
            "generate_lyrics",
            system,
            prompts.GENERATE_USER_MESSAGE,
            temperature=0.8,
            max_tokens=2000,
        )
        return validate_lyrics(payload)

    async def revise_lyrics(
        self,
        lyrics: dict[str, str],
        target: str,
        instruction: str,
        revision_type: str,
        genre: str,
        vibe: str,
        theme: str,
        preserve_structure: bool = True,
    ) -> RevisionResult:
        system = prompts.build_revise_prompt(
            lyrics, target, instruction, genre, vibe, theme, preserve_structure
        )
        payload = await self._complete_json(
            "revise_lyrics",
            system,
            prompts.REVISE_USER_MESSAGE,
            temperature=0.7,
            max_tokens=1000,
        )
        return parse_revision(payload)

    async def suggest_music(
        self,
        lyrics: dict[str, str],
        genre: str,
        vibe: str,
        preferences: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        system = prompts.build_music_prompt(lyrics, genre, vibe, preferences)
        payload = await self._complete_json(
            "suggest_music",
            system,
            prompts.SUGGEST_USER_MESSAGE,
            temperature=0.6,
            max_tokens=1500,
        )
        if not isinstance(payload, dict):
            raise ProviderResponseError("Music suggestions are not a JSON object", self._provider)
        return payload

    async def chat(self, message: str, context: dict[str, Any] | None = None) -> str:
        text = await self._complete(
            "chat",
            prompts.build_chat_prompt(context),
            message,
            temperature=0.8,
            max_tokens=500,
            json_mode=False,
        )
        return text or "I could not generate a response."

    # ── Transport ────────────────────────────────────────────────────────────

    async def _complete_json(
        self,
        operation: str,
        system: str,
        user: str,
        temperature: float,
        max_tokens: int,
    ) -> Any:
        text = await self._complete(operation, system, user, temperature, max_tokens, json_mode=True)
        if not text:
            raise ProviderResponseError(f"No content received from {self._provider}", self._provider)

        if self._provider == "anthropic":
            # No JSON mode: take the outermost {...} span from free text.
            match = _JSON_OBJECT.search(text)
            if match is None:
                raise ProviderResponseError("No JSON found in response", self._provider)
            text = match.group(0)

        try:
            return json.loads(text)
        except json.JSONDecodeError as exc:
            logger.warning(
                "llm_response_unparseable",
                provider=self._provider,
                operation=operation,
                preview=text[:200],
            )
            raise ProviderResponseError(
                f"Invalid response format from {self._provider}", self._provider
            ) from exc

    async def _complete(
        self,
        operation: str,
        system: str,
        user: str,
        temperature: float,
        max_tokens: int,
        json_mode: bool,
    ) -> str | None:
        with tracer.start_as_current_span("llm_completion") as span:
            span.set_attribute("llm.provider", self._provider)
            span.set_attribute("llm.model", self._model)
            span.set_attribute("llm.operation", operation)
            try:
                if self._openai is not None:
                    return await self._complete_openai(system, user, temperature, max_tokens, json_mode)
                if self._anthropic is not None:
                    return await self._complete_anthropic(system, user, temperature, max_tokens)
                raise RuntimeError(f"No client configured for provider {self._provider!r}")
            except _SDK_ERRORS as exc:
                error = classify_sdk_error(exc, self._provider)
                span.record_exception(exc)
                logger.warning(
                    "llm_request_failed",
                    provider=self._provider,
                    operation=operation,
                    sdk_error=type(exc).__name__,
                    error_type=type(error).__name__,
                )
                raise error from exc

    async def _complete_openai(
        self,
        system: str,
        user: str,
        temperature: float,
        max_tokens: int,
        json_mode: bool,
    ) -> str | None:
        if self._openai is None:
            raise RuntimeError("OpenAI client not configured")
        kwargs: dict[str, Any] = {}
        if json_mode:
            kwargs["response_format"] = {"type": "json_object"}
        response = await self._openai.chat.completions.create(
            model=self._model,
            messages=[
                {"role": "system", "content": system},
                {"role": "user", "content": user},
            ],
            temperature=temperature,
            max_tokens=max_tokens,
            **kwargs,
        )
        if not response.choices:
            return None
        return response.choices[0].message.content

    async def _complete_anthropic(
        self,
        system: str,
        user: str,
        temperature: float,
        max_tokens: int,
    ) -> str | None:
        if self._anthropic is None:
            raise RuntimeError("Anthropic client not configured")
        response = await self._anthropic.messages.create(
            model=self._model,
            max_tokens=max_tokens,
            temperature=temperature,
            system=system,
            messages=[{"role": "user", "content": user}],
        )
        for block in response.content:
            if block.type == "text":
                return block.text
        return None


class MockLLMService:
    """Deterministic offline stand-in used when no API key is configured."""

    @property
    def name(self) -> str:
        return "mock"

    async def generate_lyrics(
        self,
        genre: str,
        vibe: str,
        theme: str,
        style: str | None = None,
        seed_phrase: str | None = None,
        sections: list[str] | None = None,
    ) -> dict[str, str]:
        return {
            "verse1": (
                f"({genre} / {vibe}) Verse about {theme}: "
                f"Falling into the groove with {seed_phrase or 'a spark of sound'}."
            ),
            "preChorus": "Building up the feeling, letting colors start to glow.",
            "chorus": "This is our moment, we light up the night, hearts in stereo, we're taking flight.",
            "bridge": "Softly we echo, drifting on the skyline.",
            "hook": "Oh-oh, we ride the wave tonight.",
        }

    async def revise_lyrics(
        self,
        lyrics: dict[str, str],
        target: str,
        instruction: str,
        revision_type: str,
        genre: str,
        vibe: str,
        theme: str,
        preserve_structure: bool = True,
    ) -> RevisionResult:
        section = target or "section"
        return RevisionResult(
            revised_section=f'Refined {section} with "{instruction}" while keeping the {vibe} {genre} vibe.',
            changes=[f"Adjusted {section} per instruction", "Kept structure and tone intact"],
        )

    async def suggest_music(
        self,
        lyrics: dict[str, str],
        genre: str,
        vibe: str,
        preferences: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        return {
            "tempo": {"bpm": 110, "description": "Laid-back pocket that fits the lyrical pacing"},
            "key": {"major": "C", "relativeMinor": "Am", "reasoning": "Neutral, versatile key for most voices"},
            "chordProgression": {
                "progression": ["C", "G", "Am", "F"],
                "complexity": "moderate",
                "alternatives": ["C-Am-F-G"],
            },
            "instrumentation": {
                "primary": ["vocals", "electric piano", "bass", "drums"],
                "secondary": ["guitar", "pads"],
                "texture": "warm and spacey",
            },
            "production": {
                "style": "modern, clean mix with light saturation",
                "effects": ["reverb", "delay"],
                "arrangement": "intro - verse - pre - chorus - bridge - outro",
            },
        }

    async def chat(self, message: str, context: dict[str, Any] | None = None) -> str:
        topic = (context or {}).get("theme") or "your song"
        return f"Here's an idea for {topic}: build the next line around the image in \"{message[:80]}\"."


def create_llm_service(settings: Settings) -> LyricsProvider:
    """Build the configured provider, or the mock when its API key is missing."""
    api_key = settings.active_llm_key
    if not api_key:
        logger.warning(
            "llm_api_key_missing",
            provider=settings.llm_provider,
            fallback="mock",
        )
        return MockLLMService()

    service = LLMService(
        provider=settings.llm_provider,
        api_key=api_key,
        model=settings.llm_model,
        max_retries=settings.llm_max_retries,
        timeout=settings.llm_timeout_seconds,
    )
    logger.info("llm_service_configured", provider=service.name, model=service.model)
    return service
