# ─────────────────────────────────────────────────────────────────────────────
# Provider Protocols — runtime_checkable interfaces for LLM and speech
# ─────────────────────────────────────────────────────────────────────────────
# Services depend on these, never on an SDK, so tests can pass fakes and the
# mock LLM can stand in when no API key is configured.
# ─────────────────────────────────────────────────────────────────────────────

from dataclasses import dataclass, field
from typing import Any, Protocol, runtime_checkable

from lyricsmith.schemas import VoicePreset, VoiceStyle


@dataclass(frozen=True)
class RevisionResult:
    revised_section: str
    changes: list[str] = field(default_factory=lambda: ["Revision completed"])


@dataclass(frozen=True)
class SpeechResult:
    audio: bytes
    voice_style: VoiceStyle
    voice_preset: VoicePreset
    duration: float | None = None
    format: str = "mp3"


@runtime_checkable
class LyricsProvider(Protocol):
    """Writes, revises and discusses lyrics (e.g., OpenAI, Anthropic, mock)."""

    @property
    def name(self) -> str: ...

    async def generate_lyrics(
        self,
        genre: str,
        vibe: str,
        theme: str,
        style: str | None = None,
        seed_phrase: str | None = None,
        sections: list[str] | None = None,
    ) -> dict[str, str]: ...

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
    ) -> RevisionResult: ...

    async def suggest_music(
        self,
        lyrics: dict[str, str],
        genre: str,
        vibe: str,
        preferences: dict[str, Any] | None = None,
    ) -> dict[str, Any]: ...

    async def chat(self, message: str, context: dict[str, Any] | None = None) -> str: ...


@runtime_checkable
class SpeechProvider(Protocol):
    """Renders lyrics to audio in an artist-inspired voice."""

    @property
    def enabled(self) -> bool: ...

    async def generate_voice(
        self,
        lyrics: str,
        artist_style: VoiceStyle,
        tempo: float = 1.0,
        emotion: str | None = None,
    ) -> SpeechResult: ...
