# Songwriting orchestration: provider call → post-processing → persistence.
# Provider failures are translated into API errors here, so routes only ever
# see LyricsmithError subclasses.


from __future__ import annotations

import uuid
from collections.abc import Awaitable
from datetime import UTC, datetime
from typing import Any, TypeVar

import structlog
from opentelemetry import trace

from lyricsmith.exceptions import (
    InvalidRevisionInstructionError,
    SectionNotFoundError,
    SongNotFoundError,
    ValidationFailedError,
    translating_errors,
)
from lyricsmith.providers.protocol import LyricsProvider
from lyricsmith.schemas import (
    ChatRequest,
    ChatResponse,
    GenerateSongRequest,
    GenerateSongResponse,
    RevisionListResponse,
    RevisionMetadata,
    RevisionSummary,
    ReviseRequest,
    ReviseResponse,
    SongMetadata,
    SuggestionMetadata,
    SuggestMusicRequest,
    SuggestMusicResponse,
    VoiceOptions,
    VoiceStyle,
)
from lyricsmith.services.metrics import RequestMetrics
from lyricsmith.songwriting.lyrics_stats import estimate_duration, word_count
from lyricsmith.songwriting.music_defaults import enhance_suggestions
from lyricsmith.songwriting.safety import validate_revision_instruction
from lyricsmith.songwriting.sections import normalize_section
from lyricsmith.store.song_store import SongStore

logger = structlog.get_logger(__name__)
tracer = trace.get_tracer(__name__)

T = TypeVar("T")

_STYLE_TEMPO_PREFERENCE = {"slow": "slow", "fast": "fast"}
_STYLE_VOICE_TEMPO = {"fast": 1.25, "slow": 0.9}


def _no_provider_mapping(_exc: Exception) -> None:
    return None


class SongwriterService:
    """Generate, revise, and discuss songs."""

    def __init__(
        self,
        llm: LyricsProvider,
        store: SongStore,
        metrics: RequestMetrics | None = None,
    ) -> None:
        self._llm = llm
        self._store = store
        self._metrics = metrics

    async def _provider(self, call: Awaitable[T]) -> T:
        """Await a provider call and count its outcome."""
        try:
            result = await call
        except Exception:
            if self._metrics:
                self._metrics.record_provider_call(success=False)
            raise
        if self._metrics:
            self._metrics.record_provider_call(success=True)
        return result

    # ── Generate ─────────────────────────────────────────────────────────────

    async def generate_song(self, request: GenerateSongRequest) -> GenerateSongResponse:
        """Write lyrics, derive arrangement and voice defaults, and persist the song."""
        with tracer.start_as_current_span("generate_song") as span:
            span.set_attribute("genre", str(request.genre))
            span.set_attribute("vibe", str(request.vibe))
            span.set_attribute("llm.provider", self._llm.name)

            with translating_errors("Failed to generate song", "GENERATION_ERROR"):
                style = str(request.style) if request.style else None
                lyrics = await self._provider(
                    self._llm.generate_lyrics(
                        genre=str(request.genre),
                        vibe=str(request.vibe),
                        theme=request.theme,
                        style=style,
                        seed_phrase=request.seed_phrase,
                        sections=[str(s) for s in request.sections] if request.sections else None,
                    )
                )
                raw_suggestions = await self._provider(
                    self._llm.suggest_music(
                        lyrics=lyrics,
                        genre=str(request.genre),
                        vibe=str(request.vibe),
                        preferences={
                            "tempo": _STYLE_TEMPO_PREFERENCE.get(style or "", "mid"),
                            "complexity": "moderate",
                        },
                    )
                )
                suggestions = enhance_suggestions(
                    raw_suggestions, str(request.genre), str(request.vibe), "moderate"
                )

                available_styles = list(VoiceStyle)
                voice_options = VoiceOptions(
                    artist_style=None,
                    tempo=_STYLE_VOICE_TEMPO.get(style or "", 1.0),
                    emotion=str(request.vibe),
                    available_voice_styles=available_styles,
                    generated_voice_url=None,
                )
                metadata = SongMetadata(
                    genre=str(request.genre),
                    vibe=str(request.vibe),
                    theme=request.theme,
                    word_count=word_count(lyrics),
                    estimated_duration=estimate_duration(lyrics, suggestions.tempo.bpm),
                    voice_options=voice_options,
                )

                song_id = await self._store.create_song(
                    genre=str(request.genre),
                    vibe=str(request.vibe),
                    theme=request.theme,
                    lyrics=lyrics,
                    metadata={
                        **metadata.model_dump(mode="json", by_alias=True),
                        "suggestions": suggestions.model_dump(mode="json", by_alias=True),
                        "originalRequest": request.model_dump(mode="json", by_alias=True, exclude_none=True),
                    },
                )

            span.set_attribute("song_id", song_id)
            logger.info(
                "song_generated",
                song_id=song_id,
                genre=str(request.genre),
                vibe=str(request.vibe),
                sections=list(lyrics),
                word_count=metadata.word_count,
            )
            return GenerateSongResponse(
                song_id=song_id,
                lyrics=lyrics,
                metadata=metadata,
                suggestions=suggestions,
                voice_options=voice_options,
                available_voice_styles=available_styles,
                generated_voice_url=None,
            )

    # ── Revise ───────────────────────────────────────────────────────────────

    async def revise(self, request: ReviseRequest) -> ReviseResponse:
        """Rewrite one section of a stored song and record the revision.

        Check order: song exists, target section exists, instruction passes
        the content checks. Only then is the provider called.
        """
        song_id = str(request.song_id)
        with tracer.start_as_current_span("revise_song") as span:
            span.set_attribute("song_id", song_id)
            span.set_attribute("revision_type", str(request.revision_type))

            with translating_errors("Failed to revise lyrics", "REVISION_ERROR"):
                song = await self._store.get_song(song_id)
                if song is None:
                    raise SongNotFoundError(song_id)

                # Stored lyrics win; the client copy is only a fallback.
                current_lyrics = dict(song.lyrics) if song.lyrics else dict(request.lyrics)

                target = normalize_section(request.target)
                if not target or not current_lyrics.get(target):
                    raise SectionNotFoundError(request.target, list(current_lyrics))

                check = validate_revision_instruction(request.instruction)
                if not check.valid:
                    raise InvalidRevisionInstructionError(check.reason or "Invalid revision instruction")

                result = await self._provider(
                    self._llm.revise_lyrics(
                        lyrics=current_lyrics,
                        target=target,
                        instruction=request.instruction,
                        revision_type=str(request.revision_type),
                        genre=song.genre,
                        vibe=song.vibe,
                        theme=song.theme,
                        preserve_structure=request.preserve_structure,
                    )
                )

                revised_lyrics = dict(current_lyrics)
                if result.revised_section:
                    revised_lyrics[target] = result.revised_section

                revision_id = await self._store.create_revision(
                    song_id=song_id,
                    revision_type=str(request.revision_type),
                    instruction=request.instruction,
                    old_lyrics=current_lyrics,
                    new_lyrics=revised_lyrics,
                    revision_id=str(uuid.uuid4()),
                )

                now = datetime.now(UTC)
                metadata: dict[str, Any] = dict(song.metadata)
                metadata.update(
                    lastRevised=now.isoformat(),
                    revisionCount=int(metadata.get("revisionCount") or 0) + 1,
                    lastRevision={
                        "id": revision_id,
                        "type": str(request.revision_type),
                        "instruction": request.instruction,
                        "changes": result.changes,
                    },
                )
                await self._store.update_song(song_id, lyrics=revised_lyrics, metadata=metadata)

            logger.info(
                "song_revised",
                song_id=song_id,
                revision_id=revision_id,
                target=target,
                revision_type=str(request.revision_type),
            )
            return ReviseResponse(
                revised_lyrics={target: result.revised_section},
                full_lyrics=revised_lyrics,
                changes=result.changes,
                revision_id=revision_id,
                metadata=RevisionMetadata(
                    song_id=song_id,
                    revision_type=request.revision_type,
                    target_section=request.target,
                    timestamp=now,
                ),
            )

    async def list_revisions(self, song_id: str | None) -> RevisionListResponse:
        if not song_id:
            raise ValidationFailedError("songId parameter is required", code="MISSING_SONG_ID")

        with translating_errors("Failed to fetch revisions", "FETCH_REVISIONS_ERROR"):
            revisions = await self._store.get_song_revisions(song_id)

        return RevisionListResponse(
            song_id=song_id,
            revisions=[
                RevisionSummary(
                    id=rev.id,
                    type=rev.revision_type,
                    instruction=rev.instruction,
                    created_at=rev.created_at,
                )
                for rev in revisions
            ],
            count=len(revisions),
        )

    # ── Suggest music ────────────────────────────────────────────────────────

    async def suggest_music(self, request: SuggestMusicRequest) -> SuggestMusicResponse:
        if not request.lyrics:
            raise ValidationFailedError(
                "Lyrics are required for music suggestions", code="MISSING_LYRICS"
            )

        prefs = request.preferences
        preferences: dict[str, Any] = {
            "tempo": (prefs.tempo if prefs else None) or "mid",
            "complexity": (prefs.complexity if prefs else None) or "moderate",
            "instruments": (prefs.instruments if prefs else None) or [],
        }

        with tracer.start_as_current_span("suggest_music") as span:
            span.set_attribute("genre", str(request.genre))
            with translating_errors("Failed to generate music suggestions", "SUGGESTION_ERROR"):
                raw = await self._provider(
                    self._llm.suggest_music(
                        lyrics=request.lyrics,
                        genre=str(request.genre),
                        vibe=str(request.vibe),
                        preferences=preferences,
                    )
                )
                suggestions = enhance_suggestions(
                    raw, str(request.genre), str(request.vibe), preferences["complexity"]
                )

        return SuggestMusicResponse(
            **dict(suggestions),
            metadata=SuggestionMetadata(
                genre=str(request.genre),
                vibe=str(request.vibe),
                preferences=preferences,
                generated_at=datetime.now(UTC),
                lyrics_word_count=word_count(request.lyrics),
            ),
        )

    # ── Chat ─────────────────────────────────────────────────────────────────

    async def chat(self, request: ChatRequest) -> ChatResponse:
        if not request.message or not request.message.strip():
            raise ValidationFailedError("Message is required", code="MISSING_MESSAGE")

        context = request.context.model_dump(exclude_none=True) if request.context else None
        with translating_errors("Failed to process chat message", "CHAT_ERROR", _no_provider_mapping):
            reply = await self._provider(self._llm.chat(request.message, context))
        return ChatResponse(reply=reply)
