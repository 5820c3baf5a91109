# ─────────────────────────────────────────────────────────────────────────────
# Pydantic v2 Request / Response Schemas
# ─────────────────────────────────────────────────────────────────────────────
# Wire format is camelCase (browser client); Python attributes stay
# snake_case via alias_generator. Unknown request fields are ignored.
# ─────────────────────────────────────────────────────────────────────────────


from datetime import datetime
from enum import StrEnum
from typing import Any, Literal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ── Enumerations ─────────────────────────────────────────────────────────────


class Genre(StrEnum):
    pop = "pop"
    rap = "rap"
    r_and_b = "r&b"
    country = "country"
    indie = "indie"
    rock = "rock"
    hiphop = "hiphop"
    rnb = "rnb"


class Vibe(StrEnum):
    sad = "sad"
    hype = "hype"
    dreamy = "dreamy"
    aggressive = "aggressive"
    romantic = "romantic"
    chill = "chill"


class Style(StrEnum):
    slow = "slow"
    fast = "fast"
    mid_tempo = "mid-tempo"
    mid = "mid"


class Section(StrEnum):
    verse = "verse"
    chorus = "chorus"
    pre_chorus = "pre-chorus"
    bridge = "bridge"
    hook = "hook"
    verse1 = "verse1"
    verse2 = "verse2"
    pre_chorus_key = "preChorus"


class RevisionType(StrEnum):
    section = "section"
    lines = "lines"
    style = "style"
    rhyme = "rhyme"
    mood = "mood"


class VoiceStyle(StrEnum):
    """Artist-inspired singing styles offered to the client."""

    taylor_swift = "taylor-swift"
    ed_sheeran = "ed-sheeran"
    drake = "drake"
    billie_eilish = "billie-eilish"
    adele = "adele"
    weeknd = "weeknd"


class VoicePreset(StrEnum):
    """Speech provider voices."""

    nova = "nova"  # Clear female
    onyx = "onyx"  # Warm male
    echo = "echo"  # Deep male
    shimmer = "shimmer"  # Soft female
    fable = "fable"  # Powerful female
    alloy = "alloy"  # Atmospheric male


# ── Requests ─────────────────────────────────────────────────────────────────


class GenerateSongRequest(CamelModel):
    """Parameters for a brand-new song."""

    genre: Genre
    vibe: Vibe
    theme: str = Field(..., min_length=1, description="What the song is about")
    style: Style | None = None
    seed_phrase: str | None = Field(None, description="Phrase to weave into the lyrics")
    sections: list[Section] | None = None


class ReviseRequest(CamelModel):
    song_id: UUID
    lyrics: dict[str, str]
    revision_type: RevisionType
    target: str
    instruction: str = Field(..., min_length=1)
    preserve_structure: bool = True


class MusicPreferences(CamelModel):
    tempo: Literal["slow", "mid", "fast"] | None = None
    complexity: Literal["simple", "moderate", "complex"] | None = None
    instruments: list[str] | None = None


class SuggestMusicRequest(CamelModel):
    lyrics: dict[str, str]
    genre: Genre
    vibe: Vibe
    preferences: MusicPreferences | None = None


class SongContext(CamelModel):
    genre: str | None = None
    vibe: str | None = None
    theme: str | None = None


class ChatRequest(CamelModel):
    # Missing, null and blank are schema-valid; the handler reports MISSING_MESSAGE.
    message: str | None = None
    context: SongContext | None = None


class VoiceGenerationRequest(CamelModel):
    lyrics: str = Field(..., min_length=1)
    artist_style: VoiceStyle
    tempo: float = Field(1.0, ge=0.25, le=4.0)
    emotion: str | None = Field(None, max_length=64)


class VoicePreviewRequest(CamelModel):
    lyrics: str = Field(..., min_length=1, max_length=2000)
    artist_style: VoiceStyle
    duration: float = Field(10, ge=1, le=15, description="Seconds of preview audio")


# ── Responses ────────────────────────────────────────────────────────────────


class Tempo(CamelModel):
    bpm: int
    description: str


class MusicalKey(CamelModel):
    major: str
    relative_minor: str
    reasoning: str


class ChordProgression(CamelModel):
    progression: list[str]
    complexity: str
    alternatives: list[str]


class Instrumentation(CamelModel):
    primary: list[str]
    secondary: list[str]
    texture: str


class Production(CamelModel):
    style: str
    effects: list[str]
    arrangement: str


class MusicSuggestions(CamelModel):
    """Arrangement parameters, always complete and within bounds."""

    tempo: Tempo
    key: MusicalKey
    chord_progression: ChordProgression
    instrumentation: Instrumentation
    production: Production


class VoiceOptions(CamelModel):
    artist_style: VoiceStyle | None = None
    tempo: float = 1.0
    emotion: str | None = None
    available_voice_styles: list[VoiceStyle] = Field(default_factory=lambda: list(VoiceStyle))
    generated_voice_url: str | None = None


class SongMetadata(CamelModel):
    genre: str
    vibe: str
    theme: str
    word_count: int
    estimated_duration: str = Field(..., description="m:ss")
    voice_options: VoiceOptions


class GenerateSongResponse(CamelModel):
    song_id: str
    lyrics: dict[str, str]
    metadata: SongMetadata
    suggestions: MusicSuggestions
    voice_options: VoiceOptions
    available_voice_styles: list[VoiceStyle]
    generated_voice_url: str | None = None


class RevisionMetadata(CamelModel):
    song_id: str
    revision_type: RevisionType
    target_section: str
    timestamp: datetime


class ReviseResponse(CamelModel):
    revised_lyrics: dict[str, str]
    full_lyrics: dict[str, str]
    changes: list[str]
    revision_id: str
    metadata: RevisionMetadata


class RevisionSummary(CamelModel):
    id: str
    type: str
    instruction: str
    created_at: datetime


class RevisionListResponse(CamelModel):
    song_id: str
    revisions: list[RevisionSummary]
    count: int


class SuggestionMetadata(CamelModel):
    genre: str
    vibe: str
    preferences: dict[str, Any]
    generated_at: datetime
    lyrics_word_count: int


class SuggestMusicResponse(MusicSuggestions):
    metadata: SuggestionMetadata


class ChatResponse(CamelModel):
    reply: str


class EndpointStatus(CamelModel):
    status: str
    timestamp: datetime
    version: str


class HealthResponse(CamelModel):
    status: Literal["healthy", "degraded"]
    timestamp: datetime
    version: str
    services: dict[str, Any]
    endpoints: dict[str, str]


class LivenessResponse(BaseModel):
    """Liveness probe — minimal, near-zero cost."""

    status: str = "ok"
