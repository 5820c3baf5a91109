# ─────────────────────────────────────────────────────────────────────────────
# Music Suggestion Defaults — per-genre arrangement fallbacks + bounds
# ─────────────────────────────────────────────────────────────────────────────
# Provider output is free-form JSON. enhance_suggestions() fills every
# missing field from the genre table and clamps the rest, so clients always
# receive a complete MusicSuggestions with sane bounds.
# ─────────────────────────────────────────────────────────────────────────────

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

from lyricsmith.schemas import (
    ChordProgression,
    Instrumentation,
    MusicalKey,
    MusicSuggestions,
    Production,
    Tempo,
)

MIN_BPM = 60
MAX_BPM = 180
MAX_CHORDS = 6
MAX_ALTERNATIVES = 3
MAX_INSTRUMENTS = 4
MAX_EFFECTS = 5


@dataclass(frozen=True)
class GenreDefaults:
    tempo_by_vibe: dict[str, int]
    default_tempo: int
    key: str
    chord_progression: tuple[str, ...]
    primary_instruments: tuple[str, ...]
    secondary_instruments: tuple[str, ...]
    texture: str
    production_style: str
    effects: tuple[str, ...]
    arrangement: str

    def tempo_for(self, vibe: str) -> int:
        return self.tempo_by_vibe.get(vibe, self.default_tempo)


GENRE_DEFAULTS: dict[str, GenreDefaults] = {
    "pop": GenreDefaults(
        tempo_by_vibe={"sad": 80, "hype": 130},
        default_tempo=120,
        key="C",
        chord_progression=("C", "G", "Am", "F"),
        primary_instruments=("vocals", "synthesizer", "bass guitar", "drums"),
        secondary_instruments=("background vocals", "piano", "guitar"),
        texture="polished, radio-friendly production",
        production_style="modern pop with clean mix",
        effects=("reverb", "compression", "delay", "auto-tune"),
        arrangement="verse-chorus structure with hooks",
    ),
    "rap": GenreDefaults(
        tempo_by_vibe={"hype": 140, "aggressive": 150},
        default_tempo=90,
        key="C",
        chord_progression=("Cm", "G", "Ab", "Eb"),
        primary_instruments=("drum machine", "bass synthesizer", "sampler", "turntables"),
        secondary_instruments=("808 bass", "hi-hats", "snare", "synth pads"),
        texture="hard-hitting beats with deep bass",
        production_style="hip-hop with heavy rhythm",
        effects=("sidechain compression", "distortion", "filter"),
        arrangement="loop-based with verse sections",
    ),
    "r&b": GenreDefaults(
        tempo_by_vibe={"romantic": 70, "sad": 80},
        default_tempo=95,
        key="Eb",
        chord_progression=("Eb", "Cm", "Ab", "Bb"),
        primary_instruments=("electric piano", "bass guitar", "drums", "vocals"),
        secondary_instruments=("organ", "strings", "background vocals", "synthesizer"),
        texture="smooth and soulful with warm tones",
        production_style="contemporary R&B with groove",
        effects=("warm reverb", "subtle delay", "chorus"),
        arrangement="flowing structure with ad-libs",
    ),
    "country": GenreDefaults(
        tempo_by_vibe={"sad": 80},
        default_tempo=100,
        key="G",
        chord_progression=("G", "C", "D", "Em"),
        primary_instruments=("acoustic guitar", "vocals", "bass", "drums"),
        secondary_instruments=("fiddle", "steel guitar", "mandolin", "harmonica"),
        texture="organic and authentic",
        production_style="country with clear storytelling",
        effects=("plate reverb", "subtle compression"),
        arrangement="verse-chorus with narrative structure",
    ),
    "indie": GenreDefaults(
        tempo_by_vibe={"dreamy": 90, "aggressive": 140},
        default_tempo=110,
        key="D",
        chord_progression=("D", "Bm", "G", "A"),
        primary_instruments=("electric guitar", "vocals", "bass", "drums"),
        secondary_instruments=("synthesizer", "piano", "organ", "percussion"),
        texture="lo-fi or atmospheric production",
        production_style="indie rock with character",
        effects=("tape delay", "distortion", "spring reverb"),
        arrangement="dynamic structure with builds",
    ),
    "rock": GenreDefaults(
        tempo_by_vibe={"aggressive": 160, "sad": 80},
        default_tempo=120,
        key="E",
        chord_progression=("E", "A", "B", "C#m"),
        primary_instruments=("electric guitar", "drums", "bass guitar", "vocals"),
        secondary_instruments=("lead guitar", "backing vocals", "keyboard", "cymbals"),
        texture="powerful and energetic",
        production_style="rock with driving rhythm",
        effects=("distortion", "overdrive", "compression", "gating"),
        arrangement="verse-chorus with guitar solos",
    ),
}

# Spelling variants share a table entry.
_GENRE_ALIASES = {"hiphop": "rap", "rnb": "r&b"}

RELATIVE_MINORS: dict[str, str] = {
    "C": "Am",
    "C#": "A#m",
    "Db": "Bbm",
    "D": "Bm",
    "D#": "Cm",
    "Eb": "Cm",
    "E": "C#m",
    "F": "Dm",
    "F#": "D#m",
    "Gb": "Ebm",
    "G": "Em",
    "G#": "Fm",
    "Ab": "Fm",
    "A": "F#m",
    "A#": "Gm",
    "Bb": "Gm",
    "B": "G#m",
}


def genre_defaults(genre: str) -> GenreDefaults:
    """Defaults for a genre; unknown genres get the pop table."""
    key = _GENRE_ALIASES.get(genre, genre)
    return GENRE_DEFAULTS.get(key, GENRE_DEFAULTS["pop"])


def relative_minor(major_key: str) -> str:
    return RELATIVE_MINORS.get(major_key, "Am")


def clamp_bpm(value: Any, fallback: int) -> int:
    """Coerce a provider BPM to an int in [MIN_BPM, MAX_BPM]."""
    try:
        bpm = float(value) if value not in (None, "", 0) else float(fallback)
    except (TypeError, ValueError, OverflowError):
        bpm = float(fallback)
    if bpm != bpm:  # NaN
        bpm = float(fallback)
    return int(round(max(MIN_BPM, min(MAX_BPM, bpm))))


def _section(raw: Mapping[str, Any], name: str) -> Mapping[str, Any]:
    value = raw.get(name)
    return value if isinstance(value, Mapping) else {}


def _str_list(value: Any, limit: int) -> list[str] | None:
    if not isinstance(value, list):
        return None
    return [str(item) for item in value[:limit]]


def enhance_suggestions(
    raw: Mapping[str, Any],
    genre: str,
    vibe: str,
    complexity: str | None = None,
) -> MusicSuggestions:
    """Merge provider suggestions with genre defaults and enforce bounds.

    Args:
        raw: Parsed provider JSON (possibly partial or malformed).
        genre: Song genre; selects the defaults table.
        vibe: Song vibe; selects the default tempo.
        complexity: Preferred chord complexity when the provider omits one.

    Returns:
        A complete MusicSuggestions. Enhancing its own output is a no-op.
    """
    defaults = genre_defaults(genre)
    default_tempo = defaults.tempo_for(vibe)

    tempo_raw = _section(raw, "tempo")
    key_raw = _section(raw, "key")
    chords_raw = _section(raw, "chordProgression")
    instruments_raw = _section(raw, "instrumentation")
    production_raw = _section(raw, "production")

    major = str(key_raw.get("major") or defaults.key)

    return MusicSuggestions(
        tempo=Tempo(
            bpm=clamp_bpm(tempo_raw.get("bpm"), default_tempo),
            description=str(
                tempo_raw.get("description") or f"{default_tempo} BPM matching the {vibe} vibe"
            ),
        ),
        key=MusicalKey(
            major=major,
            relative_minor=str(key_raw.get("relativeMinor") or relative_minor(major)),
            reasoning=str(
                key_raw.get("reasoning")
                or f"{major} major suits the {vibe} emotional tone of the {genre} genre"
            ),
        ),
        chord_progression=ChordProgression(
            progression=_str_list(chords_raw.get("progression"), MAX_CHORDS)
            or list(defaults.chord_progression),
            complexity=str(chords_raw.get("complexity") or complexity or "moderate"),
            alternatives=_str_list(chords_raw.get("alternatives"), MAX_ALTERNATIVES)
            or ["-".join(defaults.chord_progression)],
        ),
        instrumentation=Instrumentation(
            primary=_str_list(instruments_raw.get("primary"), MAX_INSTRUMENTS)
            or list(defaults.primary_instruments),
            secondary=_str_list(instruments_raw.get("secondary"), MAX_INSTRUMENTS)
            or list(defaults.secondary_instruments),
            texture=str(instruments_raw.get("texture") or defaults.texture),
        ),
        production=Production(
            style=str(production_raw.get("style") or defaults.production_style),
            effects=_str_list(production_raw.get("effects"), MAX_EFFECTS) or list(defaults.effects),
            arrangement=str(production_raw.get("arrangement") or defaults.arrangement),
        ),
    )
