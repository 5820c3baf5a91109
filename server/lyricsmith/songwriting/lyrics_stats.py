import math
import re
from collections.abc import Mapping
from typing import Any

_BRACKET_HEADER = re.compile(r"\[.*?\]")
_NEWLINES = re.compile(r"\n+")

WORDS_PER_BEAT = 0.8
INTRO_OUTRO_MINUTES = 0.5


def word_count(lyrics: Mapping[str, Any]) -> int:
    """Total words across string-valued sections, ignoring `[Header]` tags."""
    total = 0
    for text in lyrics.values():
        if isinstance(text, str):
            cleaned = _NEWLINES.sub(" ", _BRACKET_HEADER.sub("", text))
            total += len(cleaned.split())
    return total


def estimate_duration(lyrics: Mapping[str, Any], bpm: float) -> str:
    """Rough song length as `m:ss`: sung beats at the given tempo plus 30 s."""
    words = word_count(lyrics)
    beats_per_minute = bpm if bpm > 0 else 120
    total_minutes = (words / WORDS_PER_BEAT) / beats_per_minute + INTRO_OUTRO_MINUTES
    minutes = math.floor(total_minutes)
    seconds = round((total_minutes - minutes) * 60)
    if seconds == 60:
        minutes, seconds = minutes + 1, 0
    return f"{minutes}:{seconds:02d}"
