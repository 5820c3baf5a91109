"""Provider clients — LLM and text-to-speech behind Protocol interfaces."""

from lyricsmith.providers.llm import LLMService, MockLLMService, create_llm_service
from lyricsmith.providers.protocol import (
    LyricsProvider,
    RevisionResult,
    SpeechProvider,
    SpeechResult,
)
from lyricsmith.providers.voice import VoiceService

__all__ = [
    "LLMService",
    "LyricsProvider",
    "MockLLMService",
    "RevisionResult",
    "SpeechProvider",
    "SpeechResult",
    "VoiceService",
    "create_llm_service",
]
