# ─────────────────────────────────────────────────────────────────────────────
# Song Routes — generate, revise, suggest music, chat
# ─────────────────────────────────────────────────────────────────────────────
# Bodies go through the validation gate (json_body); services raise
# LyricsmithError subclasses which the registered handlers render.
# ─────────────────────────────────────────────────────────────────────────────

from datetime import UTC, datetime
from typing import Any

from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse

from lyricsmith.config import APP_VERSION, Settings
from lyricsmith.dependencies import get_settings_dep, get_songwriter
from lyricsmith.responses import success_response
from lyricsmith.schemas import (
    ChatRequest,
    EndpointStatus,
    GenerateSongRequest,
    Genre,
    ReviseRequest,
    SuggestMusicRequest,
    Vibe,
)
from lyricsmith.services.songwriter import SongwriterService
from lyricsmith.validation import json_body

router = APIRouter()


@router.post("/generate-song")
async def generate_song(
    payload: GenerateSongRequest = Depends(json_body(GenerateSongRequest)),
    songwriter: SongwriterService = Depends(get_songwriter),
) -> JSONResponse:
    """Generate lyrics + arrangement suggestions and persist the new song."""
    return success_response(await songwriter.generate_song(payload))


@router.get("/generate-song")
async def generate_song_status() -> JSONResponse:
    return success_response(
        EndpointStatus(
            status="generate-song endpoint is running",
            timestamp=datetime.now(UTC),
            version=APP_VERSION,
        )
    )


@router.post("/revise")
async def revise(
    payload: ReviseRequest = Depends(json_body(ReviseRequest)),
    songwriter: SongwriterService = Depends(get_songwriter),
) -> JSONResponse:
    """Rewrite one section of a stored song."""
    return success_response(await songwriter.revise(payload))


@router.get("/revise")
async def list_revisions(
    song_id: str | None = Query(None, alias="songId"),
    songwriter: SongwriterService = Depends(get_songwriter),
) -> JSONResponse:
    """Revision history for a song, newest first."""
    return success_response(await songwriter.list_revisions(song_id))


@router.post("/suggest-music")
async def suggest_music(
    payload: SuggestMusicRequest = Depends(json_body(SuggestMusicRequest)),
    songwriter: SongwriterService = Depends(get_songwriter),
) -> JSONResponse:
    return success_response(await songwriter.suggest_music(payload))


@router.get("/suggest-music")
async def suggest_music_docs(settings: Settings = Depends(get_settings_dep)) -> JSONResponse:
    """Self-describing usage documentation for the suggest-music endpoint."""
    return success_response(_suggest_music_documentation(settings.api_prefix))


@router.post("/chat")
async def chat(
    payload: ChatRequest = Depends(json_body(ChatRequest)),
    songwriter: SongwriterService = Depends(get_songwriter),
) -> JSONResponse:
    """Free-form songwriting Q&A."""
    return success_response(await songwriter.chat(payload))


def _suggest_music_documentation(api_prefix: str) -> dict[str, Any]:
    return {
        "endpoint": f"{api_prefix}/suggest-music",
        "method": "POST",
        "description": "Generate music suggestions based on lyrics and genre preferences",
        "parameters": {
            "lyrics": {
                "type": "object",
                "required": True,
                "description": "Complete lyrics structure with sections",
            },
            "genre": {
                "type": "string",
                "required": True,
                "enum": [g.value for g in Genre],
                "description": "Musical genre of the song",
            },
            "vibe": {
                "type": "string",
                "required": True,
                "enum": [v.value for v in Vibe],
                "description": "Emotional tone of the song",
            },
            "preferences": {
                "type": "object",
                "required": False,
                "description": "Optional preferences for suggestions",
                "properties": {
                    "tempo": {"type": "string", "enum": ["slow", "mid", "fast"]},
                    "complexity": {"type": "string", "enum": ["simple", "moderate", "complex"]},
                    "instruments": {"type": "array", "items": {"type": "string"}},
                },
            },
        },
        "response": {
            "tempo": "BPM and tempo description",
            "key": "Musical key with relative minor and reasoning",
            "chordProgression": "Chord progression with complexity and alternatives",
            "instrumentation": "Primary and secondary instruments with texture",
            "production": "Production style, effects, and arrangement suggestions",
        },
        "example": {
            "method": "POST",
            "body": {
                "lyrics": {
                    "verse1": "Example verse lyrics here",
                    "chorus": "Example chorus lyrics here",
                },
                "genre": "pop",
                "vibe": "romantic",
                "preferences": {"tempo": "mid", "complexity": "moderate"},
            },
        },
    }
