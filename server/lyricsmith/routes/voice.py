# Voice routes — full-length synthesis and rate-limited previews.
# Success responses are raw audio/mpeg, not the JSON envelope.

from fastapi import APIRouter, Depends
from fastapi.responses import Response

from lyricsmith.dependencies import get_client_id, get_voice_studio
from lyricsmith.schemas import VoiceGenerationRequest, VoicePreviewRequest
from lyricsmith.services.voice_studio import VoiceStudioService
from lyricsmith.validation import json_body

router = APIRouter()

AUDIO_MEDIA_TYPE = "audio/mpeg"


@router.post("/generate-voice")
async def generate_voice(
    payload: VoiceGenerationRequest = Depends(json_body(VoiceGenerationRequest)),
    studio: VoiceStudioService = Depends(get_voice_studio),
) -> Response:
    """Sing the lyrics in an artist-inspired voice."""
    speech = await studio.generate_voice(payload)
    return Response(
        content=speech.audio,
        media_type=AUDIO_MEDIA_TYPE,
        headers={
            "Content-Disposition": 'inline; filename="generated-voice.mp3"',
            "X-Voice-Style": str(speech.voice_style),
            "X-Voice-Preset": str(speech.voice_preset),
        },
    )


@router.post("/preview-voice")
async def preview_voice(
    payload: VoicePreviewRequest = Depends(json_body(VoicePreviewRequest)),
    client_id: str = Depends(get_client_id),
    studio: VoiceStudioService = Depends(get_voice_studio),
) -> Response:
    """Short preview; at most 5 per client per minute by default."""
    preview = await studio.preview_voice(payload, client_id)
    return Response(
        content=preview.speech.audio,
        media_type=AUDIO_MEDIA_TYPE,
        headers={
            "Content-Disposition": 'inline; filename="voice-preview.mp3"',
            "X-Preview-Duration": f"{preview.duration:g}",
            "X-Voice-Style": str(preview.speech.voice_style),
            "X-Voice-Preset": str(preview.speech.voice_preset),
            "X-Voice-Preview": "true",
        },
    )
