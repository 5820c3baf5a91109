# ─────────────────────────────────────────────────────────────────────────────
# Schema Factory Tests — polyfactory
# ─────────────────────────────────────────────────────────────────────────────
# Demonstrates: polyfactory for auto-generating valid Pydantic model
# instances that respect all field constraints (min_length, ge, le, etc).
# Used here to check the camelCase wire format both ways and that every
# valid request passes the HTTP validation gate.
# ─────────────────────────────────────────────────────────────────────────────

from dirty_equals import IsInstance, IsStr
from polyfactory.factories.pydantic_factory import ModelFactory

from lyricsmith.schemas import (
    ChatRequest,
    GenerateSongRequest,
    GenerateSongResponse,
    ReviseRequest,
    SuggestMusicRequest,
    VoiceGenerationRequest,
    VoicePreviewRequest,
)

# ─── Factories ───────────────────────────────────────────────────────────────


class GenerateSongRequestFactory(ModelFactory):
    __model__ = GenerateSongRequest


class ReviseRequestFactory(ModelFactory):
    __model__ = ReviseRequest


class SuggestMusicRequestFactory(ModelFactory):
    __model__ = SuggestMusicRequest


class ChatRequestFactory(ModelFactory):
    __model__ = ChatRequest


class VoiceGenerationRequestFactory(ModelFactory):
    __model__ = VoiceGenerationRequest


class VoicePreviewRequestFactory(ModelFactory):
    __model__ = VoicePreviewRequest


class GenerateSongResponseFactory(ModelFactory):
    __model__ = GenerateSongResponse


# ─── Wire format ─────────────────────────────────────────────────────────────


class TestWireFormat:
    def test_requests_accept_camel_case(self):
        for factory in (
            GenerateSongRequestFactory,
            ReviseRequestFactory,
            SuggestMusicRequestFactory,
            VoiceGenerationRequestFactory,
            VoicePreviewRequestFactory,
        ):
            for _ in range(20):
                original = factory.build()
                wire = original.model_dump(mode="json", by_alias=True)
                assert factory.__model__.model_validate(wire) == original

    def test_revise_request_uses_camel_keys(self):
        wire = ReviseRequestFactory.build().model_dump(mode="json", by_alias=True)
        assert {"songId", "revisionType", "preserveStructure"} <= set(wire)

    def test_response_serializes_camel_case(self):
        response = GenerateSongResponseFactory.build()
        wire = response.model_dump(mode="json", by_alias=True)
        assert wire == {
            "songId": IsStr(),
            "lyrics": IsInstance(dict),
            "metadata": IsInstance(dict),
            "suggestions": IsInstance(dict),
            "voiceOptions": IsInstance(dict),
            "availableVoiceStyles": IsInstance(list),
            "generatedVoiceUrl": response.generated_voice_url,
        }
        assert "chordProgression" in wire["suggestions"]
        assert "estimatedDuration" in wire["metadata"]


class TestConstraints:
    def test_generated_voice_requests_respect_bounds(self):
        for _ in range(50):
            request = VoiceGenerationRequestFactory.build()
            assert 0.25 <= request.tempo <= 4.0
            assert len(request.lyrics) >= 1

    def test_generated_previews_respect_bounds(self):
        for _ in range(50):
            request = VoicePreviewRequestFactory.build()
            assert 1 <= request.duration <= 15
            assert 1 <= len(request.lyrics) <= 2000


class TestGateAcceptsValidRequests:
    """Anything the schema accepts, the validation gate accepts too."""

    def test_generate_song(self, client):
        for _ in range(5):
            body = GenerateSongRequestFactory.build().model_dump(mode="json", by_alias=True)
            response = client.post("/api/generate-song", json=body)
            assert response.status_code == 200, response.json()

    def test_chat(self, client):
        for _ in range(5):
            body = ChatRequestFactory.build(message="Any tips for a second verse?").model_dump(
                mode="json", by_alias=True
            )
            assert client.post("/api/chat", json=body).status_code == 200
