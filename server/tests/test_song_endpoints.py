# ─────────────────────────────────────────────────────────────────────────────
# Song Endpoint Tests — generate, revise, suggest music, chat
# ─────────────────────────────────────────────────────────────────────────────
# Runs against MockLLMService (deterministic) and a temp SQLite store.
# ─────────────────────────────────────────────────────────────────────────────

import asyncio
import uuid

import pytest
from dirty_equals import IsInstance, IsList, IsPositiveInt, IsStr

from lyricsmith.exceptions import (
    ProviderAuthError,
    ProviderRateLimitError,
    ProviderResponseError,
    ProviderUnavailableError,
)
from lyricsmith.providers.llm import MockLLMService
from lyricsmith.services.songwriter import SongwriterService


class FailingLLM(MockLLMService):
    """Mock LLM whose every call raises the given provider error."""

    def __init__(self, error: Exception) -> None:
        self.error = error

    async def generate_lyrics(self, *args, **kwargs):
        raise self.error

    async def revise_lyrics(self, *args, **kwargs):
        raise self.error

    async def suggest_music(self, *args, **kwargs):
        raise self.error

    async def chat(self, *args, **kwargs):
        raise self.error


@pytest.fixture
def use_llm(app, song_store):
    """Swap the songwriter's LLM for the duration of a test."""

    def _use(llm):
        app.state.songwriter = SongwriterService(llm, song_store, metrics=app.state.metrics)

    return _use


def revise_body(song: dict, **overrides) -> dict:
    body = {
        "songId": song["songId"],
        "lyrics": song["lyrics"],
        "revisionType": "section",
        "target": "chorus",
        "instruction": "make it brighter",
    }
    body.update(overrides)
    return body


# ── Generate ─────────────────────────────────────────────────────────────────


class TestGenerateSong:
    def test_response_shape(self, created_song):
        assert created_song == {
            "songId": IsStr(regex=r"[0-9a-f-]{36}"),
            "lyrics": IsInstance(dict),
            "metadata": {
                "genre": "pop",
                "vibe": "romantic",
                "theme": "summer love",
                "wordCount": IsPositiveInt,
                "estimatedDuration": IsStr(regex=r"\d+:\d{2}"),
                "voiceOptions": IsInstance(dict),
            },
            "suggestions": IsInstance(dict),
            "voiceOptions": IsInstance(dict),
            "availableVoiceStyles": IsList(length=6),
            "generatedVoiceUrl": None,
        }

    def test_lyrics_include_verse_or_chorus(self, created_song):
        assert "verse1" in created_song["lyrics"] or "chorus" in created_song["lyrics"]

    def test_voice_options_follow_style_and_vibe(self, created_song):
        voice = created_song["voiceOptions"]
        assert voice["tempo"] == 1.25  # style=fast
        assert voice["emotion"] == "romantic"
        assert voice["artistStyle"] is None

    def test_suggestions_are_complete(self, created_song):
        suggestions = created_song["suggestions"]
        assert set(suggestions) == {"tempo", "key", "chordProgression", "instrumentation", "production"}
        assert 60 <= suggestions["tempo"]["bpm"] <= 180

    def test_song_is_persisted(self, created_song, song_store):
        record = asyncio.run(song_store.get_song(created_song["songId"]))
        assert record is not None
        assert record.lyrics == created_song["lyrics"]
        assert record.metadata["originalRequest"]["seedPhrase"] == "golden hour"
        assert record.metadata["suggestions"] == created_song["suggestions"]

    def test_unknown_genre_is_rejected(self, client, song_request):
        song_request["genre"] = "polka"
        response = client.post("/api/generate-song", json=song_request)
        assert response.status_code == 400
        body = response.json()
        assert body["code"] == "VALIDATION_ERROR"
        assert body["details"] == [
            {"field": "genre", "message": IsStr(), "code": "invalid_enum_value"}
        ]

    def test_missing_theme_is_rejected(self, client, song_request):
        del song_request["theme"]
        details = client.post("/api/generate-song", json=song_request).json()["details"]
        assert {"field": "theme", "message": IsStr(), "code": "required"} in details

    def test_spelling_variants_accepted(self, client, song_request):
        song_request["genre"] = "hiphop"
        song_request["style"] = "mid-tempo"
        response = client.post("/api/generate-song", json=song_request)
        assert response.status_code == 200

    def test_status_endpoint(self, client):
        response = client.get("/api/generate-song")
        assert response.status_code == 200
        assert response.json()["data"] == {
            "status": "generate-song endpoint is running",
            "timestamp": IsStr(),
            "version": "1.0.0",
        }


class TestGenerateProviderFailures:
    @pytest.mark.parametrize(
        ("error", "status", "code"),
        [
            (ProviderAuthError("bad key"), 503, "AI_SERVICE_ERROR"),
            (ProviderRateLimitError("quota"), 429, "AI_RATE_LIMIT"),
            (ProviderUnavailableError("timeout"), 503, "AI_SERVICE_UNAVAILABLE"),
            (ProviderResponseError("garbage"), 500, "GENERATION_ERROR"),
            (RuntimeError("unexpected"), 500, "GENERATION_ERROR"),
        ],
    )
    def test_errors_are_translated(self, client, use_llm, song_request, error, status, code):
        use_llm(FailingLLM(error))
        response = client.post("/api/generate-song", json=song_request)
        assert response.status_code == status
        assert response.json()["code"] == code

    def test_provider_failure_counts_in_metrics(self, client, use_llm, song_request):
        use_llm(FailingLLM(ProviderResponseError("garbage")))
        client.post("/api/generate-song", json=song_request)
        data = client.get("/metrics").json()
        assert data["provider_failures_total"] == 1
        assert data["server_errors_total"] == 1

    def test_nothing_is_persisted_on_failure(self, client, use_llm, song_request, song_store):
        use_llm(FailingLLM(ProviderResponseError("garbage")))
        client.post("/api/generate-song", json=song_request)
        assert asyncio.run(song_store.total_songs()) == 0


# ── Revise ───────────────────────────────────────────────────────────────────


class TestRevise:
    def test_round_trip(self, client, created_song):
        response = client.post("/api/revise", json=revise_body(created_song))
        assert response.status_code == 200
        data = response.json()["data"]

        assert list(data["revisedLyrics"]) == ["chorus"]
        assert data["fullLyrics"]["chorus"] == data["revisedLyrics"]["chorus"]
        assert data["fullLyrics"]["verse1"] == created_song["lyrics"]["verse1"]
        assert data["changes"] == IsList(length=(1, ...))
        assert data["metadata"] == {
            "songId": created_song["songId"],
            "revisionType": "section",
            "targetSection": "chorus",
            "timestamp": IsStr(),
        }

        history = client.get("/api/revise", params={"songId": created_song["songId"]}).json()["data"]
        assert history["count"] == 1
        assert history["revisions"][0]["id"] == data["revisionId"]
        assert history["revisions"][0]["instruction"] == "make it brighter"

    def test_updates_stored_song(self, client, created_song, song_store):
        data = client.post("/api/revise", json=revise_body(created_song)).json()["data"]
        record = asyncio.run(song_store.get_song(created_song["songId"]))
        assert record.lyrics == data["fullLyrics"]
        assert record.metadata["revisionCount"] == 1
        assert record.metadata["lastRevision"]["id"] == data["revisionId"]

    @pytest.mark.parametrize("target", ["verse 1", "Verse1", "VERSE", "intro"])
    def test_section_aliases_resolve_to_verse1(self, client, created_song, target):
        response = client.post("/api/revise", json=revise_body(created_song, target=target))
        assert response.status_code == 200
        data = response.json()["data"]
        assert list(data["revisedLyrics"]) == ["verse1"]
        assert data["metadata"]["targetSection"] == target

    def test_unknown_section(self, client, created_song):
        response = client.post("/api/revise", json=revise_body(created_song, target="coda"))
        assert response.status_code == 400
        body = response.json()
        assert body["code"] == "SECTION_NOT_FOUND"
        assert body["error"] == 'Section "coda" not found in current lyrics'
        assert body["details"]["target"] == "coda"
        assert "chorus" in body["details"]["availableSections"]

    def test_empty_target_is_section_not_found(self, client, created_song):
        response = client.post("/api/revise", json=revise_body(created_song, target=""))
        assert response.json()["code"] == "SECTION_NOT_FOUND"

    def test_unknown_song(self, client, created_song):
        body = revise_body(created_song, songId=str(uuid.uuid4()))
        response = client.post("/api/revise", json=body)
        assert response.status_code == 404
        assert response.json()["code"] == "SONG_NOT_FOUND"

    def test_song_id_must_be_uuid(self, client, created_song):
        response = client.post("/api/revise", json=revise_body(created_song, songId="song-1"))
        assert response.status_code == 400
        assert response.json()["details"] == [
            {"field": "songId", "message": IsStr(), "code": "invalid_string"}
        ]

    @pytest.mark.parametrize(
        ("instruction", "accepted"),
        [
            ("ab", False),
            ("  ab  ", False),
            ("abc", True),
            ("a" * 500, True),
            ("a" * 501, False),
        ],
    )
    def test_instruction_length_bounds(self, client, created_song, instruction, accepted):
        response = client.post("/api/revise", json=revise_body(created_song, instruction=instruction))
        if accepted:
            assert response.status_code == 200
        else:
            assert response.status_code == 400
            assert response.json()["code"] == "INVALID_REVISION_INSTRUCTION"

    @pytest.mark.parametrize(
        ("instruction", "message"),
        [
            ("make it more violent", "Revision instruction contains inappropriate content"),
            ("copy the lyrics of my favorite hit", "Revision instruction may request copyrighted material"),
        ],
    )
    def test_unsafe_instruction(self, client, created_song, instruction, message):
        response = client.post("/api/revise", json=revise_body(created_song, instruction=instruction))
        assert response.status_code == 400
        assert response.json() == {
            "success": False,
            "error": message,
            "code": "INVALID_REVISION_INSTRUCTION",
        }

    def test_song_check_runs_before_instruction_check(self, client, created_song):
        body = revise_body(created_song, songId=str(uuid.uuid4()), instruction="ab")
        assert client.post("/api/revise", json=body).json()["code"] == "SONG_NOT_FOUND"

    def test_section_check_runs_before_instruction_check(self, client, created_song):
        body = revise_body(created_song, target="coda", instruction="ab")
        assert client.post("/api/revise", json=body).json()["code"] == "SECTION_NOT_FOUND"

    def test_provider_failure(self, client, created_song, use_llm):
        use_llm(FailingLLM(ProviderResponseError("garbage")))
        response = client.post("/api/revise", json=revise_body(created_song))
        assert response.status_code == 500
        assert response.json()["code"] == "REVISION_ERROR"


class TestRevisionHistory:
    def test_requires_song_id(self, client):
        response = client.get("/api/revise")
        assert response.status_code == 400
        assert response.json()["code"] == "MISSING_SONG_ID"

    def test_unknown_song_has_empty_history(self, client):
        song_id = str(uuid.uuid4())
        data = client.get("/api/revise", params={"songId": song_id}).json()["data"]
        assert data == {"songId": song_id, "revisions": [], "count": 0}

    def test_newest_first(self, client, created_song):
        first = client.post("/api/revise", json=revise_body(created_song, instruction="first pass")).json()
        second = client.post("/api/revise", json=revise_body(created_song, instruction="second pass")).json()
        revisions = client.get("/api/revise", params={"songId": created_song["songId"]}).json()["data"]["revisions"]
        assert [r["id"] for r in revisions] == [second["data"]["revisionId"], first["data"]["revisionId"]]


# ── Suggest music ────────────────────────────────────────────────────────────


class TestSuggestMusic:
    LYRICS = {"verse1": "Engines roar under city lights", "chorus": "We never stop, we never stop"}

    def test_suggestions_with_metadata(self, client):
        response = client.post(
            "/api/suggest-music",
            json={
                "lyrics": self.LYRICS,
                "genre": "rock",
                "vibe": "aggressive",
                "preferences": {"complexity": "complex"},
            },
        )
        assert response.status_code == 200
        data = response.json()["data"]
        assert 60 <= data["tempo"]["bpm"] <= 180
        assert len(data["chordProgression"]["progression"]) <= 6
        assert data["metadata"] == {
            "genre": "rock",
            "vibe": "aggressive",
            "preferences": {"tempo": "mid", "complexity": "complex", "instruments": []},
            "generatedAt": IsStr(),
            "lyricsWordCount": 11,
        }

    def test_empty_lyrics(self, client):
        response = client.post("/api/suggest-music", json={"lyrics": {}, "genre": "pop", "vibe": "chill"})
        assert response.status_code == 400
        assert response.json()["code"] == "MISSING_LYRICS"

    def test_invalid_preference(self, client):
        response = client.post(
            "/api/suggest-music",
            json={"lyrics": self.LYRICS, "genre": "pop", "vibe": "chill", "preferences": {"tempo": "warp"}},
        )
        assert response.status_code == 400
        assert response.json()["details"][0]["field"] == "preferences.tempo"

    def test_provider_failure(self, client, use_llm):
        use_llm(FailingLLM(ProviderResponseError("garbage")))
        response = client.post(
            "/api/suggest-music", json={"lyrics": self.LYRICS, "genre": "pop", "vibe": "chill"}
        )
        assert response.status_code == 500
        assert response.json()["code"] == "SUGGESTION_ERROR"

    def test_documentation(self, client):
        data = client.get("/api/suggest-music").json()["data"]
        assert data["endpoint"] == "/api/suggest-music"
        assert data["method"] == "POST"
        assert "r&b" in data["parameters"]["genre"]["enum"]


# ── Chat ─────────────────────────────────────────────────────────────────────


class TestChat:
    def test_reply(self, client):
        response = client.post(
            "/api/chat", json={"message": "How do I write a bridge?", "context": {"theme": "rain"}}
        )
        assert response.status_code == 200
        assert response.json()["data"] == {"reply": IsStr(regex=r".*rain.*")}

    @pytest.mark.parametrize("body", [{}, {"message": None}, {"message": ""}, {"message": "   "}])
    def test_missing_message(self, client, body):
        response = client.post("/api/chat", json=body)
        assert response.status_code == 400
        assert response.json()["code"] == "MISSING_MESSAGE"

    @pytest.mark.parametrize("error", [ProviderRateLimitError("quota"), ProviderAuthError("bad key")])
    def test_every_failure_is_chat_error(self, client, use_llm, error):
        use_llm(FailingLLM(error))
        response = client.post("/api/chat", json={"message": "hello"})
        assert response.status_code == 500
        assert response.json() == {
            "success": False,
            "error": "Failed to process chat message",
            "code": "CHAT_ERROR",
        }
