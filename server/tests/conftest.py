# ─────────────────────────────────────────────────────────────────────────────
# Test Fixtures — shared across all tests
# ─────────────────────────────────────────────────────────────────────────────

import asyncio
import os
from collections.abc import Iterator
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from lyricsmith.config import Settings
from lyricsmith.main import create_app, init_state
from lyricsmith.providers.llm import MockLLMService
from lyricsmith.providers.protocol import SpeechResult
from lyricsmith.providers.voice import map_artist_to_voice
from lyricsmith.rate_limit import InMemoryUsageStore
from lyricsmith.schemas import VoiceStyle
from lyricsmith.store.song_store import SongStore

ALLOWED_ORIGIN = "http://localhost:3000"

SAMPLE_SONG_REQUEST = {
    "genre": "pop",
    "vibe": "romantic",
    "theme": "summer love",
    "style": "fast",
    "seedPhrase": "golden hour",
}


class FakeSpeechProvider:
    """Speech provider that returns fixed bytes and records every call."""

    def __init__(self, enabled: bool = True, error: Exception | None = None) -> None:
        self._enabled = enabled
        self.error = error
        self.calls: list[dict] = []

    @property
    def enabled(self) -> bool:
        return self._enabled

    async def generate_voice(
        self,
        lyrics: str,
        artist_style: VoiceStyle,
        tempo: float = 1.0,
        emotion: str | None = None,
    ) -> SpeechResult:
        self.calls.append({"lyrics": lyrics, "artist_style": artist_style, "tempo": tempo, "emotion": emotion})
        if self.error is not None:
            raise self.error
        return SpeechResult(
            audio=b"ID3-fake-mp3",
            voice_style=VoiceStyle(artist_style),
            voice_preset=map_artist_to_voice(artist_style).preset,
        )


@pytest.fixture
def test_settings(tmp_path: Path) -> Settings:
    """Settings configured for testing — mock LLM, throwaway database."""
    return Settings(
        database_url=str(tmp_path / "lyricsmith-test.db"),
        openai_api_key="",
        anthropic_api_key="",
        cors_origin=f"{ALLOWED_ORIGIN},http://localhost:5173",
        rate_limit_storage="memory",
        log_json=False,
        log_level="DEBUG",
    )


def run_sync(coro):
    """Run a coroutine on a private loop, leaving the current loop alone."""
    loop = asyncio.new_event_loop()
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


@pytest.fixture
def song_store(test_settings: Settings) -> Iterator[SongStore]:
    """Connected SongStore on a temp file, closed after the test.

    Sync so that both plain and async tests can use it.
    """
    store = SongStore(test_settings.database_url)
    run_sync(store.connect())
    yield store
    run_sync(store.disconnect())


@pytest.fixture
def fake_voice() -> FakeSpeechProvider:
    return FakeSpeechProvider()


@pytest.fixture
def usage_store() -> InMemoryUsageStore:
    return InMemoryUsageStore()


@pytest.fixture
def app(
    test_settings: Settings,
    song_store: SongStore,
    fake_voice: FakeSpeechProvider,
    usage_store: InMemoryUsageStore,
):
    """App with test collaborators on app.state.

    TestClient is used without a `with` block, so the lifespan never runs
    and the state set here is what requests see.
    """
    from lyricsmith.config import get_settings

    get_settings.cache_clear()

    env_overrides = {
        "LOG_JSON": "false",
        "LOG_LEVEL": "DEBUG",
        "API_PREFIX": "/api",
    }
    for k, v in env_overrides.items():
        os.environ[k] = v

    try:
        application = create_app()
        init_state(
            application,
            test_settings,
            llm=MockLLMService(),
            voice=fake_voice,
            store=song_store,
            usage_store=usage_store,
        )
        return application
    finally:
        for k in env_overrides:
            os.environ.pop(k, None)
        get_settings.cache_clear()


@pytest.fixture
def client(app) -> TestClient:
    """FastAPI TestClient with mocked dependencies."""
    return TestClient(app)


@pytest.fixture
def song_request() -> dict:
    """A valid generate-song body (camelCase, as the browser sends it)."""
    return dict(SAMPLE_SONG_REQUEST)


@pytest.fixture
def created_song(client: TestClient, song_request: dict) -> dict:
    """A song generated through the API, as returned in `data`."""
    response = client.post("/api/generate-song", json=song_request)
    assert response.status_code == 200
    return response.json()["data"]
