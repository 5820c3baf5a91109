# ─────────────────────────────────────────────────────────────────────────────
# Lifespan Tests — real startup/shutdown via `with TestClient(...)`
# ─────────────────────────────────────────────────────────────────────────────
# The other suites skip the lifespan and inject state directly. These run it
# for real: store connect/disconnect and the background usage purge.
# ─────────────────────────────────────────────────────────────────────────────

import asyncio
import time

import pytest
from fastapi.testclient import TestClient
from structlog.testing import capture_logs

from lyricsmith.config import get_settings
from lyricsmith.main import _on_cleanup_done, create_app


@pytest.fixture
def lifespan_env(tmp_path, monkeypatch):
    env = {
        "DATABASE_URL": str(tmp_path / "lifespan.db"),
        "OPENAI_API_KEY": "",
        "ANTHROPIC_API_KEY": "",
        "RATE_LIMIT_STORAGE": "sqlite",
        "RATE_LIMIT_REQUESTS": "1000",
        "USAGE_CLEANUP_INTERVAL_SECONDS": "1",
        "USAGE_RETENTION_SECONDS": "1",
        "LOG_JSON": "false",
        "OTEL_EXPORTER": "",
    }
    for key, value in env.items():
        monkeypatch.setenv(key, value)
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


def _usage_stats(client: TestClient) -> dict[str, int]:
    body = client.get("/api/health").json()
    return body["data"]["services"]["database"]["details"]["stats"]["usageStats"]


class TestLifespan:
    def test_store_connected_for_app_lifetime(self, lifespan_env):
        app = create_app()
        with TestClient(app) as client:
            assert app.state.song_store.is_connected
            assert client.get("/api/health").status_code == 200
        assert not app.state.song_store.is_connected
        assert app.state._usage_cleanup_task.done()

    def test_old_usage_is_purged_in_background(self, lifespan_env):
        app = create_app()
        with TestClient(app) as client:
            client.get("/api/generate-song")
            assert _usage_stats(client).get("/api/generate-song") == 1

            # No further checks on that path: only the background task can remove it.
            deadline = time.monotonic() + 6
            while time.monotonic() < deadline:
                time.sleep(0.5)
                if "/api/generate-song" not in _usage_stats(client):
                    break
            assert "/api/generate-song" not in _usage_stats(client)


class TestCleanupTaskCallback:
    async def test_failure_is_logged(self):
        async def broken() -> None:
            raise RuntimeError("disk gone")

        task = asyncio.create_task(broken())
        with pytest.raises(RuntimeError):
            await task
        with capture_logs() as logs:
            _on_cleanup_done(task)
        assert logs == [
            {
                "event": "usage_cleanup_task_failed",
                "log_level": "critical",
                "error": "disk gone",
                "error_type": "RuntimeError",
            }
        ]

    async def test_cancellation_is_silent(self):
        task = asyncio.create_task(asyncio.sleep(10))
        await asyncio.sleep(0)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task
        with capture_logs() as logs:
            _on_cleanup_done(task)
        assert logs == []
