# ─────────────────────────────────────────────────────────────────────────────
# CORS Gate + Request Pipeline Tests
# ─────────────────────────────────────────────────────────────────────────────
# Covers origin resolution, preflight short-circuit, 403 before quota,
# standard headers on every exit, and request ids.
# ─────────────────────────────────────────────────────────────────────────────

import pytest
from dirty_equals import IsStr
from structlog.testing import capture_logs

from lyricsmith.cors import DEFAULT_ORIGINS, CorsOutcome, CorsPolicy

ALLOWED_ORIGIN = "http://localhost:3000"
EVIL_ORIGIN = "https://evil.example.com"


class TestCorsPolicy:
    def test_parses_comma_separated_setting(self):
        policy = CorsPolicy.from_setting(" http://a.test , http://b.test ,")
        assert policy.origins == ("http://a.test", "http://b.test")

    def test_deduplicates_preserving_order(self):
        policy = CorsPolicy(["http://b.test", "http://a.test", "http://b.test"])
        assert policy.origins == ("http://b.test", "http://a.test")

    def test_empty_setting_falls_back_to_default(self):
        policy = CorsPolicy.from_setting("")
        assert policy.origins == (DEFAULT_ORIGINS[0],)

    def test_allowed_origin_is_echoed(self):
        decision = CorsPolicy(["http://a.test", "http://b.test"]).resolve("GET", "http://b.test")
        assert decision.outcome is CorsOutcome.allowed
        assert decision.allowed_origin == "http://b.test"

    def test_missing_origin_is_allowed_with_fallback(self):
        decision = CorsPolicy(["http://a.test"]).resolve("POST", None)
        assert decision.outcome is CorsOutcome.allowed
        assert decision.allowed_origin == "http://a.test"

    def test_unknown_origin_is_rejected(self):
        decision = CorsPolicy(["http://a.test"]).resolve("POST", EVIL_ORIGIN)
        assert decision.outcome is CorsOutcome.rejected
        assert decision.allowed_origin == "http://a.test"

    @pytest.mark.parametrize("origin", [None, "http://a.test", EVIL_ORIGIN])
    def test_options_is_always_preflight(self, origin):
        decision = CorsPolicy(["http://a.test"]).resolve("options", origin)
        assert decision.outcome is CorsOutcome.preflight


class TestPreflight:
    def test_returns_204_with_cors_headers(self, client):
        response = client.options("/api/generate-song", headers={"Origin": ALLOWED_ORIGIN})
        assert response.status_code == 204
        assert response.content == b""
        assert response.headers["access-control-allow-origin"] == ALLOWED_ORIGIN
        assert response.headers["access-control-max-age"] == "86400"
        assert "POST" in response.headers["access-control-allow-methods"]

    def test_unknown_origin_gets_fallback_origin(self, client):
        response = client.options("/api/chat", headers={"Origin": EVIL_ORIGIN})
        assert response.status_code == 204
        assert response.headers["access-control-allow-origin"] == ALLOWED_ORIGIN

    def test_preflight_consumes_no_quota(self, client):
        for _ in range(15):
            assert client.options("/api/chat").status_code == 204
        assert client.get("/api/generate-song").status_code == 200

    def test_preflight_skips_request_id(self, client):
        response = client.options("/api/chat")
        assert "x-request-id" not in response.headers


class TestOriginRejection:
    def test_unknown_origin_gets_403(self, client):
        response = client.post(
            "/api/chat", json={"message": "hi"}, headers={"Origin": EVIL_ORIGIN}
        )
        assert response.status_code == 403
        assert response.json() == {
            "success": False,
            "error": "CORS policy violation",
            "code": "CORS_POLICY_VIOLATION",
        }

    def test_rejection_consumes_no_quota(self, client):
        for _ in range(12):
            client.get("/api/generate-song", headers={"Origin": EVIL_ORIGIN})
        assert client.get("/api/generate-song").status_code == 200

    def test_rejection_counts_in_metrics(self, client):
        client.get("/api/health", headers={"Origin": EVIL_ORIGIN})
        assert client.get("/metrics").json()["cors_rejected_total"] == 1


class TestStandardHeaders:
    @pytest.mark.parametrize(
        ("method", "path", "kwargs"),
        [
            ("GET", "/api/generate-song", {}),
            ("POST", "/api/chat", {"content": b"{", "headers": {"Content-Type": "application/json"}}),
            ("POST", "/api/chat", {"content": b"hi", "headers": {"Content-Type": "text/plain"}}),
            ("GET", "/health", {}),
        ],
    )
    def test_security_and_cache_headers_on_every_exit(self, client, method, path, kwargs):
        response = client.request(method, path, **kwargs)
        assert response.headers["x-content-type-options"] == "nosniff"
        assert response.headers["x-frame-options"] == "DENY"
        assert response.headers["cache-control"] == "no-store, no-cache, must-revalidate, proxy-revalidate"
        assert response.headers["pragma"] == "no-cache"
        assert response.headers["expires"] == "0"
        assert response.headers["access-control-allow-origin"] == ALLOWED_ORIGIN

    def test_allowed_origin_is_echoed(self, client):
        response = client.get("/api/generate-song", headers={"Origin": "http://localhost:5173"})
        assert response.headers["access-control-allow-origin"] == "http://localhost:5173"
        assert response.headers["vary"] == "Origin"

    def test_request_id_and_timing(self, client):
        response = client.get("/api/generate-song")
        assert response.headers["x-request-id"] == IsStr(regex=r"[0-9a-f]{8}")
        assert float(response.headers["x-response-time-ms"]) >= 0


class TestUnhandledErrors:
    def test_unexpected_exception_becomes_internal_error(self, app, client):
        class ExplodingSongwriter:
            async def chat(self, request):
                raise KeyError("boom")

        # Bypasses the service's own error translation
        app.state.songwriter = ExplodingSongwriter()
        response = client.post("/api/chat", json={"message": "hello"})
        assert response.status_code == 500
        body = response.json()
        assert body == {"success": False, "error": "Internal server error", "code": "INTERNAL_ERROR"}
        assert response.headers["x-content-type-options"] == "nosniff"


class TestFrameworkErrors:
    def test_unknown_route_uses_error_envelope(self, client):
        response = client.get("/api/nope")
        assert response.status_code == 404
        assert response.json() == {"success": False, "error": "Not Found", "code": "NOT_FOUND"}
        assert response.headers["x-content-type-options"] == "nosniff"
        assert response.headers["x-request-id"] == IsStr(regex=r"[0-9a-f]{8}")

    @pytest.mark.parametrize("method", ["GET", "DELETE"])
    def test_wrong_method_uses_error_envelope(self, client, method):
        response = client.request(method, "/api/chat")
        assert response.status_code == 405
        assert response.json() == {
            "success": False,
            "error": "Method Not Allowed",
            "code": "METHOD_NOT_ALLOWED",
        }
        assert "POST" in response.headers["allow"]
        assert response.headers["cache-control"] == "no-store, no-cache, must-revalidate, proxy-revalidate"

    def test_scanned_paths_do_not_grow_metrics(self, app, client):
        from lyricsmith.services.metrics import MAX_TRACKED_PATHS

        for i in range(MAX_TRACKED_PATHS + 50):
            client.get(f"/no-such-{i}")
        assert len(app.state.metrics.path_counts()) <= MAX_TRACKED_PATHS + 1


class TestRequestLogStage:
    def _completed(self, logs):
        return [entry for entry in logs if entry["event"] == "request_completed"]

    def test_success_is_handled(self, client):
        with capture_logs() as logs:
            client.get("/api/generate-song")
        assert self._completed(logs)[-1]["stage"] == "handled"

    @pytest.mark.parametrize(
        ("method", "path", "kwargs", "status"),
        [
            ("POST", "/api/chat", {"json": {"message": "hi"}, "headers": {"Origin": EVIL_ORIGIN}}, 403),
            ("POST", "/api/generate-song", {"json": {}}, 400),
            ("GET", "/api/nope", {}, 404),
        ],
    )
    def test_error_exits_are_errored(self, client, method, path, kwargs, status):
        with capture_logs() as logs:
            response = client.request(method, path, **kwargs)
        assert response.status_code == status
        assert self._completed(logs)[-1]["stage"] == "errored"

    def test_cors_rejection_still_counted_after_stage_change(self, client):
        client.post("/api/chat", json={"message": "hi"}, headers={"Origin": EVIL_ORIGIN})
        metrics = client.get("/metrics").json()
        assert metrics["cors_rejected_total"] == 1
