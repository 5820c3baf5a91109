# ─────────────────────────────────────────────────────────────────────────────
# Request Pipeline Middleware — CORS gate, rate limit, normalization, logging
# ─────────────────────────────────────────────────────────────────────────────
# Stages, recorded on request.state.stage:
#
#   start → cors_checked → rate_limited → validated → handled
#                                                   ↘ errored (any stage)
#
#   OPTIONS                  → 204 preflight, nothing else runs
#   Origin not allowed       → 403 before any quota is consumed
#   API path over quota      → 429 + Retry-After
#   uncaught handler error   → 500 INTERNAL_ERROR
#
# Every exit except the preflight gets the standard security / CORS headers,
# X-Request-ID and X-Response-Time-Ms, and one request_completed log line.
# ─────────────────────────────────────────────────────────────────────────────


import time
import uuid

import structlog
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from lyricsmith.cors import CorsOutcome, CorsPolicy
from lyricsmith.exceptions import CorsPolicyViolationError
from lyricsmith.rate_limit import RateLimiter, client_identifier
from lyricsmith.responses import apply_standard_headers, error_response, preflight_response
from lyricsmith.services.metrics import RequestMetrics

logger = structlog.get_logger(__name__)


class RequestPipelineMiddleware(BaseHTTPMiddleware):
    """Runs every request through the CORS gate and rate limiter.

    Collaborators are read from app.state at request time, so tests can
    swap them without rebuilding the middleware stack.
    """

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        request_id = str(uuid.uuid4())[:8]
        request.state.request_id = request_id
        request.state.stage = "start"
        start = time.perf_counter()

        app_state = request.app.state
        policy: CorsPolicy = app_state.cors_policy
        limiter: RateLimiter | None = getattr(app_state, "rate_limiter", None)
        api_prefix: str = getattr(app_state, "api_prefix", "/api")

        client = client_identifier(request)
        decision = policy.resolve(request.method, request.headers.get("origin"))
        request.state.stage = "cors_checked"

        if decision.outcome is CorsOutcome.preflight:
            response = preflight_response(decision.allowed_origin)
            self._finish(request, response, client, start, outcome="preflight")
            return response

        response: Response | None = None
        outcome: str | None = None
        if decision.outcome is CorsOutcome.rejected:
            violation = CorsPolicyViolationError(request.headers.get("origin", ""))
            response = error_response(
                violation.message, status_code=violation.status_code, code=violation.code
            )
            outcome = "cors_rejected"
            logger.warning("cors_origin_rejected", origin=violation.origin, client=client)

        path = request.url.path
        if response is None and limiter is not None and _under_prefix(path, api_prefix):
            limit = await limiter.check(client, path)
            request.state.stage = "rate_limited"
            if not limit.allowed:
                response = error_response(
                    "Rate limit exceeded",
                    status_code=429,
                    code="RATE_LIMIT_EXCEEDED",
                    details={"limit": limit.limit, "windowSeconds": limit.window_seconds},
                    headers={"Retry-After": str(limit.window_seconds)},
                )

        if response is None:
            try:
                response = await call_next(request)
            except Exception:
                logger.exception("unhandled_request_error", path=path, stage=request.state.stage)
                request.state.stage = "errored"
                response = error_response("Internal server error", status_code=500, code="INTERNAL_ERROR")
            else:
                request.state.stage = "handled"

        if response.status_code >= 400:
            request.state.stage = "errored"

        apply_standard_headers(response, decision.allowed_origin)
        self._finish(request, response, client, start, outcome=outcome)
        return response

    def _finish(
        self,
        request: Request,
        response: Response,
        client: str,
        start: float,
        outcome: str | None = None,
    ) -> None:
        duration_ms = round((time.perf_counter() - start) * 1000, 1)
        stage = request.state.stage

        if outcome != "preflight":
            response.headers["X-Request-ID"] = request.state.request_id
            response.headers["X-Response-Time-Ms"] = str(duration_ms)

        metrics: RequestMetrics | None = getattr(request.app.state, "metrics", None)
        if metrics is not None:
            metrics.record_request(
                request.url.path, response.status_code, duration_ms, outcome or stage
            )

        logger.info(
            "request_completed",
            request_id=request.state.request_id,
            method=request.method,
            url=str(request.url),
            client=client,
            user_agent=request.headers.get("user-agent", ""),
            status=response.status_code,
            duration_ms=duration_ms,
            stage=stage,
        )


def _under_prefix(path: str, prefix: str) -> bool:
    prefix = prefix.rstrip("/")
    return path == prefix or path.startswith(prefix + "/")
