# ─────────────────────────────────────────────────────────────────────────────
# Custom Exceptions + FastAPI Exception Handlers
# ─────────────────────────────────────────────────────────────────────────────
# Two hierarchies:
#
#   LyricsmithError  — what the API reports. Carries status, machine code and
#                      optional details; rendered as the error envelope.
#   ProviderError    — what LLM / speech collaborators raise. Typed by cause
#                      (auth, quota, network, bad payload) so services can
#                      translate without inspecting message text.
# ─────────────────────────────────────────────────────────────────────────────

from collections.abc import Callable, Iterator, Sequence
from contextlib import contextmanager
from typing import Any

import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from lyricsmith.responses import error_response

logger = structlog.get_logger(__name__)


# ── API error hierarchy ──────────────────────────────────────────────────────


class LyricsmithError(Exception):
    """Base exception for every error the API reports to clients."""

    def __init__(
        self,
        message: str,
        status_code: int = 500,
        code: str | None = None,
        details: Any = None,
    ):
        self.message = message
        self.status_code = status_code
        self.code = code
        self.details = details
        super().__init__(message)


class ValidationFailedError(LyricsmithError):
    """Malformed or out-of-schema input (400)."""

    def __init__(
        self,
        message: str = "Validation failed",
        code: str = "VALIDATION_ERROR",
        details: Any = None,
    ):
        super().__init__(message, status_code=400, code=code, details=details)

    @classmethod
    def from_errors(cls, errors: Sequence[Any]) -> "ValidationFailedError":
        """Build from pydantic's `errors()` list, one entry per violated field."""
        return cls(details=[_describe_error(err) for err in errors])


class UnsupportedContentTypeError(ValidationFailedError):
    def __init__(self) -> None:
        super().__init__("Content-Type must be application/json", code="INVALID_CONTENT_TYPE")


class InvalidRequestBodyError(ValidationFailedError):
    def __init__(self) -> None:
        super().__init__("Invalid request body", code="INVALID_REQUEST_BODY")


class SectionNotFoundError(ValidationFailedError):
    """Revision target does not resolve to a section of the current lyrics."""

    def __init__(self, target: str, available: list[str]):
        super().__init__(
            f'Section "{target}" not found in current lyrics',
            code="SECTION_NOT_FOUND",
            details={"target": target, "availableSections": available},
        )


class NotFoundError(LyricsmithError):
    """Referenced resource is absent (404)."""

    def __init__(self, message: str, code: str = "NOT_FOUND", details: Any = None):
        super().__init__(message, status_code=404, code=code, details=details)


class SongNotFoundError(NotFoundError):
    def __init__(self, song_id: str):
        super().__init__("Song not found", code="SONG_NOT_FOUND", details={"songId": song_id})


class PolicyViolationError(LyricsmithError):
    """Request refused by a CORS or content-safety rule."""


class CorsPolicyViolationError(PolicyViolationError):
    def __init__(self, origin: str):
        self.origin = origin
        super().__init__("CORS policy violation", status_code=403, code="CORS_POLICY_VIOLATION")


class InvalidRevisionInstructionError(PolicyViolationError):
    def __init__(self, reason: str):
        super().__init__(reason, status_code=400, code="INVALID_REVISION_INSTRUCTION")


class RateLimitExceededError(LyricsmithError):
    """Quota for a (client, endpoint) window is used up (429).

    The handler turns `retry_after_seconds` into a Retry-After header.
    """

    def __init__(
        self,
        limit: int,
        window_seconds: int,
        message: str = "Rate limit exceeded",
        code: str = "RATE_LIMIT_EXCEEDED",
    ):
        self.limit = limit
        self.window_seconds = window_seconds
        self.retry_after_seconds = window_seconds
        super().__init__(
            message,
            status_code=429,
            code=code,
            details={"limit": limit, "windowSeconds": window_seconds},
        )


class UpstreamUnavailableError(LyricsmithError):
    """Provider misconfigured or unreachable (503)."""

    def __init__(self, message: str, code: str):
        super().__init__(message, status_code=503, code=code)


class UpstreamRateLimitedError(LyricsmithError):
    """Provider-side quota hit (429)."""

    def __init__(self, message: str = "AI service rate limit exceeded", code: str = "AI_RATE_LIMIT"):
        super().__init__(message, status_code=429, code=code)


class InternalError(LyricsmithError):
    """Unrecognized fault (500). Messages stay generic."""

    def __init__(self, message: str = "Internal server error", code: str = "INTERNAL_ERROR"):
        super().__init__(message, status_code=500, code=code)


# ── Provider error hierarchy ─────────────────────────────────────────────────


class ProviderError(Exception):
    """Base for failures reported by an LLM or speech provider."""

    def __init__(self, message: str, provider: str = "unknown"):
        self.provider = provider
        super().__init__(message)


class ProviderAuthError(ProviderError):
    """Missing, invalid, or unauthorized API credentials."""


class ProviderRateLimitError(ProviderError):
    """Provider quota or request rate exceeded."""


class ProviderUnavailableError(ProviderError):
    """Timeout or network failure talking to the provider."""


class ProviderResponseError(ProviderError):
    """Provider answered, but not with something we can use."""


class ServiceNotConfiguredError(ProviderError):
    """Feature disabled or credentials absent at startup."""


def translate_provider_error(exc: ProviderError) -> LyricsmithError | None:
    """Map a typed provider failure to its API error, or None if unrecognized.

    Callers fall back to their own endpoint-specific 500 on None.
    """
    if isinstance(exc, ProviderAuthError | ServiceNotConfiguredError):
        return UpstreamUnavailableError("AI service configuration error", "AI_SERVICE_ERROR")
    if isinstance(exc, ProviderRateLimitError):
        return UpstreamRateLimitedError()
    if isinstance(exc, ProviderUnavailableError):
        return UpstreamUnavailableError("AI service temporarily unavailable", "AI_SERVICE_UNAVAILABLE")
    return None


@contextmanager
def translating_errors(
    message: str,
    code: str,
    translate: Callable[[ProviderError], LyricsmithError | None] = translate_provider_error,
) -> Iterator[None]:
    """Convert failures inside the block into API errors.

    LyricsmithError passes through. ProviderError goes through `translate`;
    anything unrecognized becomes InternalError(message, code).
    """
    try:
        yield
    except LyricsmithError:
        raise
    except ProviderError as exc:
        translated = translate(exc) or InternalError(message, code)
        raise translated from exc
    except Exception as exc:
        logger.exception("operation_failed", code=code, error_type=type(exc).__name__)
        raise InternalError(message, code) from exc


# ── Validation error details ─────────────────────────────────────────────────

_VIOLATION_KINDS: dict[str, str] = {
    "missing": "required",
    "enum": "invalid_enum_value",
    "literal_error": "invalid_enum_value",
    "string_too_short": "too_small",
    "too_short": "too_small",
    "greater_than": "too_small",
    "greater_than_equal": "too_small",
    "string_too_long": "too_big",
    "too_long": "too_big",
    "less_than": "too_big",
    "less_than_equal": "too_big",
    "uuid_parsing": "invalid_string",
    "uuid_type": "invalid_string",
    "uuid_version": "invalid_string",
    "string_pattern_mismatch": "invalid_string",
    "value_error": "custom",
    "assertion_error": "custom",
}

# Leading loc entries FastAPI adds to say where a value came from.
_LOC_SOURCES = frozenset({"body", "query", "path", "header"})


def _describe_error(err: Any) -> dict[str, str]:
    loc = list(err.get("loc", ()))
    if loc and loc[0] in _LOC_SOURCES:
        loc = loc[1:]
    err_type = str(err.get("type", "invalid"))
    if err_type in _VIOLATION_KINDS:
        kind = _VIOLATION_KINDS[err_type]
    elif err_type.endswith(("_type", "_parsing")):
        kind = "invalid_type"
    else:
        kind = err_type
    return {
        "field": ".".join(str(part) for part in loc),
        "message": str(err.get("msg", "Invalid value")),
        "code": kind,
    }


# ── Handler registration ────────────────────────────────────────────────────

_HTTP_STATUS_CODES = {
    400: "BAD_REQUEST",
    404: "NOT_FOUND",
    405: "METHOD_NOT_ALLOWED",
}



def register_exception_handlers(app: FastAPI) -> None:
    """Register all custom exception handlers on the FastAPI app.

    Routes and services raise LyricsmithError subclasses; these handlers
    render the error envelope -- no inline try/except in endpoints.
    Anything that escapes all of them is caught by the request pipeline
    and reported as INTERNAL_ERROR.
    """

    @app.exception_handler(RateLimitExceededError)
    async def rate_limit_handler(request: Request, exc: RateLimitExceededError) -> JSONResponse:
        logger.warning(
            "rate_limited_response",
            path=request.url.path,
            code=exc.code,
            limit=exc.limit,
            window_seconds=exc.window_seconds,
        )
        return error_response(
            exc.message,
            status_code=429,
            code=exc.code,
            details=exc.details,
            headers={"Retry-After": str(exc.retry_after_seconds)},
        )

    @app.exception_handler(LyricsmithError)
    async def lyricsmith_error_handler(request: Request, exc: LyricsmithError) -> JSONResponse:
        if exc.status_code >= 500:
            logger.error(
                "request_failed",
                error=exc.message,
                code=exc.code,
                error_type=type(exc).__name__,
                exc_info=exc.__cause__ or exc,
            )
        else:
            logger.info(
                "request_rejected",
                error=exc.message,
                code=exc.code,
                status=exc.status_code,
            )
        return error_response(
            exc.message,
            status_code=exc.status_code,
            code=exc.code,
            details=exc.details,
        )

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        err = ValidationFailedError.from_errors(exc.errors())
        logger.info("request_validation_failed", path=request.url.path, violations=len(err.details))
        return error_response(err.message, status_code=400, code=err.code, details=err.details)

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(
        request: Request, exc: StarletteHTTPException
    ) -> JSONResponse:
        # Router-level 404 / 405 raised by the framework itself.
        code = _HTTP_STATUS_CODES.get(exc.status_code, "HTTP_ERROR")
        logger.info("http_error", path=request.url.path, status=exc.status_code, code=code)
        return error_response(
            str(exc.detail),
            status_code=exc.status_code,
            code=code,
            headers=dict(exc.headers) if exc.headers else None,
        )
