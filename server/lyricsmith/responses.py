# ─────────────────────────────────────────────────────────────────────────────
# Response Normalizer — uniform envelopes + standard headers
# ─────────────────────────────────────────────────────────────────────────────
# Every response that leaves the request pipeline is one of:
#
#   {"success": true,  "data": ...}
#   {"success": false, "error": "...", "code"?: "...", "details"?: ...}
#
# and carries the security / no-cache / CORS headers below, whether it was
# produced by a route, an exception handler, or the pipeline itself.
# ─────────────────────────────────────────────────────────────────────────────

from typing import Any

from fastapi.encoders import jsonable_encoder
from starlette.responses import JSONResponse, Response

ALLOWED_METHODS = "GET,POST,PUT,PATCH,DELETE,OPTIONS"
ALLOWED_HEADERS = "Content-Type, Authorization"
PREFLIGHT_MAX_AGE = "86400"

# Responses can carry per-client data (rate-limit state, generated lyrics), so
# intermediaries must never cache them.
_SECURITY_HEADERS: dict[str, str] = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "DENY",
    "X-XSS-Protection": "1; mode=block",
    "Referrer-Policy": "strict-origin-when-cross-origin",
    "Cache-Control": "no-store, no-cache, must-revalidate, proxy-revalidate",
    "Pragma": "no-cache",
    "Expires": "0",
}


def success_response(data: Any, status_code: int = 200) -> JSONResponse:
    """Wrap a handler result in the success envelope."""
    return JSONResponse(
        status_code=status_code,
        content={"success": True, "data": jsonable_encoder(data)},
    )


def error_response(
    message: str,
    status_code: int = 400,
    code: str | None = None,
    details: Any = None,
    headers: dict[str, str] | None = None,
) -> JSONResponse:
    """Build the error envelope. `code` and `details` are omitted when empty."""
    body: dict[str, Any] = {"success": False, "error": message}
    if code:
        body["code"] = code
    if details:
        body["details"] = jsonable_encoder(details)
    return JSONResponse(status_code=status_code, content=body, headers=headers)


def preflight_response(allowed_origin: str | None) -> Response:
    """204 No Content answer to a CORS preflight."""
    response = Response(status_code=204)
    if allowed_origin:
        response.headers["Access-Control-Allow-Origin"] = allowed_origin
    response.headers["Access-Control-Allow-Methods"] = ALLOWED_METHODS
    response.headers["Access-Control-Allow-Headers"] = ALLOWED_HEADERS
    response.headers["Access-Control-Max-Age"] = PREFLIGHT_MAX_AGE
    return response


def apply_standard_headers(response: Response, allowed_origin: str | None) -> Response:
    """Attach security, cache-control, and CORS headers in place.

    CORS headers are echoed on every response, not only preflights, so the
    browser's check on the actual response passes too.
    """
    for name, value in _SECURITY_HEADERS.items():
        response.headers[name] = value
    if allowed_origin:
        response.headers["Access-Control-Allow-Origin"] = allowed_origin
        response.headers["Vary"] = "Origin"
    response.headers["Access-Control-Allow-Methods"] = ALLOWED_METHODS
    response.headers["Access-Control-Allow-Headers"] = ALLOWED_HEADERS
    return response
