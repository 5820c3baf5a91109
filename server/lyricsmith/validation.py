# ─────────────────────────────────────────────────────────────────────────────
# Validation Gate — JSON content-type check + schema validation
# ─────────────────────────────────────────────────────────────────────────────
# Used as a dependency so every POST endpoint gets the same three failure
# modes, in order: wrong content type, unparseable body, schema mismatch.
# FastAPI's own body parsing is bypassed because it accepts any content type
# and reports malformed JSON as a schema error.
# ─────────────────────────────────────────────────────────────────────────────

import json
from collections.abc import Awaitable, Callable
from typing import TypeVar

from fastapi import Request
from pydantic import BaseModel, ValidationError

from lyricsmith.exceptions import (
    InvalidRequestBodyError,
    UnsupportedContentTypeError,
    ValidationFailedError,
)

ModelT = TypeVar("ModelT", bound=BaseModel)


def json_body(model: type[ModelT]) -> Callable[[Request], Awaitable[ModelT]]:
    """Build a Depends() provider that parses the request body into `model`.

    Unknown fields are dropped; the returned instance has exactly the
    declared shape.
    """

    async def _validated(request: Request) -> ModelT:
        content_type = request.headers.get("content-type", "")
        if "application/json" not in content_type.lower():
            raise UnsupportedContentTypeError()

        raw = await request.body()
        try:
            payload = json.loads(raw)
        except (ValueError, UnicodeDecodeError):
            raise InvalidRequestBodyError() from None

        try:
            validated = model.model_validate(payload)
        except ValidationError as exc:
            raise ValidationFailedError.from_errors(exc.errors()) from exc

        request.state.stage = "validated"
        return validated

    return _validated
