# ─────────────────────────────────────────────────────────────────────────────
# CORS Gate — allowed-origin resolution
# ─────────────────────────────────────────────────────────────────────────────
# Starlette's CORSMiddleware silently omits headers for unknown origins; this
# API instead refuses them outright (403 before any quota is consumed) and
# always echoes a concrete origin, falling back to the first configured one.
# ─────────────────────────────────────────────────────────────────────────────

from dataclasses import dataclass
from enum import StrEnum

import structlog

logger = structlog.get_logger(__name__)

DEFAULT_ORIGINS = ("http://localhost:3000", "http://localhost:5173")


class CorsOutcome(StrEnum):
    preflight = "preflight"
    rejected = "rejected"
    allowed = "allowed"


@dataclass(frozen=True)
class CorsDecision:
    outcome: CorsOutcome
    allowed_origin: str


class CorsPolicy:
    """Ordered, de-duplicated allow-list read once at startup."""

    def __init__(self, origins: list[str]) -> None:
        cleaned = list(dict.fromkeys(o.strip() for o in origins if o.strip()))
        if not cleaned:
            logger.warning("cors_no_origins_configured", fallback=DEFAULT_ORIGINS[0])
            cleaned = [DEFAULT_ORIGINS[0]]
        self._origins = tuple(cleaned)

    @classmethod
    def from_setting(cls, value: str) -> "CorsPolicy":
        """Parse the comma-separated CORS_ORIGIN setting."""
        return cls(value.split(","))

    @property
    def origins(self) -> tuple[str, ...]:
        return self._origins

    @property
    def fallback_origin(self) -> str:
        return self._origins[0]

    def is_allowed(self, origin: str) -> bool:
        return origin in self._origins

    def resolve(self, method: str, origin: str | None) -> CorsDecision:
        """Classify a request by method and Origin header.

        Preflight wins over the origin check: an OPTIONS request from an
        unknown origin still gets a 204, just with the fallback origin.
        """
        allowed_origin = origin if origin and self.is_allowed(origin) else self.fallback_origin
        if method.upper() == "OPTIONS":
            return CorsDecision(CorsOutcome.preflight, allowed_origin)
        if origin and not self.is_allowed(origin):
            return CorsDecision(CorsOutcome.rejected, allowed_origin)
        return CorsDecision(CorsOutcome.allowed, allowed_origin)
