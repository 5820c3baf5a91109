# ─────────────────────────────────────────────────────────────────────────────
# Rate Limiter — sliding window per (client identifier, endpoint)
# ─────────────────────────────────────────────────────────────────────────────
# A window is the list of request timestamps recorded for one key; only those
# strictly newer than `now - window` count. Storage is pluggable:
#
#   SongStore            — api_usage table, survives restarts (default)
#   InMemoryUsageStore   — process-local, for tests and single-worker dev
#
# Old records are purged by a periodic lifespan task, never by a check.
# ─────────────────────────────────────────────────────────────────────────────

import threading
import time
from collections import defaultdict, deque
from collections.abc import Callable
from dataclasses import dataclass
from typing import Protocol, runtime_checkable

import structlog
from starlette.requests import Request

logger = structlog.get_logger(__name__)

UNKNOWN_CLIENT = "unknown"
PREVIEW_ENDPOINT_KEY = "preview-voice-strict"


def client_identifier(request: Request) -> str:
    """Best-effort client key: X-Forwarded-For, then X-Real-IP, then 'unknown'.

    Both headers are client-controlled unless a trusted proxy overwrites them.
    """
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return first
    real_ip = request.headers.get("x-real-ip")
    if real_ip:
        return real_ip.strip()
    return UNKNOWN_CLIENT


@runtime_checkable
class UsageStore(Protocol):
    """Timestamped usage records keyed by (client, endpoint)."""

    async def record_usage(self, client: str, endpoint: str, timestamp: float | None = None) -> None: ...

    async def count_usage(self, client: str, endpoint: str, since: float) -> int: ...

    async def cleanup_usage(self, older_than: float) -> int: ...


class InMemoryUsageStore:
    """Process-local usage store. Thread-safe; deques stay time-ordered."""

    def __init__(self, clock: Callable[[], float] = time.time) -> None:
        self._lock = threading.Lock()
        self._windows: defaultdict[tuple[str, str], deque[float]] = defaultdict(deque)
        self._clock = clock

    async def record_usage(self, client: str, endpoint: str, timestamp: float | None = None) -> None:
        with self._lock:
            self._windows[(client, endpoint)].append(timestamp if timestamp is not None else self._clock())

    async def count_usage(self, client: str, endpoint: str, since: float) -> int:
        with self._lock:
            window = self._windows.get((client, endpoint))
            if not window:
                return 0
            count = 0
            for ts in reversed(window):
                if ts > since:
                    count += 1
                else:
                    break
            return count

    async def cleanup_usage(self, older_than: float) -> int:
        removed = 0
        with self._lock:
            for key in list(self._windows):
                window = self._windows[key]
                while window and window[0] < older_than:
                    window.popleft()
                    removed += 1
                if not window:
                    del self._windows[key]
        return removed


@dataclass(frozen=True)
class RateLimitPolicy:
    max_requests: int
    window_seconds: int


@dataclass(frozen=True)
class RateLimitDecision:
    allowed: bool
    limit: int
    window_seconds: int
    count: int
    store_failed: bool = False


class RateLimiter:
    """Admit iff fewer than `max_requests` records fall inside the window.

    Args:
        store: Usage persistence backend.
        policy: Quota and window length.
        fail_open: Admit when the store raises (True) or reject (False).
        record_rejected: Also record rejected checks, so a client hammering
            a limited endpoint keeps its window full.
        fixed_endpoint: Record under this key instead of the request path.
    """

    def __init__(
        self,
        store: UsageStore,
        policy: RateLimitPolicy,
        *,
        fail_open: bool = True,
        record_rejected: bool = False,
        fixed_endpoint: str | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._store = store
        self.policy = policy
        self._fail_open = fail_open
        self._record_rejected = record_rejected
        self._fixed_endpoint = fixed_endpoint
        self._clock = clock

    async def check(self, client: str, endpoint: str = "") -> RateLimitDecision:
        key = self._fixed_endpoint or endpoint
        now = self._clock()
        try:
            count = await self._store.count_usage(client, key, now - self.policy.window_seconds)
            allowed = count < self.policy.max_requests
            if allowed or self._record_rejected:
                await self._store.record_usage(client, key, now)
        except Exception:
            logger.exception(
                "rate_limit_store_failed",
                client=client,
                endpoint=key,
                fail_open=self._fail_open,
            )
            return RateLimitDecision(
                allowed=self._fail_open,
                limit=self.policy.max_requests,
                window_seconds=self.policy.window_seconds,
                count=0,
                store_failed=True,
            )

        if not allowed:
            logger.warning(
                "rate_limit_exceeded",
                client=client,
                endpoint=key,
                count=count,
                limit=self.policy.max_requests,
            )
        return RateLimitDecision(
            allowed=allowed,
            limit=self.policy.max_requests,
            window_seconds=self.policy.window_seconds,
            count=count,
        )
