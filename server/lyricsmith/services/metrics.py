# ─────────────────────────────────────────────────────────────────────────────
# Request Metrics — thread-safe request outcome tracking
# ─────────────────────────────────────────────────────────────────────────────
# Fed by the request pipeline once per request. Exposed via GET /metrics and
# bridged to Prometheus by routes/prometheus.py.
#
# Thread-safe: store calls run in the default executor and the pipeline runs
# on the event loop, so all mutations use a threading.Lock.
#
# Bounded: latency history uses deque(maxlen=1000), auto-evicts oldest;
# per-path counts stop growing at MAX_TRACKED_PATHS distinct paths.
# ─────────────────────────────────────────────────────────────────────────────

from __future__ import annotations

import threading
import time
from collections import Counter, deque
from dataclasses import dataclass, field
from typing import Any

# Paths are client-controlled; past this many distinct keys the rest share
# one bucket.
MAX_TRACKED_PATHS = 200
OTHER_PATHS_KEY = "other"


@dataclass
class RequestMetrics:
    """Thread-safe request pipeline metrics."""

    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    requests_total: int = 0
    client_errors_total: int = 0
    server_errors_total: int = 0
    rate_limited_total: int = 0
    cors_rejected_total: int = 0
    preflight_total: int = 0
    provider_calls_total: int = 0
    provider_failures_total: int = 0

    _status_counts: Counter[int] = field(default_factory=Counter, repr=False)
    _path_counts: Counter[str] = field(default_factory=Counter, repr=False)

    # Bounded -- only keeps last 1000 latencies, oldest auto-evicted
    _latency_history: deque[float] = field(default_factory=lambda: deque(maxlen=1000), repr=False)

    _start_time: float = field(default_factory=time.time, repr=False)

    def record_request(
        self,
        path: str,
        status: int,
        latency_ms: float,
        stage: str = "handled",
    ) -> None:
        """Record one completed request, whatever stage it exited at."""
        with self._lock:
            self.requests_total += 1
            self._latency_history.append(latency_ms)
            self._status_counts[status] += 1
            if path in self._path_counts or len(self._path_counts) < MAX_TRACKED_PATHS:
                self._path_counts[path] += 1
            else:
                self._path_counts[OTHER_PATHS_KEY] += 1

            if stage == "preflight":
                self.preflight_total += 1
            elif status == 403 and stage == "cors_rejected":
                self.cors_rejected_total += 1
            if status == 429:
                self.rate_limited_total += 1
            if 400 <= status < 500:
                self.client_errors_total += 1
            elif status >= 500:
                self.server_errors_total += 1

    def record_provider_call(self, success: bool) -> None:
        with self._lock:
            self.provider_calls_total += 1
            if not success:
                self.provider_failures_total += 1

    def status_counts(self) -> dict[int, int]:
        with self._lock:
            return dict(self._status_counts)

    def path_counts(self) -> dict[str, int]:
        with self._lock:
            return dict(self._path_counts)

    def latency_samples(self) -> list[float]:
        with self._lock:
            return list(self._latency_history)

    def to_dict(self) -> dict[str, Any]:
        """Serialize metrics for the /metrics endpoint."""
        with self._lock:
            latencies = sorted(self._latency_history)
            n = len(latencies)
            return {
                "requests_total": self.requests_total,
                "client_errors_total": self.client_errors_total,
                "server_errors_total": self.server_errors_total,
                "rate_limited_total": self.rate_limited_total,
                "cors_rejected_total": self.cors_rejected_total,
                "preflight_total": self.preflight_total,
                "provider_calls_total": self.provider_calls_total,
                "provider_failures_total": self.provider_failures_total,
                "status_counts": {str(k): v for k, v in sorted(self._status_counts.items())},
                "top_paths": dict(self._path_counts.most_common(10)),
                "latency_p50_ms": round(latencies[n // 2], 1) if n else 0,
                "latency_p95_ms": round(latencies[int(n * 0.95)], 1) if n else 0,
                "latency_mean_ms": round(sum(latencies) / n, 1) if n else 0,
                "uptime_seconds": int(time.time() - self._start_time),
            }
