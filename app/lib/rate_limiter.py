"""Fixed-window in-memory rate limiter for chat command endpoints."""

from __future__ import annotations

import threading
import time

from fastapi import HTTPException, Request

from app.lib.metrics import METRICS


class RateLimiter:
    """Allow at most ``limit`` events per key within a rolling window."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._windows: dict[str, tuple[int, float]] = {}

    def allow(self, key: str, limit: int, window_seconds: int = 60) -> bool:
        if limit <= 0:
            return True
        now = time.monotonic()
        with self._lock:
            count, started = self._windows.get(key, (0, now))
            if now - started >= window_seconds:
                count, started = 0, now
            if count >= limit:
                return False
            self._windows[key] = (count + 1, started)
            return True

    def reset(self) -> None:
        with self._lock:
            self._windows.clear()


def enforce_rate_limit(request: Request, scope: str, channel_id: str | None) -> None:
    """Reject the request with 429 once a channel/client pair exceeds its budget."""

    limiter: RateLimiter | None = getattr(request.app.state, "rate_limiter", None)  # type: ignore[attr-defined]
    limit: int = getattr(request.app.state, "rate_limit_per_minute", 0)  # type: ignore[attr-defined]
    if limiter is None or limit <= 0:
        return

    client = getattr(request, "client", None)
    host = getattr(client, "host", None) or "anonymous"
    key = f"{scope}:{channel_id or '-'}:{host}"
    if not limiter.allow(key, limit):
        METRICS.increment(f"{scope}.rate_limited")
        raise HTTPException(status_code=429, detail="Too many requests")
