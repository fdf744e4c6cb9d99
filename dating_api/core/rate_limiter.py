"""
Per-client request limits for the unauthenticated auth endpoints.

Limits are configured per scope in Settings (see `RateLimit`); the limiter
instance lives on `app.state` so every app built by `create_app` starts
with empty counters.
"""
from __future__ import annotations

import math
import threading
import time
from collections import deque
from typing import Callable, Deque, Dict, Optional

from fastapi import HTTPException, Request

from dating_api.core.config import RateLimit


class SlidingWindowLimiter:
    """Counts hits per key over the trailing `window_seconds` of each rule."""

    max_keys = 4096

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._hits: Dict[str, Deque[float]] = {}
        self._lock = threading.Lock()

    def hit(self, key: str, rule: RateLimit) -> Optional[float]:
        """Record a hit and return None, or return seconds until the next hit is allowed."""
        now = self._clock()
        horizon = now - rule.window_seconds
        with self._lock:
            hits = self._hits.setdefault(key, deque())
            while hits and hits[0] <= horizon:
                hits.popleft()
            if len(hits) >= rule.limit:
                return hits[0] - horizon
            hits.append(now)
            if len(self._hits) > self.max_keys:
                self._prune(horizon)
            return None

    def _prune(self, horizon: float) -> None:
        for key in [k for k, hits in self._hits.items() if not hits or hits[-1] <= horizon]:
            del self._hits[key]

    def __len__(self) -> int:
        with self._lock:
            return len(self._hits)


def client_ip(request: Request) -> str:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    if request.client and request.client.host:
        return request.client.host
    return "unknown"


def limit_by_ip(scope: str, setting: str):
    """Build a dependency applying the `setting` rule from Settings to the caller's address."""

    def dependency(request: Request) -> None:
        rule: RateLimit = getattr(request.app.state.settings, setting)
        limiter: SlidingWindowLimiter = request.app.state.rate_limiter
        retry_after = limiter.hit(f"{scope}:{client_ip(request)}", rule)
        if retry_after is not None:
            raise HTTPException(
                429,
                "Too many requests. Try again shortly.",
                headers={"Retry-After": str(max(1, math.ceil(retry_after)))},
            )

    return dependency
