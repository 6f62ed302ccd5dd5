"""Transport-level abuse limiting.

Design:
- Fixed window per client address (default 100 requests per 15 minutes).
- Independent of the quota ledger: this protects the service, the ledger
  protects the upstream keys.
"""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass
from typing import Callable

from fastapi import HTTPException, Request, status


class RateLimitExceeded(HTTPException):
    pass


@dataclass(slots=True)
class _Window:
    start: int
    count: int


class InMemoryWindowRateLimiter:
    """Per-process limiter.

    With several workers the budget applies per worker; run a single worker
    (or front the service with a shared limiter) for strict guarantees.
    """

    def __init__(
        self,
        *,
        limit: int,
        window_seconds: int,
        now: Callable[[], float] = time.time,
    ) -> None:
        self._limit = limit
        self._window = window_seconds
        self._now = now
        self._windows: dict[str, _Window] = {}
        self._lock = threading.Lock()

    def check(self, key: str) -> None:
        start = int(self._now()) // self._window
        with self._lock:
            w = self._windows.get(key)
            if w is None or w.start != start:
                if len(self._windows) > 10_000:
                    self._windows = {k: v for k, v in self._windows.items() if v.start == start}
                w = _Window(start=start, count=0)
                self._windows[key] = w
            w.count += 1
            exceeded = w.count > self._limit
        if exceeded:
            raise RateLimitExceeded(
                status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                detail="Too many requests. Please slow down.",
            )


def client_key(request: Request, *, trust_proxy_headers: bool = False) -> str:
    """Peer address. `x-forwarded-for` is client-controlled; honour it only behind a trusted proxy."""
    if trust_proxy_headers:
        forwarded = request.headers.get("x-forwarded-for")
        if forwarded:
            return forwarded.split(",", 1)[0].strip()
    return request.client.host if request.client else "unknown"
