from __future__ import annotations

import threading
from time import monotonic
from typing import Callable

from cachetools import TTLCache
from fastapi import Request, status
import structlog

from mentor_relay.errors import APIError

logger = structlog.get_logger(__name__)


class FixedWindowRateLimiter:
    """Per-client fixed window counter; windows expire out of a TTL cache."""

    def __init__(
        self,
        *,
        max_requests: int,
        window_seconds: float,
        max_clients: int = 10_000,
        clock: Callable[[], float] = monotonic,
    ) -> None:
        self._max_requests = max_requests
        self._window_seconds = window_seconds
        self._clock = clock
        self._windows: TTLCache[str, tuple[float, int]] = TTLCache(
            maxsize=max_clients,
            ttl=window_seconds,
            timer=clock,
        )
        self._lock = threading.Lock()

    def hit(self, key: str) -> bool:
        now = self._clock()
        with self._lock:
            started, count = self._windows.get(key, (now, 0))
            if now - started >= self._window_seconds:
                started, count = now, 0
            if count >= self._max_requests:
                return False
            self._windows[key] = (started, count + 1)
            return True


async def enforce_mentor_request_limit(request: Request) -> None:
    limiter: FixedWindowRateLimiter = request.app.state.rate_limiter
    client_key = request.client.host if request.client else "unknown"
    if not limiter.hit(client_key):
        logger.warning("rate_limited", client=client_key, path=request.url.path)
        raise APIError(
            code="RATE_LIMITED",
            message="Too many mentor requests. Please wait a moment and try again.",
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
        )
