from __future__ import annotations

import logging
import threading
from collections import defaultdict, deque
from time import monotonic

from fastapi import Request

from vidtube.core.errors import RateLimitError

logger = logging.getLogger(__name__)


class SlidingWindowLimiter:
    """Counts hits per key inside a rolling window of ``window_seconds``."""

    def __init__(self, *, window_seconds: int, max_requests: int) -> None:
        self.window_seconds = window_seconds
        self.max_requests = max_requests
        self._events: dict[str, deque[float]] = defaultdict(deque)
        self._lock = threading.Lock()

    def hit(self, key: str) -> bool:
        now = monotonic()
        with self._lock:
            events = self._events[key]
            cutoff = now - self.window_seconds
            while events and events[0] <= cutoff:
                events.popleft()
            if len(events) >= self.max_requests:
                return False
            events.append(now)
            return True


def enforce_auth_rate_limit(request: Request) -> None:
    limiter: SlidingWindowLimiter | None = getattr(request.app.state, "auth_limiter", None)
    if limiter is None:
        return
    client_ip = request.client.host if request.client else "unknown"
    key = f"{client_ip}:{request.url.path}"
    if not limiter.hit(key):
        logger.warning("Rate limit exceeded key=%s", key)
        raise RateLimitError("Too many authentication requests")
