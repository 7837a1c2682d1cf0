import logging
import threading
import time
from collections import deque
from typing import Callable, Deque, Dict, Optional

from fastapi import HTTPException, Request

logger = logging.getLogger(__name__)

TOO_FAST_MESSAGE = "Whoa, slow down there, speed racer!"


class RateLimiter:
    """Sliding-window limiter: at most ``limit`` hits per ``window`` seconds per key."""

    def __init__(self, limit: int, window: float, clock: Callable[[], float] = time.monotonic):
        self.limit = limit
        self.window = window
        self._clock = clock
        self._hits: Dict[str, Deque[float]] = {}
        self._last_sweep = clock()
        self._lock = threading.Lock()

    def __len__(self) -> int:
        """Number of keys currently tracked."""
        return len(self._hits)

    def allow(self, key: str) -> bool:
        now = self._clock()
        with self._lock:
            if now - self._last_sweep >= self.window:
                self._sweep(now)
            hits = self._hits.setdefault(key, deque())
            self._expire(hits, now)
            if len(hits) >= self.limit:
                return False
            hits.append(now)
            return True

    def _expire(self, hits: Deque[float], now: float) -> None:
        while hits and now - hits[0] >= self.window:
            hits.popleft()

    def _sweep(self, now: float) -> None:
        # Forget clients whose hits have all aged out of the window
        for key in list(self._hits):
            hits = self._hits[key]
            self._expire(hits, now)
            if not hits:
                del self._hits[key]
        self._last_sweep = now

    def reset(self, key: Optional[str] = None) -> None:
        with self._lock:
            if key is None:
                self._hits.clear()
            else:
                self._hits.pop(key, None)

    def dependency(self, scope: str):
        """FastAPI dependency rejecting over-eager clients with 429."""
        def check(request: Request) -> None:
            host = request.client.host if request.client else "anonymous"
            if not self.allow(f"{scope}:{host}"):
                logger.warning("Rate limit exceeded for %s on %s", host, scope)
                raise HTTPException(status_code=429, detail=TOO_FAST_MESSAGE)
        return check
