import logging
import math
import time
from collections import deque
from typing import Callable, Deque, Dict

from dealsignal.core.errors import RateLimitedError

logger = logging.getLogger(__name__)


class SubmissionRateLimiter:
    """Sliding-window limiter for public submissions, keyed by client identity."""

    def __init__(self, limit: int, window_seconds: float, clock: Callable[[], float] = time.monotonic):
        self.limit = limit
        self.window = window_seconds
        self.clock = clock
        self._hits: Dict[str, Deque[float]] = {}
        self._last_sweep = clock()

    def _prune(self, hits: Deque[float], now: float) -> None:
        while hits and now - hits[0] >= self.window:
            hits.popleft()

    def _sweep(self, now: float) -> None:
        """Forgets clients whose hits have all left the window."""
        for client_id in list(self._hits):
            self._prune(self._hits[client_id], now)
            if not self._hits[client_id]:
                del self._hits[client_id]
        self._last_sweep = now

    def check(self, client_id: str) -> None:
        """Records a hit, or raises RateLimitedError with the seconds until a slot frees up."""
        if self.limit <= 0:
            return
        now = self.clock()
        if now - self._last_sweep >= self.window:
            self._sweep(now)

        hits = self._hits.pop(client_id, None) or deque()
        self._prune(hits, now)

        if len(hits) >= self.limit:
            self._hits[client_id] = hits
            retry_after = max(1, math.ceil(self.window - (now - hits[0])))
            logger.warning(f"Submission rate limit hit for {client_id}, retry in {retry_after}s")
            raise RateLimitedError("Too many submissions, try again later", retry_after=retry_after)

        hits.append(now)
        self._hits[client_id] = hits

    def tracked_clients(self) -> int:
        return len(self._hits)
