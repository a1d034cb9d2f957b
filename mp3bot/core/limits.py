"""Per-user rate limiting and bounded job admission.

WHY: ffmpeg is CPU heavy and every job spawns one process. Without a cap a
burst of videos would start an unbounded number of conversions, and a single
user could monopolise the bot.

HOW: RateLimiter keeps a sliding window of accepted request times per
requester. JobAdmission is a non-blocking slot pool: a job either gets a slot
immediately or is rejected. Both are guarded by threading primitives because
Slack Bolt calls handlers from several threads.

RULES:
- Rejected requests do not consume rate-limit budget
- JobAdmission never queues; try_acquire() returns False when full
- Releasing a slot that was never acquired raises ValueError
"""

from __future__ import annotations

import threading
import time
from collections import deque
from typing import Callable, Deque, Dict


class RateLimiter:
    """Sliding-window limiter: at most ``max_requests`` per ``window_s`` per requester."""

    def __init__(
        self,
        window_s: float,
        max_requests: int,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if window_s <= 0:
            raise ValueError("window_s must be positive")
        if max_requests < 1:
            raise ValueError("max_requests must be at least 1")
        self.window_s = window_s
        self.max_requests = max_requests
        self._clock = clock
        self._hits: Dict[str, Deque[float]] = {}
        self._lock = threading.Lock()

    def try_acquire(self, requester_id: str) -> bool:
        """Record a request and return True, or return False if over the limit."""
        now = self._clock()
        with self._lock:
            hits = self._prune(requester_id, now)
            if len(hits) >= self.max_requests:
                return False
            hits.append(now)
            return True

    def retry_after(self, requester_id: str) -> float:
        """Seconds until ``requester_id`` may submit again (0 if allowed now)."""
        now = self._clock()
        with self._lock:
            hits = self._prune(requester_id, now)
            if len(hits) < self.max_requests:
                return 0.0
            return max(0.0, hits[0] + self.window_s - now)

    def _prune(self, requester_id: str, now: float) -> Deque[float]:
        hits = self._hits.setdefault(requester_id, deque())
        while hits and now - hits[0] >= self.window_s:
            hits.popleft()
        return hits


class JobAdmission:
    """Fixed number of job slots; acquisition never blocks."""

    def __init__(self, max_jobs: int) -> None:
        if max_jobs < 1:
            raise ValueError("max_jobs must be at least 1")
        self.max_jobs = max_jobs
        self._slots = threading.BoundedSemaphore(max_jobs)
        self._active = 0
        self._lock = threading.Lock()

    @property
    def active(self) -> int:
        with self._lock:
            return self._active

    def try_acquire(self) -> bool:
        if not self._slots.acquire(blocking=False):
            return False
        with self._lock:
            self._active += 1
        return True

    def release(self) -> None:
        # BoundedSemaphore raises ValueError on over-release
        self._slots.release()
        with self._lock:
            self._active -= 1
