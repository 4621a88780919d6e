"""
Per-client request limiter for the news endpoint.

Sliding window: at most ``max_hits`` requests per ``window_secs`` per key
(usually the client address).  Rejected calls report how long until the
oldest request in the window expires, which becomes the ``Retry-After``
value.  Buckets with no hit left in the window are dropped, so memory
tracks only the clients seen during the last window.
"""

from __future__ import annotations

import math
import threading
import time
from collections import deque
from typing import Callable, Deque, Dict, Optional, Tuple

from .config import Settings, get_settings
from .logging_utils import get_logger

log = get_logger(__name__)


class RateLimiter:
    def __init__(
        self,
        window_secs: float,
        max_hits: int,
        clock: Optional[Callable[[], float]] = None,
    ):
        self.window = float(window_secs)
        self.max_hits = max(1, int(max_hits))
        self._clock = clock or time.monotonic
        self._buckets: Dict[str, Deque[float]] = {}
        self._last_sweep = self._clock()
        self._lock = threading.Lock()

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> "RateLimiter":
        s = settings or get_settings()
        return cls(s.rate_window_secs, s.rate_max)

    def _sweep(self, now: float) -> None:
        """Drop every bucket whose hits have all left the window."""
        expired = [
            k for k, dq in self._buckets.items() if not dq or now - dq[-1] >= self.window
        ]
        for k in expired:
            del self._buckets[k]
        self._last_sweep = now

    def check(self, key: str) -> Tuple[bool, int]:
        """Record a hit for ``key``; return ``(allowed, retry_after_secs)``."""
        now = self._clock()
        with self._lock:
            if now - self._last_sweep >= self.window:
                self._sweep(now)
            dq = self._buckets.get(key)
            # purge old
            while dq and (now - dq[0] >= self.window):
                dq.popleft()
            if dq is not None and not dq:
                del self._buckets[key]
                dq = None
            if dq is not None and len(dq) >= self.max_hits:
                retry = max(1, math.ceil(self.window - (now - dq[0])))
                allowed = False
            else:
                if dq is None:
                    dq = self._buckets[key] = deque()
                dq.append(now)
                return True, 0
        log.info(
            "rate_limit_triggered key=%s window=%s max=%d retry_after=%d",
            key,
            int(self.window),
            self.max_hits,
            retry,
        )
        return allowed, retry

    def allow(self, key: str) -> bool:
        return self.check(key)[0]

    def reset(self) -> None:
        with self._lock:
            self._buckets.clear()
