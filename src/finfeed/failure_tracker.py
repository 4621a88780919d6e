"""Per-source circuit breaker for feed fetching.

A feed that fails ``threshold`` times in a row is skipped until
``cooldown`` seconds have passed since its last attempt.  Once the cooldown
elapses the next run tries it again (half-open); a success clears the
record, another failure re-opens the breaker with a fresh timestamp.

Example:
    >>> tracker = FailureTracker()
    >>> tracker.record_failure("Fortune")
    >>> tracker.should_skip("Fortune")
    False
"""

from __future__ import annotations

import threading
import time
from typing import Callable, Dict, Optional

from .config import Settings, get_settings
from .logging_utils import get_logger
from .models import BreakerState, FeedFailureRecord

log = get_logger(__name__)


class FailureTracker:
    """Track consecutive fetch failures per source.

    Thread Safety:
        Records are mutated under a lock.  Concurrent updates for the same
        source are last-write-wins, which is acceptable because the counter
        only gates retries.
    """

    def __init__(
        self,
        threshold: int = 3,
        cooldown: float = 300.0,
        clock: Optional[Callable[[], float]] = None,
    ):
        self.threshold = max(1, int(threshold))
        self.cooldown = float(cooldown)
        self._clock = clock or time.time
        self._records: Dict[str, FeedFailureRecord] = {}
        self._lock = threading.Lock()

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> "FailureTracker":
        s = settings or get_settings()
        return cls(threshold=s.breaker_threshold, cooldown=s.breaker_cooldown_secs)

    def _state(self, rec: FeedFailureRecord, now: float) -> BreakerState:
        if rec.consecutive_failures < self.threshold:
            return BreakerState.CLOSED
        if now - rec.last_attempt < self.cooldown:
            return BreakerState.OPEN
        return BreakerState.HALF_OPEN

    def state_for(self, source_name: str) -> BreakerState:
        with self._lock:
            rec = self._records.get(source_name)
            if rec is None:
                return BreakerState.CLOSED
            return self._state(rec, self._clock())

    def should_skip(self, source_name: str) -> bool:
        """True while the breaker for ``source_name`` is open."""
        return self.state_for(source_name) is BreakerState.OPEN

    def record_failure(self, source_name: str) -> FeedFailureRecord:
        now = self._clock()
        with self._lock:
            rec = self._records.get(source_name)
            if rec is None:
                rec = FeedFailureRecord(source_name=source_name)
                self._records[source_name] = rec
            rec.consecutive_failures += 1
            rec.last_attempt = now
            rec.state = self._state(rec, now)
        if rec.state is BreakerState.OPEN:
            log.warning(
                "feed_circuit_open source=%s failures=%d cooldown=%ss",
                source_name,
                rec.consecutive_failures,
                int(self.cooldown),
            )
        return rec

    def record_success(self, source_name: str) -> None:
        with self._lock:
            rec = self._records.pop(source_name, None)
        if rec is not None and rec.consecutive_failures >= self.threshold:
            log.info("feed_circuit_closed source=%s", source_name)

    def get_record(self, source_name: str) -> Optional[FeedFailureRecord]:
        """Snapshot of the record for ``source_name`` with a current state."""
        with self._lock:
            rec = self._records.get(source_name)
            if rec is None:
                return None
            return FeedFailureRecord(
                source_name=rec.source_name,
                consecutive_failures=rec.consecutive_failures,
                last_attempt=rec.last_attempt,
                state=self._state(rec, self._clock()),
            )

    def reset(self, source_name: Optional[str] = None) -> None:
        with self._lock:
            if source_name is None:
                self._records.clear()
            else:
                self._records.pop(source_name, None)

    def get_stats(self) -> Dict[str, object]:
        now = self._clock()
        with self._lock:
            records = [
                (rec, self._state(rec, now)) for rec in self._records.values()
            ]
        failing = {}
        for rec, state in records:
            failing[rec.source_name] = {
                "consecutive_failures": rec.consecutive_failures,
                "last_attempt": rec.last_attempt,
                "state": state.value,
            }
        return {
            "tracked": len(records),
            "open": sum(1 for _, s in records if s is BreakerState.OPEN),
            "half_open": sum(1 for _, s in records if s is BreakerState.HALF_OPEN),
            "sources": failing,
        }
