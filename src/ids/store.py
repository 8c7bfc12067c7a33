"""Event Store — thread-safe, capacity-bounded buffer of connection attempts.

The store is the only state shared between producers (log tailers, batch
loaders) and the analysing consumer.  One lock covers append, windowed
read and eviction.  Attempts are kept in append order; producers are
expected to append in non-decreasing timestamp order, the store never
re-sorts.
"""

from __future__ import annotations

import dataclasses
import logging
import threading
from collections.abc import Callable
from datetime import UTC, datetime, timedelta

from src.contracts.attempt import ConnectionAttempt
from src.shared.timeutil import utcnow

log = logging.getLogger(__name__)

DEFAULT_CAPACITY = 10_000
DEFAULT_EVICT_COUNT = 1_000


class EventStore:
    """Append-ordered attempt history with a hard size cap.

    When the cap is reached the oldest ``evict_count`` entries are dropped
    in one slice instead of one at a time.
    """

    def __init__(
        self,
        capacity: int = DEFAULT_CAPACITY,
        evict_count: int = DEFAULT_EVICT_COUNT,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.capacity = capacity
        self.evict_count = max(1, min(evict_count, capacity))
        self.clock = clock
        self._attempts: list[ConnectionAttempt] = []
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._attempts)

    def append(self, attempt: ConnectionAttempt) -> ConnectionAttempt:
        # naive timestamps are taken as UTC, as parse_ts does
        if attempt.timestamp.tzinfo is None:
            attempt = dataclasses.replace(attempt, timestamp=attempt.timestamp.replace(tzinfo=UTC))
        with self._lock:
            if len(self._attempts) >= self.capacity:
                del self._attempts[: self.evict_count]
                log.debug(
                    "Store at capacity (%d) — evicted %d oldest attempts",
                    self.capacity, self.evict_count,
                )
            self._attempts.append(attempt)
        return attempt

    def window(self, duration: timedelta) -> list[ConnectionAttempt]:
        """Copy of attempts newer than ``now - duration`` (point-in-time snapshot)."""
        cutoff = self.clock() - duration
        with self._lock:
            return [a for a in self._attempts if a.timestamp > cutoff]

    def evict_older_than(self, duration: timedelta) -> int:
        """Drop attempts older than ``now - duration``; return how many were removed."""
        cutoff = self.clock() - duration
        with self._lock:
            before = len(self._attempts)
            self._attempts = [a for a in self._attempts if a.timestamp >= cutoff]
            removed = before - len(self._attempts)
        if removed:
            log.debug("Evicted %d attempts older than %s", removed, duration)
        return removed
