"""
Fire History
Append-only log of FireEvents with an explicit retention policy.
"""

from collections import deque
from datetime import datetime
from typing import Deque, List, Optional

from .models import FireEvent
from ..core.models import to_utc


class FireHistory:
    """
    Bounded, chronologically ordered event log.

    Retention: keeps the newest `max_size` events, dropping the oldest
    on overflow. `evicted` counts what external rotation would have lost.
    """

    def __init__(self, max_size: int = 1000):
        if max_size < 1:
            raise ValueError("max_size must be >= 1")
        self.max_size = max_size
        self._events: Deque[FireEvent] = deque(maxlen=max_size)
        self.evicted = 0

    def append(self, event: FireEvent) -> None:
        if len(self._events) == self.max_size:
            self.evicted += 1
        self._events.append(event)

    def since(self, since: Optional[datetime] = None) -> List[FireEvent]:
        """Events with timestamp >= since, oldest first"""
        if since is None:
            return list(self._events)
        since = to_utc(since)
        return [e for e in self._events if e.timestamp >= since]

    def between(self, start: datetime, end: datetime) -> List[FireEvent]:
        start, end = to_utc(start), to_utc(end)
        return [e for e in self._events if start <= e.timestamp <= end]

    def latest(self, limit: int = 50) -> List[FireEvent]:
        """Newest first, like a feed"""
        events = list(self._events)
        events.reverse()
        return events[:limit]

    def clear(self) -> None:
        self._events.clear()

    def __len__(self) -> int:
        return len(self._events)
