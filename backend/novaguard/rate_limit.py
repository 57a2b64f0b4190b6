from __future__ import annotations

from collections import deque
from dataclasses import dataclass
import math
from threading import Lock
import time
from typing import Callable, Optional

Clock = Callable[[], float]

GENERAL = "general"
AUTH = "auth"


@dataclass
class WindowRecord:
    count: int
    window_started_at: float


@dataclass(frozen=True)
class WindowState:
    count: int
    window_started_at: float
    window_seconds: float

    def retry_after(self, now: float) -> int:
        remaining = self.window_seconds - (now - self.window_started_at)
        return max(0, math.ceil(remaining))

    @property
    def reset_at(self) -> float:
        return self.window_started_at + self.window_seconds


class WindowCounterStore:
    """Fixed-window counters keyed by (category, client key).

    Each category has its own window length. Every read-modify-write happens
    under one lock, which the sweeper also takes while pruning.
    """

    def __init__(self, windows: dict[str, float], clock: Clock = time.time) -> None:
        self._windows = dict(windows)
        self._records: dict[tuple[str, str], WindowRecord] = {}
        self._lock = Lock()
        self.clock = clock

    def window_for(self, category: str) -> float:
        try:
            return self._windows[category]
        except KeyError:
            raise ValueError(f"Unknown rate window category: {category}") from None

    def increment(self, category: str, key: str) -> WindowState:
        window = self.window_for(category)
        now = self.clock()
        with self._lock:
            record = self._records.get((category, key))
            if record is None:
                record = WindowRecord(count=0, window_started_at=now)
                self._records[(category, key)] = record
            elif now - record.window_started_at >= window:
                record.count = 0
                record.window_started_at = now
            record.count += 1
            return WindowState(record.count, record.window_started_at, window)

    def peek(self, category: str, key: str) -> Optional[WindowState]:
        window = self.window_for(category)
        now = self.clock()
        with self._lock:
            record = self._records.get((category, key))
            if record is None or now - record.window_started_at >= window:
                return None
            return WindowState(record.count, record.window_started_at, window)

    def forget(self, key: str) -> int:
        with self._lock:
            stale = [pair for pair in self._records if pair[1] == key]
            for pair in stale:
                del self._records[pair]
        return len(stale)

    def sweep(self, now: float) -> int:
        """Drop records whose window went stale more than one full window ago."""
        with self._lock:
            stale = [
                pair
                for pair, record in self._records.items()
                if now - record.window_started_at > self._windows[pair[0]] * 2
            ]
            for pair in stale:
                del self._records[pair]
        return len(stale)

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)


class BurstDetector:
    """Rolling per-key timestamp log catching rapid-fire bursts."""

    def __init__(self, window_seconds: float, max_events: int, clock: Clock = time.time) -> None:
        self.window_seconds = window_seconds
        self.max_events = max_events
        self._events: dict[str, deque[float]] = {}
        self._lock = Lock()
        self.clock = clock

    def _prune(self, events: deque[float], now: float) -> None:
        while events and now - events[0] >= self.window_seconds:
            events.popleft()

    def observe(self, key: str) -> bool:
        now = self.clock()
        with self._lock:
            events = self._events.setdefault(key, deque())
            events.append(now)
            self._prune(events, now)
            return len(events) > self.max_events

    def count(self, key: str) -> int:
        now = self.clock()
        with self._lock:
            events = self._events.get(key)
            if not events:
                return 0
            self._prune(events, now)
            return len(events)

    def forget(self, key: str) -> bool:
        with self._lock:
            return self._events.pop(key, None) is not None

    def sweep(self, now: float) -> int:
        with self._lock:
            removed = 0
            for key in list(self._events):
                events = self._events[key]
                self._prune(events, now)
                if not events:
                    del self._events[key]
                    removed += 1
        return removed

    def __len__(self) -> int:
        with self._lock:
            return len(self._events)


@dataclass(frozen=True)
class RateDecision:
    allowed: bool
    count: int
    limit: int
    retry_after: int
    reset_at: float

    @property
    def remaining(self) -> int:
        return max(0, self.limit - self.count)

    def headers(self) -> dict[str, str]:
        return {
            "X-RateLimit-Limit": str(self.limit),
            "X-RateLimit-Remaining": str(self.remaining),
            "X-RateLimit-Reset": str(math.ceil(self.reset_at)),
        }


class RateLimiter:
    def __init__(self, store: WindowCounterStore, category: str, max_requests: int) -> None:
        self.store = store
        self.category = category
        self.max_requests = max_requests
        # Fail fast on a category the store has no window for.
        self.window_seconds = store.window_for(category)

    def hit(self, key: str) -> RateDecision:
        state = self.store.increment(self.category, key)
        now = self.store.clock()
        return RateDecision(
            allowed=state.count <= self.max_requests,
            count=state.count,
            limit=self.max_requests,
            retry_after=state.retry_after(now),
            reset_at=state.reset_at,
        )
