from __future__ import annotations

from dataclasses import dataclass
from threading import Lock
import time
from typing import Optional

from .rate_limit import Clock


@dataclass(frozen=True)
class BlockEntry:
    ip: str
    blocked_at: float
    reason: str
    expires_at: Optional[float]

    def is_active(self, now: float) -> bool:
        return self.expires_at is None or self.expires_at > now

    def remaining_seconds(self, now: float) -> Optional[float]:
        if self.expires_at is None:
            return None
        return max(0.0, self.expires_at - now)


class BlockRegistry:
    """Authoritative deny-list of client identities.

    Entries without ``expires_at`` come from administrators and stay until
    explicitly removed. Expired entries stop counting immediately but are only
    deleted by ``sweep``.
    """

    def __init__(self, default_block_seconds: float, clock: Clock = time.time) -> None:
        self.default_block_seconds = default_block_seconds
        self._entries: dict[str, BlockEntry] = {}
        self._lock = Lock()
        self.clock = clock

    def is_blocked(self, ip: str) -> bool:
        now = self.clock()
        with self._lock:
            entry = self._entries.get(ip)
            return entry is not None and entry.is_active(now)

    def get(self, ip: str) -> Optional[BlockEntry]:
        now = self.clock()
        with self._lock:
            entry = self._entries.get(ip)
        if entry is None or not entry.is_active(now):
            return None
        return entry

    def block(
        self,
        ip: str,
        reason: str,
        duration_seconds: Optional[float] = None,
        permanent: bool = False,
    ) -> BlockEntry:
        now = self.clock()
        if permanent:
            expires_at = None
        else:
            seconds = duration_seconds if duration_seconds is not None else self.default_block_seconds
            expires_at = now + seconds
        entry = BlockEntry(ip=ip, blocked_at=now, reason=reason, expires_at=expires_at)
        with self._lock:
            self._entries[ip] = entry
        return entry

    def unblock(self, ip: str) -> bool:
        with self._lock:
            return self._entries.pop(ip, None) is not None

    def entries(self) -> list[BlockEntry]:
        now = self.clock()
        with self._lock:
            snapshot = list(self._entries.values())
        return sorted(
            (entry for entry in snapshot if entry.is_active(now)),
            key=lambda entry: entry.blocked_at,
            reverse=True,
        )

    def sweep(self, now: float) -> int:
        with self._lock:
            expired = [ip for ip, entry in self._entries.items() if not entry.is_active(now)]
            for ip in expired:
                del self._entries[ip]
        return len(expired)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
