from __future__ import annotations

from dataclasses import dataclass
import math
from threading import Lock
import time
from typing import Optional

from .rate_limit import Clock


@dataclass
class LoginAttemptRecord:
    attempts: int
    last_attempt_at: float
    locked_until: Optional[float] = None


@dataclass(frozen=True)
class LockoutStatus:
    locked: bool
    remaining_attempts: int
    locked_until: Optional[float]


@dataclass(frozen=True)
class LoginCheck:
    allowed: bool
    remaining_attempts: int
    wait_seconds: Optional[int] = None
    locked_until: Optional[float] = None


def _pair(username: str, ip: str) -> tuple[str, str]:
    return username.strip().lower(), ip


class LoginLockoutTracker:
    """Consecutive failed logins per (username, client key) pair.

    A pair is locked for ``lockout_seconds`` once it reaches ``max_attempts``
    failures. Rotating either half of the pair yields a fresh budget; the
    per-identity auth rate limit is what bounds that.
    """

    def __init__(self, max_attempts: int, lockout_seconds: float, clock: Clock = time.time) -> None:
        self.max_attempts = max_attempts
        self.lockout_seconds = lockout_seconds
        self._records: dict[tuple[str, str], LoginAttemptRecord] = {}
        self._lock = Lock()
        self.clock = clock

    def record_failure(self, username: str, ip: str) -> LockoutStatus:
        key = _pair(username, ip)
        now = self.clock()
        with self._lock:
            record = self._records.get(key)
            if record is None or (record.locked_until is not None and record.locked_until <= now):
                record = LoginAttemptRecord(attempts=0, last_attempt_at=now)
                self._records[key] = record

            record.attempts += 1
            record.last_attempt_at = now
            if record.attempts >= self.max_attempts:
                record.locked_until = now + self.lockout_seconds

            return LockoutStatus(
                locked=record.locked_until is not None and record.locked_until > now,
                remaining_attempts=max(0, self.max_attempts - record.attempts),
                locked_until=record.locked_until,
            )

    def check_allowed(self, username: str, ip: str) -> LoginCheck:
        key = _pair(username, ip)
        now = self.clock()
        with self._lock:
            record = self._records.get(key)
            if record is None:
                return LoginCheck(allowed=True, remaining_attempts=self.max_attempts)

            if record.locked_until is not None:
                if record.locked_until > now:
                    return LoginCheck(
                        allowed=False,
                        remaining_attempts=0,
                        wait_seconds=math.ceil(record.locked_until - now),
                        locked_until=record.locked_until,
                    )
                del self._records[key]
                return LoginCheck(allowed=True, remaining_attempts=self.max_attempts)

            return LoginCheck(
                allowed=True,
                remaining_attempts=max(0, self.max_attempts - record.attempts),
            )

    def clear(self, username: str, ip: str) -> None:
        with self._lock:
            self._records.pop(_pair(username, ip), None)

    def forget_identity(self, ip: str) -> int:
        with self._lock:
            keys = [key for key in self._records if key[1] == ip]
            for key in keys:
                del self._records[key]
        return len(keys)

    def attempts_for_identity(self, ip: str) -> int:
        with self._lock:
            return sum(record.attempts for key, record in self._records.items() if key[1] == ip)

    def sweep(self, now: float) -> int:
        with self._lock:
            stale = [
                key
                for key, record in self._records.items()
                if (record.locked_until is None or record.locked_until <= now)
                and now - record.last_attempt_at > self.lockout_seconds
            ]
            for key in stale:
                del self._records[key]
        return len(stale)

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)
