from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
import logging
import math
import time
from typing import Any, Optional

from .blocklist import BlockEntry, BlockRegistry
from .config import DefenseConfig
from .errors import Blocked, LoginLocked, MaliciousRequest, Throttled
from .lockout import LoginCheck, LoginLockoutTracker, LockoutStatus
from .metrics import DEFENSE_BLOCKS_TOTAL, DEFENSE_REJECTIONS_TOTAL, LOGIN_FAILURES_TOTAL
from .rate_limit import AUTH, GENERAL, BurstDetector, Clock, RateDecision, RateLimiter, WindowCounterStore
from .threats import ThreatScanner

logger = logging.getLogger("novaguard.defense")

BLOCKED_MESSAGE = "Access denied. Your IP has been temporarily blocked."


def _iso(ts: Optional[float]) -> Optional[str]:
    if ts is None:
        return None
    return datetime.fromtimestamp(ts, tz=timezone.utc).isoformat()


@dataclass(frozen=True)
class SweepStats:
    counters: int
    bursts: int
    logins: int
    blocks: int

    @property
    def total(self) -> int:
        return self.counters + self.bursts + self.logins + self.blocks


class DefenseContext:
    """Owns every in-memory defense store for one process.

    Built once at startup and shared by the middleware, the auth routes and
    the sweeper. All stores read the same clock.
    """

    def __init__(self, config: DefenseConfig, clock: Clock = time.time) -> None:
        self.config = config
        self.clock = clock
        self.counters = WindowCounterStore(
            {GENERAL: config.rate_window_seconds, AUTH: config.auth_window_seconds},
            clock=clock,
        )
        self.bursts = BurstDetector(config.burst_window_seconds, config.burst_max_requests, clock=clock)
        self.general_limiter = RateLimiter(self.counters, GENERAL, config.rate_max_requests)
        self.auth_limiter = RateLimiter(self.counters, AUTH, config.auth_max_requests)
        self.logins = LoginLockoutTracker(config.login_max_attempts, config.login_lockout_seconds, clock=clock)
        self.blocklist = BlockRegistry(config.block_seconds, clock=clock)
        self.scanner = ThreatScanner()

    # ---------- Request pipeline ----------
    def block(self, ip: str, reason: str, source: str, duration_seconds: Optional[float] = None) -> BlockEntry:
        entry = self.blocklist.block(ip, reason, duration_seconds=duration_seconds)
        DEFENSE_BLOCKS_TOTAL.labels(source=source).inc()
        logger.warning("IP blocked", extra={"event": "ip_blocked", "ip": ip, "reason": reason})
        return entry

    def ensure_not_blocked(self, ip: str) -> None:
        entry = self.blocklist.get(ip)
        if entry is not None:
            DEFENSE_REJECTIONS_TOTAL.labels(kind=Blocked.kind).inc()
            logger.info(
                "Blocked IP attempted access",
                extra={"event": "blocked_access", "ip": ip, "reason": entry.reason},
            )
            raise Blocked(BLOCKED_MESSAGE)

    def check_request(self, ip: str) -> RateDecision:
        """Block check, burst detection and the general rate limit, in that order."""
        self.ensure_not_blocked(ip)

        if self.bursts.observe(ip):
            logger.warning("Request burst detected", extra={"event": "burst_detected", "ip": ip})
            reason = (
                f"burst: more than {self.config.burst_max_requests} requests "
                f"in {self.config.burst_window_seconds:g}s"
            )
            self.block(ip, reason, source="burst")
            DEFENSE_REJECTIONS_TOTAL.labels(kind=Blocked.kind).inc()
            raise Blocked(BLOCKED_MESSAGE)

        decision = self.general_limiter.hit(ip)
        if decision.allowed:
            return decision

        logger.warning("Rate limit exceeded", extra={"event": "rate_limited", "ip": ip})
        if decision.count > self.config.rate_block_threshold:
            self.block(ip, "excessive requests", source="rate_limit")
        DEFENSE_REJECTIONS_TOTAL.labels(kind=Throttled.kind).inc()
        raise Throttled(
            "Too many requests. Please try again later.",
            retry_after=decision.retry_after,
            headers=decision.headers(),
        )

    def check_auth_request(self, ip: str) -> RateDecision:
        decision = self.auth_limiter.hit(ip)
        if decision.allowed:
            return decision

        logger.warning("Auth rate limit exceeded", extra={"event": "auth_rate_limited", "ip": ip})
        DEFENSE_REJECTIONS_TOTAL.labels(kind=Throttled.kind).inc()
        minutes = max(1, math.ceil(self.auth_limiter.window_seconds / 60))
        raise Throttled(
            f"Too many authentication attempts. Please wait {minutes} minutes.",
            retry_after=decision.retry_after,
        )

    def scan_request(self, ip: str, payload_text: str, path: str, method: str = "") -> None:
        signature = self.scanner.scan(payload_text, path)
        if signature is None:
            return

        logger.warning(
            "Suspicious request detected",
            extra={"event": "malicious_request", "ip": ip, "path": path, "method": method, "reason": signature},
        )
        self.block(ip, f"malicious pattern: {signature}", source="threat_scan")
        DEFENSE_REJECTIONS_TOTAL.labels(kind=MaliciousRequest.kind).inc()
        raise MaliciousRequest("Malicious request detected. Access denied.")

    # ---------- Login protection ----------
    def record_failed_login(self, username: str, ip: str) -> LockoutStatus:
        status = self.logins.record_failure(username, ip)
        LOGIN_FAILURES_TOTAL.inc()
        if status.locked:
            logger.warning(
                "Account locked due to failed attempts",
                extra={"event": "login_locked", "username": username, "ip": ip},
            )
        return status

    def is_login_allowed(self, username: str, ip: str) -> LoginCheck:
        return self.logins.check_allowed(username, ip)

    def ensure_login_allowed(self, username: str, ip: str) -> LoginCheck:
        check = self.logins.check_allowed(username, ip)
        if not check.allowed:
            DEFENSE_REJECTIONS_TOTAL.labels(kind=LoginLocked.kind).inc()
            wait = check.wait_seconds or 0
            raise LoginLocked(
                f"Too many failed attempts. Try again in {max(1, math.ceil(wait / 60))} minutes.",
                wait_seconds=wait,
            )
        return check

    def clear_login_attempts(self, username: str, ip: str) -> None:
        self.logins.clear(username, ip)

    # ---------- Administration ----------
    def get_blocked_ips(self) -> list[dict[str, Any]]:
        now = self.clock()
        items = []
        for entry in self.blocklist.entries():
            remaining = entry.remaining_seconds(now)
            auth_state = self.counters.peek(AUTH, entry.ip)
            items.append(
                {
                    "ip": entry.ip,
                    "blockedAt": _iso(entry.blocked_at),
                    "expiresAt": _iso(entry.expires_at),
                    "remainingMinutes": None if remaining is None else math.ceil(remaining / 60),
                    "reason": entry.reason,
                    "burstCount": self.bursts.count(entry.ip),
                    "authAttempts": auth_state.count if auth_state else 0,
                    "loginFailures": self.logins.attempts_for_identity(entry.ip),
                }
            )
        return items

    def security_config(self) -> dict[str, Any]:
        return {
            "blockDuration": self.config.block_seconds,
            "burstLimit": self.config.burst_max_requests,
            "burstWindow": self.config.burst_window_seconds,
            "authLimit": self.config.auth_max_requests,
            "authWindow": self.config.auth_window_seconds,
            "rateLimit": self.config.rate_max_requests,
            "rateWindow": self.config.rate_window_seconds,
            "loginMaxAttempts": self.config.login_max_attempts,
            "loginLockout": self.config.login_lockout_seconds,
        }

    def manual_block_ip(self, ip: str, reason: str, duration_minutes: Optional[int] = None) -> BlockEntry:
        if duration_minutes is None:
            entry = self.blocklist.block(ip, reason, permanent=True)
        else:
            entry = self.blocklist.block(ip, reason, duration_seconds=duration_minutes * 60)
        DEFENSE_BLOCKS_TOTAL.labels(source="admin").inc()
        logger.warning("IP blocked by administrator", extra={"event": "ip_blocked", "ip": ip, "reason": reason})
        return entry

    def unblock_ip(self, ip: str) -> bool:
        """Remove the block and every counter held for ``ip`` so it starts clean."""
        removed = self.blocklist.unblock(ip)
        self.counters.forget(ip)
        self.bursts.forget(ip)
        self.logins.forget_identity(ip)
        if removed:
            logger.info("IP unblocked", extra={"event": "ip_unblocked", "ip": ip})
        return removed

    def is_blocked(self, ip: str) -> bool:
        return self.blocklist.is_blocked(ip)

    # ---------- Housekeeping ----------
    def sweep(self) -> SweepStats:
        now = self.clock()
        return SweepStats(
            counters=self.counters.sweep(now),
            bursts=self.bursts.sweep(now),
            logins=self.logins.sweep(now),
            blocks=self.blocklist.sweep(now),
        )

    def record_counts(self) -> dict[str, int]:
        return {
            "counters": len(self.counters),
            "bursts": len(self.bursts),
            "logins": len(self.logins),
            "blocks": len(self.blocklist),
        }
