import asyncio

import pytest

from novaguard.config import DefenseConfig
from novaguard.defense import DefenseContext
from novaguard.errors import Blocked, LoginLocked, MaliciousRequest, Throttled
from novaguard.rate_limit import AUTH, GENERAL
from novaguard.sweeper import Sweeper


@pytest.fixture()
def defense(clock):
    return DefenseContext(DefenseConfig(), clock=clock)


def test_201st_request_in_window_is_throttled(defense, clock):
    for _ in range(200):
        defense.check_request("A")
        clock.advance(0.2)

    with pytest.raises(Throttled) as excinfo:
        defense.check_request("A")

    assert excinfo.value.status_code == 429
    assert 0 <= excinfo.value.retry_after <= 60
    assert excinfo.value.headers["X-RateLimit-Remaining"] == "0"
    assert not defense.is_blocked("A")


def test_severe_overage_escalates_to_block(clock):
    defense = DefenseContext(DefenseConfig(rate_max_requests=4, burst_max_requests=1000), clock=clock)
    for _ in range(4):
        defense.check_request("C")

    for _ in range(3):
        with pytest.raises(Throttled):
            defense.check_request("C")
    assert defense.is_blocked("C")

    with pytest.raises(Blocked):
        defense.check_request("C")


def test_burst_blocks_identity_until_expiry(defense, clock):
    for _ in range(30):
        defense.check_request("B")
        clock.advance(0.1)

    with pytest.raises(Blocked):
        defense.check_request("B")
    assert defense.is_blocked("B")

    clock.advance(60)
    with pytest.raises(Blocked):
        defense.check_request("B")

    clock.advance(defense.config.block_seconds)
    defense.check_request("B")


def test_blocked_identity_does_not_touch_counters(defense):
    defense.manual_block_ip("D", "spam")
    for _ in range(5):
        with pytest.raises(Blocked):
            defense.check_request("D")

    assert defense.counters.peek(GENERAL, "D") is None
    assert defense.bursts.count("D") == 0


def test_auth_limit_throttles_without_blocking(clock):
    defense = DefenseContext(DefenseConfig(auth_max_requests=2), clock=clock)
    defense.check_auth_request("E")
    defense.check_auth_request("E")

    with pytest.raises(Throttled) as excinfo:
        defense.check_auth_request("E")
    assert excinfo.value.retry_after == 300
    assert not defense.is_blocked("E")


def test_threat_match_blocks_immediately(defense):
    with pytest.raises(MaliciousRequest) as excinfo:
        defense.scan_request("F", '{"name": "x; DROP TABLE Account"}', "/api/user")

    assert excinfo.value.retry_after is None
    assert defense.is_blocked("F")
    assert defense.get_blocked_ips()[0]["reason"] == "malicious pattern: sql_injection"


def test_manual_block_then_unblock_clears_all_state(defense):
    defense.check_request("9.9.9.9")
    defense.check_auth_request("9.9.9.9")
    defense.record_failed_login("alice", "9.9.9.9")

    defense.manual_block_ip("9.9.9.9", "spam")
    assert defense.is_blocked("9.9.9.9")

    assert defense.unblock_ip("9.9.9.9") is True
    assert not defense.is_blocked("9.9.9.9")
    assert defense.counters.peek(GENERAL, "9.9.9.9") is None
    assert defense.counters.peek(AUTH, "9.9.9.9") is None
    assert defense.bursts.count("9.9.9.9") == 0
    assert defense.is_login_allowed("alice", "9.9.9.9").remaining_attempts == 10

    assert defense.unblock_ip("9.9.9.9") is False


def test_blocked_ip_listing(defense, clock):
    defense.manual_block_ip("9.9.9.9", "spam")
    clock.advance(1)
    defense.manual_block_ip("7.7.7.7", "gold farming", duration_minutes=30)

    listing = defense.get_blocked_ips()
    assert [item["ip"] for item in listing] == ["7.7.7.7", "9.9.9.9"]
    assert listing[0]["remainingMinutes"] == 30
    assert listing[0]["expiresAt"] is not None
    assert listing[1]["expiresAt"] is None
    assert listing[1]["remainingMinutes"] is None


def test_locked_login_raises_with_wait(defense, clock):
    for _ in range(10):
        defense.record_failed_login("alice", "1.2.3.4")

    with pytest.raises(LoginLocked) as excinfo:
        defense.ensure_login_allowed("alice", "1.2.3.4")
    assert excinfo.value.wait_seconds == 300
    assert excinfo.value.to_payload()["waitSeconds"] == 300


def test_sweep_reclaims_every_store(defense, clock):
    defense.check_request("old")
    defense.record_failed_login("alice", "old")
    defense.blocklist.block("old-block", "burst", duration_seconds=10)
    clock.advance(1000)
    defense.check_request("new")

    stats = defense.sweep()
    assert stats.counters == 1
    assert stats.bursts == 1
    assert stats.logins == 1
    assert stats.blocks == 1
    assert defense.record_counts() == {"counters": 1, "bursts": 1, "logins": 0, "blocks": 0}


def test_sweeper_task_runs_periodically(clock):
    defense = DefenseContext(DefenseConfig(), clock=clock)
    defense.blocklist.block("old-block", "burst", duration_seconds=10)
    clock.advance(11)

    async def scenario() -> None:
        sweeper = Sweeper(defense, interval_seconds=0.01)
        sweeper.start()
        assert sweeper.running
        await asyncio.sleep(0.1)
        await sweeper.stop()
        assert not sweeper.running

    asyncio.run(scenario())
    assert len(defense.blocklist) == 0


def test_blocked_ip_listing_reports_login_failures(defense):
    defense.record_failed_login("alice", "3.3.3.3")
    defense.record_failed_login("bob", "3.3.3.3")
    defense.manual_block_ip("3.3.3.3", "credential stuffing")

    assert defense.get_blocked_ips()[0]["loginFailures"] == 2
