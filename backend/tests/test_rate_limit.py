import threading

import pytest

from novaguard.rate_limit import AUTH, GENERAL, BurstDetector, RateLimiter, WindowCounterStore


@pytest.fixture()
def store(clock):
    return WindowCounterStore({GENERAL: 60, AUTH: 300}, clock=clock)


def test_increment_counts_within_window_and_resets_after(store, clock):
    for expected in range(1, 6):
        assert store.increment(GENERAL, "1.2.3.4").count == expected
        clock.advance(10)

    # 50s since the window opened; the next call still lands in it.
    assert store.increment(GENERAL, "1.2.3.4").count == 6

    clock.advance(10)
    state = store.increment(GENERAL, "1.2.3.4")
    assert state.count == 1
    assert state.window_started_at == clock.now


def test_categories_have_independent_windows(store, clock):
    store.increment(GENERAL, "k")
    store.increment(AUTH, "k")
    clock.advance(61)

    assert store.increment(GENERAL, "k").count == 1
    assert store.increment(AUTH, "k").count == 2


def test_unknown_category_is_rejected(store):
    with pytest.raises(ValueError):
        store.increment("burst-bucket", "k")


def test_concurrent_increments_are_never_lost(store):
    workers, per_worker = 8, 500

    def hammer() -> None:
        for _ in range(per_worker):
            store.increment(GENERAL, "shared")

    threads = [threading.Thread(target=hammer) for _ in range(workers)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert store.peek(GENERAL, "shared").count == workers * per_worker


def test_sweep_during_traffic_keeps_unrelated_counts(store, clock):
    for index in range(200):
        store.increment(GENERAL, f"stale-{index}")
    clock.advance(121)

    stop = threading.Event()

    def sweep_loop() -> None:
        while not stop.is_set():
            store.sweep(clock())

    sweeper = threading.Thread(target=sweep_loop)
    sweeper.start()
    try:
        for _ in range(2000):
            store.increment(GENERAL, "live")
    finally:
        stop.set()
        sweeper.join()

    assert store.peek(GENERAL, "live").count == 2000
    assert all(store.peek(GENERAL, f"stale-{index}") is None for index in range(200))
    assert len(store) == 1


def test_sweep_only_drops_records_twice_stale(store, clock):
    store.increment(GENERAL, "a")
    store.increment(AUTH, "a")
    clock.advance(121)

    assert store.sweep(clock()) == 1
    assert store.peek(AUTH, "a").count == 1


def test_forget_clears_every_category(store):
    store.increment(GENERAL, "9.9.9.9")
    store.increment(AUTH, "9.9.9.9")
    store.increment(GENERAL, "other")

    assert store.forget("9.9.9.9") == 2
    assert store.peek(GENERAL, "9.9.9.9") is None
    assert store.peek(GENERAL, "other").count == 1


def test_burst_detected_above_threshold_within_window(clock):
    detector = BurstDetector(window_seconds=5, max_events=30, clock=clock)
    results = []
    for _ in range(31):
        results.append(detector.observe("b"))
        clock.advance(0.1)

    assert not any(results[:30])
    assert results[30] is True


def test_evenly_spaced_requests_never_burst(clock):
    detector = BurstDetector(window_seconds=5, max_events=30, clock=clock)
    spacing = 5.5 / 31
    results = []
    for _ in range(31):
        results.append(detector.observe("b"))
        clock.advance(spacing)

    assert not any(results)
    assert detector.count("b") <= 30


def test_burst_sweep_removes_idle_logs(clock):
    detector = BurstDetector(window_seconds=5, max_events=30, clock=clock)
    detector.observe("idle")
    clock.advance(3)
    detector.observe("active")
    clock.advance(3)

    assert detector.sweep(clock()) == 1
    assert detector.count("active") == 1
    assert len(detector) == 1


def test_rate_limiter_reports_retry_after_and_headers(store, clock):
    limiter = RateLimiter(store, GENERAL, max_requests=3)
    for _ in range(3):
        assert limiter.hit("x").allowed
        clock.advance(5)

    decision = limiter.hit("x")
    assert not decision.allowed
    assert decision.remaining == 0
    assert decision.retry_after == 45
    assert decision.headers()["X-RateLimit-Limit"] == "3"
    assert decision.headers()["X-RateLimit-Remaining"] == "0"


def test_retry_after_is_never_negative(store, clock):
    limiter = RateLimiter(store, GENERAL, max_requests=1)
    limiter.hit("x")
    state = store.peek(GENERAL, "x")
    assert state.retry_after(clock() + 500) == 0
