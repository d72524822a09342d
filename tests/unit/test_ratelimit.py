from __future__ import annotations

import sys
import threading

import pytest

from backend.app.services.ratelimit import UNKNOWN_CLIENT, Decision, RateLimiter


def _limiter(**overrides) -> RateLimiter:
    params = {
        "max_requests": 10,
        "window_seconds": 60.0,
        "block_seconds": 3600.0,
        "max_entries": 5000,
    }
    params.update(overrides)
    return RateLimiter(**params)


def test_rate_limiter_allows_within_limit() -> None:
    limiter = _limiter(max_requests=3)
    decisions = [limiter.admit("key", now=0.0) for _ in range(3)]
    assert all(decision.allowed for decision in decisions)
    assert [decision.count for decision in decisions] == [1, 2, 3]
    assert all(decision.retry_after is None for decision in decisions)


def test_rate_limiter_blocks_after_limit() -> None:
    limiter = _limiter(max_requests=2, block_seconds=90.5)
    assert limiter.admit("key", now=0.0).allowed
    assert limiter.admit("key", now=0.1).allowed

    decision = limiter.admit("key", now=0.2)

    assert decision == Decision.rejected(retry_after=91, count=3)
    record = limiter.snapshot("key")
    assert record is not None
    assert record.blocked_until == pytest.approx(90.7)


def test_blocked_client_counter_is_frozen_and_retry_after_shrinks() -> None:
    limiter = _limiter(max_requests=1, block_seconds=10.0)
    limiter.admit("key", now=0.0)
    limiter.admit("key", now=1.0)
    frozen = limiter.snapshot("key")

    retry_afters = []
    for now in (1.0, 2.5, 5.0, 10.9):
        decision = limiter.admit("key", now=now)
        assert decision.allowed is False
        retry_afters.append(decision.retry_after)

    assert retry_afters == [10, 9, 6, 1]
    assert retry_afters == sorted(retry_afters, reverse=True)
    assert limiter.snapshot("key") == frozen


def test_counter_resets_after_gap_longer_than_window() -> None:
    limiter = _limiter(max_requests=5, window_seconds=60.0)
    for second in range(4):
        limiter.admit("key", now=float(second))
    assert limiter.snapshot("key").count == 4

    decision = limiter.admit("key", now=3.0 + 60.01)

    assert decision.allowed
    assert decision.count == 1


def test_window_slides_with_each_request() -> None:
    limiter = _limiter(max_requests=3, window_seconds=10.0)
    # Each request is within the window of the previous one, so the count
    # keeps growing even though the first and last are 18s apart.
    for now in (0.0, 9.0, 18.0):
        assert limiter.admit("key", now=now).allowed
    assert limiter.admit("key", now=27.0).allowed is False


def test_gap_equal_to_window_does_not_reset() -> None:
    limiter = _limiter(max_requests=5, window_seconds=60.0)
    limiter.admit("key", now=0.0)
    assert limiter.admit("key", now=60.0).count == 2


def test_documented_blocking_scenario() -> None:
    limiter = _limiter()
    for _ in range(10):
        assert limiter.admit("A", now=0.0).allowed
    assert limiter.snapshot("A").count == 10

    first_rejection = limiter.admit("A", now=0.5)
    assert first_rejection.allowed is False
    assert first_rejection.retry_after == 3600

    second_rejection = limiter.admit("A", now=1.0)
    assert second_rejection.allowed is False
    # ceil(3600.5 - 1.0)
    assert second_rejection.retry_after == 3600

    later_rejection = limiter.admit("A", now=1.6)
    assert later_rejection.retry_after == 3599

    after_block = limiter.admit("A", now=3600.6)
    assert after_block.allowed
    assert after_block.count == 1


def test_expired_block_keeps_counting_inside_window() -> None:
    limiter = _limiter(max_requests=1, block_seconds=5.0)
    limiter.admit("key", now=0.0)
    limiter.admit("key", now=1.0)

    decision = limiter.admit("key", now=6.0)

    # Block expired exactly at 6.0 and the gap of 5s is inside the window,
    # so the counter continues and the client is blocked again.
    assert decision.allowed is False
    assert decision.count == 3


def test_clients_are_limited_independently() -> None:
    limiter = _limiter(max_requests=2)
    assert limiter.admit("A", now=0.0).allowed
    assert limiter.admit("A", now=0.1).allowed
    assert limiter.admit("A", now=0.2).allowed is False

    decision = limiter.admit("B", now=0.3)

    assert decision.allowed
    assert decision.count == 1
    assert limiter.snapshot("A").count == 3


def test_interleaved_clients_do_not_share_counters() -> None:
    limiter = _limiter(max_requests=3)
    for index in range(3):
        assert limiter.admit("A", now=float(index)).allowed
        assert limiter.admit("B", now=float(index)).allowed
    assert limiter.admit("A", now=4.0).allowed is False
    assert limiter.snapshot("B").count == 3
    assert limiter.snapshot("B").blocked_until is None


def test_missing_client_id_uses_shared_unknown_bucket() -> None:
    limiter = _limiter(max_requests=2)
    limiter.admit(None, now=0.0)
    limiter.admit("", now=0.1)

    assert limiter.snapshot(UNKNOWN_CLIENT).count == 2
    assert limiter.admit(None, now=0.2).allowed is False


def test_sweep_keeps_most_recently_active_entries() -> None:
    limiter = _limiter(max_entries=3)
    for index in range(6):
        limiter.admit(f"client-{index}", now=float(index))

    evicted = limiter.sweep(now=10.0)

    assert evicted == 3
    assert limiter.tracked_clients == 3
    assert limiter.snapshot("client-0") is None
    assert limiter.snapshot("client-2") is None
    for index in (3, 4, 5):
        assert limiter.snapshot(f"client-{index}") is not None


def test_sweep_breaks_ties_by_client_id() -> None:
    limiter = _limiter(max_entries=2)
    for client_id in ("c", "a", "b"):
        limiter.admit(client_id, now=1.0)

    limiter.sweep(now=2.0)

    assert limiter.snapshot("a") is not None
    assert limiter.snapshot("b") is not None
    assert limiter.snapshot("c") is None


def test_sweep_does_nothing_under_capacity() -> None:
    limiter = _limiter(max_entries=10)
    for index in range(5):
        limiter.admit(f"client-{index}", now=float(index))

    assert limiter.sweep(now=100.0) == 0
    assert limiter.tracked_clients == 5


def test_sweep_clears_expired_blocks_only() -> None:
    limiter = _limiter(max_requests=1, block_seconds=10.0)
    limiter.admit("expired", now=0.0)
    limiter.admit("expired", now=0.5)
    limiter.admit("active", now=5.0)
    limiter.admit("active", now=5.5)

    limiter.sweep(now=12.0)

    expired = limiter.snapshot("expired")
    active = limiter.snapshot("active")
    assert expired.blocked_until is None
    assert expired.count == 2
    assert expired.last_request_at == 0.5
    assert active.blocked_until == pytest.approx(15.5)


def test_after_block_expiry_and_sweep_client_gets_fresh_window() -> None:
    limiter = _limiter(max_requests=2, window_seconds=60.0, block_seconds=100.0)
    for now in (0.0, 1.0, 2.0):
        limiter.admit("key", now=now)

    limiter.sweep(now=103.0)
    decision = limiter.admit("key", now=103.0)

    assert decision.allowed
    assert decision.count == 1


def test_snapshot_returns_a_copy() -> None:
    limiter = _limiter()
    limiter.admit("key", now=0.0)
    record = limiter.snapshot("key")
    record.count = 99
    assert limiter.snapshot("key").count == 1


def test_admit_uses_clock_when_now_is_omitted() -> None:
    ticks = iter([0.0, 0.1, 0.2])
    limiter = RateLimiter(max_requests=2, clock=lambda: next(ticks))
    assert limiter.admit("key").allowed
    assert limiter.admit("key").allowed
    assert limiter.admit("key").allowed is False


@pytest.mark.parametrize(
    "overrides",
    [
        {"max_requests": 0},
        {"window_seconds": 0},
        {"block_seconds": -1},
        {"max_entries": 0},
        {"sweep_interval_seconds": 0},
    ],
)
def test_invalid_configuration_is_rejected(overrides) -> None:
    with pytest.raises(ValueError):
        _limiter(**overrides)


def test_concurrent_admits_and_sweeps_lose_no_updates() -> None:
    workers, calls_per_worker = 8, 2000
    keys = [f"client-{index}" for index in range(5)]
    limiter = _limiter(max_requests=workers * calls_per_worker, max_entries=len(keys))
    start = threading.Barrier(workers + 1)
    admits_done = threading.Event()
    sweeps = {"count": 0}

    def admit_many(offset: int) -> None:
        start.wait()
        for index in range(calls_per_worker):
            limiter.admit(keys[(offset + index) % len(keys)], now=0.0)

    def sweep_until_done() -> None:
        start.wait()
        while True:
            limiter.sweep(now=0.0)
            sweeps["count"] += 1
            if admits_done.is_set():
                break

    admitters = [threading.Thread(target=admit_many, args=(n,)) for n in range(workers)]
    sweeper = threading.Thread(target=sweep_until_done)

    switch_interval = sys.getswitchinterval()
    sys.setswitchinterval(1e-6)
    try:
        for thread in [*admitters, sweeper]:
            thread.start()
        for thread in admitters:
            thread.join()
        admits_done.set()
        sweeper.join()
    finally:
        sys.setswitchinterval(switch_interval)

    records = [limiter.snapshot(key) for key in keys]
    assert all(record is not None for record in records)
    assert sum(record.count for record in records) == workers * calls_per_worker
    assert all(record.blocked_until is None for record in records)
    assert sweeps["count"] > 0
