"""Unit tests for the pacing controller: interval and rolling-window policies, global and per-credential scope."""

from __future__ import annotations

import threading

import pytest

from pipeline.pacing import IntervalPacer, WindowPacer, create_pacer
from tests.fakes import FakeClock
from utils.config import PacingConfig


def test_interval_pacer_spaces_calls_by_min_interval() -> None:
    clock = FakeClock()
    pacer = IntervalPacer(12.0, clock=clock, sleep=clock.sleep)
    waits = [pacer.reserve_slot("key-1") for _ in range(3)]
    assert waits == [0.0, 12.0, 24.0]
    assert clock.sleeps == [12.0, 24.0]


def test_interval_pacer_no_wait_after_gap_elapsed() -> None:
    clock = FakeClock()
    pacer = IntervalPacer(12.0, clock=clock, sleep=clock.sleep)
    pacer.reserve_slot("key-1")
    clock.now += 30.0
    assert pacer.reserve_slot("key-1") == 0.0


def test_interval_pacer_global_scope_shares_budget_across_credentials() -> None:
    clock = FakeClock()
    pacer = IntervalPacer(10.0, clock=clock, sleep=clock.sleep)
    assert pacer.reserve_slot("key-1") == 0.0
    assert pacer.reserve_slot("key-2") == 10.0


def test_interval_pacer_per_credential_scope_is_independent() -> None:
    clock = FakeClock()
    pacer = IntervalPacer(10.0, per_credential=True, clock=clock, sleep=clock.sleep)
    assert pacer.reserve_slot("key-1") == 0.0
    assert pacer.reserve_slot("key-2") == 0.0
    assert pacer.reserve_slot("key-1") == 10.0


def test_interval_pacer_concurrent_reservations_get_distinct_slots() -> None:
    """Reservations from many threads never share a slot."""
    clock = FakeClock()
    pacer = IntervalPacer(5.0, clock=clock, sleep=clock.sleep)
    waits: list[float] = []
    lock = threading.Lock()

    def worker() -> None:
        w = pacer.reserve_slot("key-1")
        with lock:
            waits.append(w)

    threads = [threading.Thread(target=worker) for _ in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    assert sorted(waits) == [i * 5.0 for i in range(8)]


def test_window_pacer_allows_burst_then_waits_for_window() -> None:
    clock = FakeClock()
    pacer = WindowPacer(3, 60.0, clock=clock, sleep=clock.sleep)
    assert [pacer.reserve_slot("k") for _ in range(3)] == [0.0, 0.0, 0.0]
    assert pacer.reserve_slot("k") == 60.0


def test_window_pacer_never_exceeds_max_in_any_window() -> None:
    clock = FakeClock(start=0.0)
    pacer = WindowPacer(2, 10.0, clock=clock, sleep=clock.sleep)
    slots = []
    for _ in range(6):
        slots.append(clock.now + pacer.reserve_slot("k"))
        clock.now += 1.0
    for s in slots:
        assert sum(1 for t in slots if s <= t < s + 10.0) <= 2


def test_window_pacer_rejects_zero_budget() -> None:
    with pytest.raises(ValueError):
        WindowPacer(0, 60.0)


def test_create_pacer_from_config() -> None:
    interval = create_pacer(PacingConfig(mode="interval", max_requests=5, period_sec=60))
    assert isinstance(interval, IntervalPacer)
    assert interval.interval == 12.0
    window = create_pacer(PacingConfig(mode="window", scope="per_credential"))
    assert isinstance(window, WindowPacer)
