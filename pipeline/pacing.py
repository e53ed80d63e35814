"""
Pacing controller: keeps calls to the recognition service under the external rate limit.

Two policies, both thread-safe:
  - IntervalPacer: fixed minimum gap between calls (e.g. 5 RPM -> 12 s gap).
  - WindowPacer: at most N calls in any rolling period.

Scope is either one shared budget ("global") or one budget per credential.
A slot is reserved under the lock (so the shared clock is never raced) and the
caller sleeps outside the lock, so reservations are served in arrival order.
"""

from __future__ import annotations

import logging
import threading
import time
from collections import deque
from typing import Callable

from utils.config import PacingConfig

logger = logging.getLogger(__name__)

GLOBAL_KEY = "__global__"


class IntervalPacer:
    """Minimum gap between consecutive calls on the same scope key."""

    def __init__(
        self,
        min_interval_sec: float,
        *,
        per_credential: bool = False,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._interval = max(0.0, float(min_interval_sec))
        self._per_credential = per_credential
        self._clock = clock
        self._sleep = sleep
        self._lock = threading.Lock()
        self._next_free: dict[str, float] = {}

    @property
    def interval(self) -> float:
        return self._interval

    def _key(self, credential_id: str) -> str:
        return credential_id if self._per_credential else GLOBAL_KEY

    def reserve_slot(self, credential_id: str) -> float:
        key = self._key(credential_id)
        with self._lock:
            now = self._clock()
            slot = max(now, self._next_free.get(key, now))
            self._next_free[key] = slot + self._interval
        wait = slot - now
        if wait > 0:
            logger.info("[RATE LIMITER] %s waiting %.2fs for next slot", key, wait)
            self._sleep(wait)
        return wait


class WindowPacer:
    """At most max_requests calls in any rolling period_sec window per scope key."""

    def __init__(
        self,
        max_requests: int,
        period_sec: float,
        *,
        per_credential: bool = False,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        if max_requests < 1:
            raise ValueError(f"max_requests must be >= 1, got {max_requests}")
        self._max = max_requests
        self._period = float(period_sec)
        self._per_credential = per_credential
        self._clock = clock
        self._sleep = sleep
        self._lock = threading.Lock()
        self._slots: dict[str, deque[float]] = {}

    def _key(self, credential_id: str) -> str:
        return credential_id if self._per_credential else GLOBAL_KEY

    def reserve_slot(self, credential_id: str) -> float:
        key = self._key(credential_id)
        with self._lock:
            now = self._clock()
            slots = self._slots.setdefault(key, deque(maxlen=self._max))
            slot = now
            if slots:
                # Slots stay non-decreasing so reservations are never reordered.
                slot = max(slot, slots[-1])
            if len(slots) == self._max:
                slot = max(slot, slots[0] + self._period)
            slots.append(slot)
        wait = slot - now
        if wait > 0:
            logger.info("[RATE LIMITER] %s window full, waiting %.2fs", key, wait)
            self._sleep(wait)
        return wait


def create_pacer(
    config: PacingConfig,
    *,
    clock: Callable[[], float] = time.monotonic,
    sleep: Callable[[float], None] = time.sleep,
) -> IntervalPacer | WindowPacer:
    per_credential = config.scope == "per_credential"
    if config.mode == "window":
        return WindowPacer(
            config.max_requests,
            config.period_sec,
            per_credential=per_credential,
            clock=clock,
            sleep=sleep,
        )
    return IntervalPacer(
        config.effective_interval(),
        per_credential=per_credential,
        clock=clock,
        sleep=sleep,
    )
