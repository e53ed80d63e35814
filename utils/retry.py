"""Exponential backoff with jitter between retry rounds. No global state."""

from __future__ import annotations

import logging
import random
import time
from dataclasses import dataclass, field
from typing import Callable

logger = logging.getLogger(__name__)


@dataclass
class BackoffPolicy:
    """
    delay(round) = base * multiplier ** (round - 1) + uniform(0, jitter).
    Grows monotonically in expectation; jitter spreads retries of jobs that failed together.
    """

    base_sec: float = 2.0
    multiplier: float = 2.0
    jitter_sec: float = 1.0
    rng: random.Random = field(default_factory=random.Random)
    sleep: Callable[[float], None] = time.sleep

    def delay(self, round_no: int) -> float:
        if round_no < 1:
            raise ValueError(f"round_no must be >= 1, got {round_no}")
        base = self.base_sec * (self.multiplier ** (round_no - 1))
        jitter = self.rng.uniform(0.0, self.jitter_sec) if self.jitter_sec > 0 else 0.0
        return base + jitter

    def wait(self, round_no: int, label: str = "") -> float:
        """Sleep for delay(round_no); returns the seconds slept."""
        wait = self.delay(round_no)
        logger.warning("Backoff %s after round %s: sleeping %.2fs", label, round_no, wait)
        self.sleep(wait)
        return wait
