"""Progress estimates used while the render backend cannot be reached."""

from __future__ import annotations

import random
import threading
import time
from collections import OrderedDict
from typing import Callable, Optional, Protocol


# Seconds of estimated rendering time left per missing percentage point.
SECONDS_PER_PERCENT = 2


class ProgressEstimator(Protocol):
    def estimate(self, job_id: str) -> int:
        """Return an estimated completion percentage in ``[0, 100]``."""
        ...


def clamp_progress(value: float) -> int:
    return int(max(0, min(100, round(value))))


def estimate_remaining_seconds(progress: int) -> int:
    return max(0, (100 - progress) * SECONDS_PER_PERCENT)


def format_progress_message(message: str, progress: Optional[float]) -> str:
    """Append a percentage indicator to ``message`` when ``progress`` is known.

    Percentages are clamped to the inclusive range ``[0, 100]``.
    """

    if progress is None:
        return message
    try:
        percent = clamp_progress(float(progress))
    except (TypeError, ValueError):
        return message
    return f"{message} ({percent}%)"


class RandomProgressEstimator:
    """Draw progress uniformly from ``[0, 100]`` on every call.

    Successive polls for the same job are independent, so the reported value
    can go down between polls. Pass a seeded ``random.Random`` for
    reproducible results.
    """

    def __init__(self, rng: Optional[random.Random] = None) -> None:
        self._rng = rng or random.Random()

    def estimate(self, job_id: str) -> int:
        return self._rng.randint(0, 100)


class RampProgressEstimator:
    """Monotonic, time derived progress ramp.

    The first poll for a job id records the current time; later polls report
    the elapsed fraction of ``expected_seconds``. At most ``capacity`` job ids
    are remembered, oldest first out.
    """

    def __init__(
        self,
        *,
        expected_seconds: float = 200.0,
        capacity: int = 1024,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._expected_seconds = max(float(expected_seconds), 1.0)
        self._capacity = max(1, capacity)
        self._clock = clock
        self._first_seen: "OrderedDict[str, float]" = OrderedDict()
        self._lock = threading.Lock()

    def estimate(self, job_id: str) -> int:
        now = self._clock()
        with self._lock:
            started = self._first_seen.get(job_id)
            if started is None:
                started = now
                self._first_seen[job_id] = started
                while len(self._first_seen) > self._capacity:
                    self._first_seen.popitem(last=False)
        elapsed = max(0.0, now - started)
        return clamp_progress(elapsed / self._expected_seconds * 100.0)


def build_estimator(mode: str, *, rng: Optional[random.Random] = None) -> ProgressEstimator:
    """Return the estimator configured by *mode* (``random`` or ``ramp``)."""

    if mode == "ramp":
        return RampProgressEstimator()
    return RandomProgressEstimator(rng)


__all__ = [
    "ProgressEstimator",
    "RampProgressEstimator",
    "RandomProgressEstimator",
    "SECONDS_PER_PERCENT",
    "build_estimator",
    "clamp_progress",
    "estimate_remaining_seconds",
    "format_progress_message",
]
