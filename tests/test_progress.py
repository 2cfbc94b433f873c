import random

import pytest

from render_gateway.services.progress import (
    RampProgressEstimator,
    RandomProgressEstimator,
    build_estimator,
    estimate_remaining_seconds,
    format_progress_message,
)


@pytest.mark.parametrize(
    "progress, expected",
    [
        (None, "Rendering"),
        (-5, "Rendering (0%)"),
        (42.4, "Rendering (42%)"),
        (150, "Rendering (100%)"),
    ],
)
def test_format_progress_message_clamps(progress, expected) -> None:
    assert format_progress_message("Rendering", progress) == expected


def test_estimate_remaining_seconds() -> None:
    assert estimate_remaining_seconds(0) == 200
    assert estimate_remaining_seconds(75) == 50
    assert estimate_remaining_seconds(100) == 0


def test_random_estimator_stays_in_range() -> None:
    estimator = RandomProgressEstimator(random.Random(7))

    values = [estimator.estimate("job") for _ in range(200)]

    assert all(0 <= value <= 100 for value in values)
    assert len(set(values)) > 1


def test_ramp_estimator_is_monotonic_per_job() -> None:
    now = [1000.0]
    estimator = RampProgressEstimator(expected_seconds=100, clock=lambda: now[0])

    assert estimator.estimate("job-a") == 0
    now[0] += 25
    assert estimator.estimate("job-a") == 25
    assert estimator.estimate("job-b") == 0
    now[0] += 500
    assert estimator.estimate("job-a") == 100
    assert estimator.estimate("job-b") == 100


def test_ramp_estimator_forgets_oldest_jobs() -> None:
    now = [0.0]
    estimator = RampProgressEstimator(expected_seconds=10, capacity=1, clock=lambda: now[0])

    estimator.estimate("first")
    now[0] += 5
    estimator.estimate("second")

    assert estimator.estimate("first") == 0


def test_build_estimator_selects_mode() -> None:
    assert isinstance(build_estimator("ramp"), RampProgressEstimator)
    assert isinstance(build_estimator("random"), RandomProgressEstimator)
    assert isinstance(build_estimator("anything"), RandomProgressEstimator)
