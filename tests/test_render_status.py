import asyncio
import random

import httpx
import pytest

from render_gateway.errors import InternalError
from render_gateway.services.progress import RandomProgressEstimator
from render_gateway.services.render_status import (
    DEGRADED_NOTE,
    JobStatusResolver,
    RenderJob,
    estimated_job,
)


class FixedEstimator:
    def __init__(self, value: int) -> None:
        self.value = value
        self.calls = []

    def estimate(self, job_id: str) -> int:
        self.calls.append(job_id)
        return self.value


def _failing_handler(request: httpx.Request) -> httpx.Response:
    raise AssertionError(f"unexpected backend call to {request.url}")


def test_backend_status_is_passed_through_verbatim(make_backend) -> None:
    upstream = {"job_id": "abc", "status": "processing", "progress": 37, "extra": {"fps": 30}}

    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/api/render/status/abc"
        return httpx.Response(200, json=upstream)

    resolver = JobStatusResolver(make_backend(handler), estimator=FixedEstimator(5))

    assert asyncio.run(resolver.resolve("abc")) == upstream


def test_simulated_jobs_never_contact_backend(make_backend) -> None:
    resolver = JobStatusResolver(make_backend(_failing_handler))

    result = asyncio.run(resolver.resolve("sim_1700000000000"))

    assert result["job_id"] == "sim_1700000000000"
    assert result["status"] == "completed"
    assert result["progress"] == 100
    assert result["estimated_remaining"] == 0
    assert result["output_url"] is None
    assert "Simulated" in result["note"]


def test_unreachable_backend_returns_estimate(make_backend) -> None:
    estimator = FixedEstimator(40)
    resolver = JobStatusResolver(make_backend(), estimator=estimator)

    result = asyncio.run(resolver.resolve("job-7"))

    assert estimator.calls == ["job-7"]
    assert result == {
        "job_id": "job-7",
        "status": "processing",
        "progress": 40,
        "message": "Rendering video (40%)",
        "estimated_remaining": 120,
        "output_url": None,
        "note": DEGRADED_NOTE,
    }


def test_upstream_error_status_also_degrades(make_backend) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(502, text="bad gateway")

    resolver = JobStatusResolver(make_backend(handler), estimator=FixedEstimator(100))

    result = asyncio.run(resolver.resolve("job-9"))

    assert result["status"] == "completed"
    assert result["estimated_remaining"] == 0
    assert result["output_url"] == "/download/job-9"


def test_unreadable_backend_body_degrades(make_backend) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, text="<html>oops</html>")

    resolver = JobStatusResolver(make_backend(handler), estimator=FixedEstimator(0))

    result = asyncio.run(resolver.resolve("job-3"))

    assert result["progress"] == 0
    assert result["estimated_remaining"] == 200


def test_invalid_estimate_becomes_internal_error(make_backend) -> None:
    resolver = JobStatusResolver(make_backend(), estimator=FixedEstimator(140))

    with pytest.raises(InternalError):
        asyncio.run(resolver.resolve("job-4"))


def test_render_job_invariants() -> None:
    with pytest.raises(ValueError):
        RenderJob("x", "processing", 50, "msg", 100, output_url="/download/x")
    with pytest.raises(ValueError):
        RenderJob("x", "processing", 101, "msg", 0)
    with pytest.raises(ValueError):
        RenderJob("x", "processing", 50, "msg", -1)


def test_estimated_job_remaining_time_tracks_progress() -> None:
    job = estimated_job("job", 90)

    assert job.estimated_remaining == 20
    assert job.status == "processing"
    assert job.output_url is None


@pytest.mark.parametrize("body", [["not", "a", "job"], "done", None, 42])
def test_non_object_backend_body_degrades(make_backend, body) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json=body)

    resolver = JobStatusResolver(make_backend(handler), estimator=FixedEstimator(30))

    result = asyncio.run(resolver.resolve("job-6"))

    assert result["job_id"] == "job-6"
    assert result["status"] == "processing"
    assert result["progress"] == 30
    assert result["note"] == DEGRADED_NOTE


def test_default_random_estimate_keeps_status_consistent(make_backend) -> None:
    resolver = JobStatusResolver(make_backend(), estimator=RandomProgressEstimator(random.Random(11)))

    async def _poll():
        return [await resolver.resolve("job-r") for _ in range(300)]

    results = asyncio.run(_poll())

    for result in results:
        assert 0 <= result["progress"] <= 100
        assert (result["status"] == "completed") == (result["progress"] >= 100)
        assert (result["output_url"] is not None) == (result["status"] == "completed")
        assert result["estimated_remaining"] == max(0, (100 - result["progress"]) * 2)
    assert {result["status"] for result in results} <= {"processing", "completed"}
