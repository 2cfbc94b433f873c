"""Resolve the status of a render job, degrading gracefully without a backend."""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass
from typing import Any, Dict, Literal, Optional

from ..errors import BackendUnavailableError, InternalError
from .backend import BackendProxy
from .events import emit_job_event
from .progress import (
    ProgressEstimator,
    RandomProgressEstimator,
    estimate_remaining_seconds,
    format_progress_message,
)

LOGGER = logging.getLogger(__name__)

JobState = Literal["pending", "processing", "completed", "failed"]

SIMULATED_PREFIX = "sim_"
SIMULATED_NOTE = "Simulated render: this job was never submitted to a render backend"
DEGRADED_NOTE = "Render backend unavailable; progress is an estimate"


def is_simulated_job(job_id: str) -> bool:
    return job_id.startswith(SIMULATED_PREFIX)


def download_path(job_id: str) -> str:
    return f"/download/{job_id}"


@dataclass(frozen=True)
class RenderJob:
    """Caller facing view of a render job."""

    job_id: str
    status: JobState
    progress: int
    message: str
    estimated_remaining: int
    output_url: Optional[str] = None
    note: Optional[str] = None

    def __post_init__(self) -> None:
        if self.output_url is not None and self.status != "completed":
            raise ValueError("output_url is only set for completed jobs")
        if not 0 <= self.progress <= 100:
            raise ValueError("progress must be within [0, 100]")
        if self.estimated_remaining < 0:
            raise ValueError("estimated_remaining must not be negative")

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def simulated_job(job_id: str) -> RenderJob:
    return RenderJob(
        job_id=job_id,
        status="completed",
        progress=100,
        message="Simulated render completed",
        estimated_remaining=0,
        output_url=None,
        note=SIMULATED_NOTE,
    )


def estimated_job(job_id: str, progress: int) -> RenderJob:
    completed = progress >= 100
    return RenderJob(
        job_id=job_id,
        status="completed" if completed else "processing",
        progress=progress,
        message=(
            "Render completed"
            if completed
            else format_progress_message("Rendering video", progress)
        ),
        estimated_remaining=estimate_remaining_seconds(progress),
        output_url=download_path(job_id) if completed else None,
        note=DEGRADED_NOTE,
    )


class JobStatusResolver:
    """Produce a well-formed status view for a job id on every call.

    The backend's answer is authoritative and passed through verbatim. When it
    cannot be obtained the resolver answers from an estimate instead of
    failing; simulated (``sim_``) jobs are always reported as completed.
    """

    def __init__(
        self,
        backend: BackendProxy,
        *,
        estimator: Optional[ProgressEstimator] = None,
    ) -> None:
        self._backend = backend
        self._estimator = estimator or RandomProgressEstimator()

    async def resolve(self, job_id: str) -> Dict[str, Any]:
        try:
            job_id.encode("utf-8")
        except UnicodeEncodeError as error:
            LOGGER.error("Cannot resolve status for undecodable job id %r", job_id)
            raise InternalError() from error

        if is_simulated_job(job_id):
            emit_job_event(job_id, "Reporting simulated job as completed")
            return simulated_job(job_id).to_dict()

        try:
            response = await self._backend.forward("status", job_id)
            payload = response.json()
        except BackendUnavailableError as error:
            LOGGER.warning("Status for job %s unavailable, estimating: %s", job_id, error.message)
            return self._degraded(job_id)
        except ValueError:
            LOGGER.warning("Backend returned unreadable status for job %s, estimating", job_id)
            return self._degraded(job_id)
        if not isinstance(payload, dict):
            LOGGER.warning(
                "Backend returned a %s instead of a status object for job %s, estimating",
                type(payload).__name__,
                job_id,
            )
            return self._degraded(job_id)

        emit_job_event(job_id, "Backend status received", payload={"status": payload.get("status")})
        return payload

    def _degraded(self, job_id: str) -> Dict[str, Any]:
        try:
            job = estimated_job(job_id, self._estimator.estimate(job_id))
        except (TypeError, ValueError) as error:
            LOGGER.exception("Could not build estimated status for job %s", job_id)
            raise InternalError() from error
        emit_job_event(
            job_id,
            "Estimated status while backend unavailable",
            payload={"status": job.status, "progress": job.progress},
            level=logging.WARNING,
        )
        return job.to_dict()


__all__ = [
    "JobStatusResolver",
    "RenderJob",
    "SIMULATED_PREFIX",
    "download_path",
    "estimated_job",
    "is_simulated_job",
    "simulated_job",
]
