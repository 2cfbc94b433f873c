"""Render submission, rendered-video download and project forwarding."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Literal, Mapping, Union

from ..errors import BackendUnavailableError, ValidationError
from .backend import BackendProxy, BackendStream
from .naming import build_simulated_job_id

LOGGER = logging.getLogger(__name__)

RenderEngine = Literal["default", "remotion"]

DEFAULT_RENDER_DURATION = 30


def _animations_of_type(animations: List[Any], kind: str) -> List[Any]:
    return [item for item in animations if isinstance(item, Mapping) and item.get("type") == kind]


def build_simulated_render(payload: Mapping[str, Any]) -> Dict[str, Any]:
    """Describe a render that was accepted locally because no backend answered."""

    animations = payload.get("animations") or []
    if not isinstance(animations, list):
        animations = []
    render_job = {
        "id": build_simulated_job_id(),
        "project_name": payload.get("name"),
        "status": "simulated",
        "progress": 100,
        "animations_count": len(animations),
        "duration": payload.get("duration") or DEFAULT_RENDER_DURATION,
        "estimated_time": 0,
        "created_at": datetime.now(timezone.utc).isoformat(),
    }
    return {
        "message": "Simulated render (backend unavailable)",
        "render_job": render_job,
        "note": "Start the render backend for real video processing",
        "instructions": {
            "zoom_animations": _animations_of_type(animations, "zoom"),
            "text_overlays": _animations_of_type(animations, "text"),
            "logo_animations": _animations_of_type(animations, "logo"),
            "background_settings": payload.get("backgroundSettings"),
            "music_settings": payload.get("musicSettings"),
        },
    }


def build_simulated_download(job_id: str) -> Dict[str, Any]:
    return {
        "message": "Video ready for download (simulated)",
        "job_id": job_id,
        "download_url": f"/download/{job_id}",
        "format": "MP4",
        "note": "No real video available: render backend unreachable",
    }


class RenderSubmitter:
    """Front door for starting renders and fetching their output."""

    def __init__(self, backend: BackendProxy) -> None:
        self._backend = backend

    async def submit(self, payload: Mapping[str, Any], engine: RenderEngine = "default") -> Dict[str, Any]:
        name = payload.get("name")
        if not isinstance(name, str) or not name.strip():
            raise ValidationError("missing_name", "Project name is required")

        operation = "render_remotion" if engine == "remotion" else "render"
        try:
            response = await self._backend.forward(operation, dict(payload))
            return response.json()
        except (BackendUnavailableError, ValueError) as error:
            LOGGER.warning("Render backend unavailable for %s: %s", name, error)

        if engine == "remotion":
            return {"message": "Rendering not available"}
        simulated = build_simulated_render(payload)
        LOGGER.info("Simulated render %s for project %s", simulated["render_job"]["id"], name)
        return simulated

    async def download(self, job_id: str) -> Union[BackendStream, Dict[str, Any]]:
        """Return an open video stream, the backend's JSON, or a simulated descriptor."""

        try:
            stream = await self._backend.stream("render_download", job_id)
        except BackendUnavailableError as error:
            LOGGER.warning("Download for job %s unavailable: %s", job_id, error.message)
            return build_simulated_download(job_id)

        if "video/" in stream.content_type:
            return stream
        try:
            result = await stream.read_json()
        except ValueError:
            LOGGER.warning("Backend returned unreadable download info for job %s", job_id)
            return build_simulated_download(job_id)
        return result if isinstance(result, dict) else {"result": result}

    async def list_projects(self) -> Dict[str, Any]:
        try:
            response = await self._backend.forward("projects")
            return response.json()
        except (BackendUnavailableError, ValueError) as error:
            LOGGER.warning("Could not list projects: %s", error)
            return {"projects": [], "message": "Failed to fetch projects"}

    async def create_project(self, payload: Mapping[str, Any]) -> Dict[str, Any]:
        try:
            response = await self._backend.forward("create_project", dict(payload))
        except BackendUnavailableError as error:
            if error.upstream_status is None:
                return {"success": False, "message": "Backend not available"}
            body = error.body if isinstance(error.body, dict) else {}
            raise BackendUnavailableError(
                str(body.get("error") or error.detail or "Error creating project"),
                upstream_status=error.upstream_status,
                body=error.body,
            ) from error
        return response.json()


__all__ = [
    "RenderEngine",
    "RenderSubmitter",
    "build_simulated_download",
    "build_simulated_render",
]
