"""FastAPI application serving media assets and render job status."""

from __future__ import annotations

import contextvars
import logging
import uuid
from typing import Any, AsyncIterator, Dict, Optional, Tuple, Union

from fastapi import Body, FastAPI, File, Request, UploadFile
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse, JSONResponse, StreamingResponse
from pydantic import BaseModel
from starlette.types import ASGIApp, Receive, Scope, Send

from ..config import AppConfig
from ..errors import (
    BackendUnavailableError,
    GatewayError,
    InternalError,
    NotFoundError,
    ValidationError,
)
from ..services.backend import BackendProxy, BackendStream
from ..services.content_types import resolve_content_type
from ..services.events import emit_structured_event
from ..services.ingestion import (
    BackendUploadForwarder,
    UploadIngestor,
    UploadPolicy,
    UploadRequest,
)
from ..services.media_store import BlobStore, HttpBlobStore, MediaStore
from ..services.progress import ProgressEstimator, build_estimator
from ..services.render_jobs import RenderSubmitter
from ..services.render_status import JobStatusResolver
from ..services.voiceover import VoiceoverService

IMMUTABLE_CACHE_CONTROL = "public, max-age=31536000, immutable"
LONG_CACHE_CONTROL = "public, max-age=31536000"
SHORT_CACHE_CONTROL = "public, max-age=3600"


_REQUEST_ID_VAR: contextvars.ContextVar[Optional[str]] = contextvars.ContextVar(
    "render_gateway_request_id",
    default=None,
)
_JOB_ID_VAR: contextvars.ContextVar[Optional[str]] = contextvars.ContextVar(
    "render_gateway_job_id",
    default=None,
)


def _new_correlation_id() -> str:
    return uuid.uuid4().hex


def _collect_correlation_context() -> Dict[str, str]:
    context: Dict[str, str] = {}
    request_id = _REQUEST_ID_VAR.get()
    if request_id:
        context["request_id"] = str(request_id)
    job_id = _JOB_ID_VAR.get()
    if job_id:
        context["job_id"] = str(job_id)
    return context


class ContextualLoggerAdapter(logging.LoggerAdapter):
    """Logger adapter that injects correlation context into records."""

    def process(self, msg: Any, kwargs: Dict[str, Any]) -> Tuple[Any, Dict[str, Any]]:  # type: ignore[override]
        extra: Dict[str, Any] = dict(self.extra or {})
        provided = kwargs.get("extra")
        if isinstance(provided, dict):
            extra.update(provided)
        for key, value in _collect_correlation_context().items():
            extra.setdefault(key, value)
        kwargs["extra"] = extra
        return msg, kwargs


LOGGER = ContextualLoggerAdapter(logging.getLogger(__name__), {})
EVENT_LOGGER = ContextualLoggerAdapter(logging.getLogger("render_gateway.events"), {})


def _log_event(message: str, **context: Any) -> None:
    emit_structured_event(
        "APP_EVENT",
        message,
        payload=context,
        correlation=_collect_correlation_context(),
        logger=EVENT_LOGGER,
    )


class RequestContextMiddleware:
    """Assign a correlation identifier to each request and expose it via contextvars."""

    def __init__(self, app: ASGIApp) -> None:
        self.app = app

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope.get("type") != "http":
            await self.app(scope, receive, send)
            return

        request_id = _new_correlation_id()
        scope_state = scope.get("state")
        if scope_state is None:
            scope_state = {}
            scope["state"] = scope_state
        if isinstance(scope_state, dict):
            scope_state["request_id"] = request_id
        else:
            setattr(scope_state, "request_id", request_id)

        request_token = _REQUEST_ID_VAR.set(request_id)
        job_token = _JOB_ID_VAR.set(None)
        try:
            await self.app(scope, receive, send)
        finally:
            _JOB_ID_VAR.reset(job_token)
            _REQUEST_ID_VAR.reset(request_token)


class VoiceoverPayload(BaseModel):
    text: Optional[str] = None
    speaker_id: Optional[str] = None


def _upload_request(file: Any) -> UploadRequest:
    if not isinstance(file, UploadFile):
        return UploadRequest(filename=None, content_type=None, stream=None)
    return UploadRequest(
        filename=file.filename,
        content_type=file.content_type,
        stream=file.file,
        size=getattr(file, "size", None),
    )


def _attachment_header(filename: str) -> str:
    safe = filename.replace('"', "").replace("\r", "").replace("\n", "")
    return f'attachment; filename="{safe}"'


async def _relay(stream: BackendStream) -> AsyncIterator[bytes]:
    try:
        async for chunk in stream.iter_bytes():
            yield chunk
    finally:
        await stream.aclose()


def _stream_response(
    stream: BackendStream,
    *,
    media_type: str,
    headers: Dict[str, str],
) -> StreamingResponse:
    response_headers = dict(headers)
    if stream.content_length:
        response_headers["Content-Length"] = stream.content_length
    return StreamingResponse(_relay(stream), media_type=media_type, headers=response_headers)


def _build_blob_store(config: AppConfig, video_store: MediaStore) -> BlobStore:
    if config.blob_store_url:
        return HttpBlobStore(
            config.blob_store_url,
            token=config.blob_store_token,
            timeout=max(config.backend_timeout, 30.0),
        )
    return video_store


def create_app(
    config: AppConfig,
    *,
    backend: Optional[BackendProxy] = None,
    blob_store: Optional[BlobStore] = None,
    estimator: Optional[ProgressEstimator] = None,
    root_path: str | None = None,
) -> FastAPI:
    """Return a configured FastAPI application.

    Collaborators are injected so tests can swap the render backend transport,
    the video blob store and the fallback progress estimator.
    """

    app = FastAPI(
        title="Render Gateway",
        description="Render job status and media delivery",
        root_path=root_path or "",
    )
    app.add_middleware(RequestContextMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET", "POST"],
        allow_headers=["*"],
    )

    backend = backend or BackendProxy(config.backend_url, timeout=config.backend_timeout)
    audio_store = MediaStore(config.audio_root, url_prefix="/audio")
    video_store = MediaStore(config.video_root, url_prefix="/video")
    music_store = MediaStore(config.music_root, url_prefix="/music")
    video_policy = UploadPolicy.for_video(config.max_video_upload_bytes)

    audio_ingestor = UploadIngestor(audio_store, UploadPolicy.for_audio(config.max_audio_upload_bytes))
    video_ingestor = UploadIngestor(blob_store or _build_blob_store(config, video_store), video_policy)
    upload_forwarder = BackendUploadForwarder(backend, video_policy)
    resolver = JobStatusResolver(
        backend,
        estimator=estimator or build_estimator(config.fallback_progress),
    )
    voiceover = VoiceoverService(backend)
    submitter = RenderSubmitter(backend)

    app.state.config = config
    app.state.backend = backend
    app.state.resolver = resolver

    @app.exception_handler(GatewayError)
    async def handle_gateway_error(request: Request, error: GatewayError) -> JSONResponse:
        status_code = error.http_status
        if isinstance(error, InternalError):
            LOGGER.error("Internal error on %s: %s", request.url.path, error.__cause__ or error)
        elif isinstance(error, BackendUnavailableError):
            LOGGER.warning(
                "Backend failure on %s (upstream status %s): %s",
                request.url.path,
                error.upstream_status,
                error.message,
            )
        else:
            LOGGER.info("Rejected %s with %s: %s", request.url.path, status_code, error.message)
        return JSONResponse(error.to_payload(), status_code=status_code)

    @app.exception_handler(RequestValidationError)
    async def handle_request_validation_error(
        request: Request, error: RequestValidationError
    ) -> JSONResponse:
        problems = error.errors()
        first = problems[0] if problems else {}
        location = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
        message = str(first.get("msg") or "Invalid request")
        if location:
            message = f"{location}: {message}"
        LOGGER.info("Rejected malformed request to %s: %s", request.url.path, message)
        invalid = ValidationError("invalid_request", message)
        return JSONResponse(invalid.to_payload(), status_code=invalid.http_status)

    @app.exception_handler(Exception)
    async def handle_unexpected_error(request: Request, error: Exception) -> JSONResponse:
        LOGGER.exception("Unhandled error on %s", request.url.path, exc_info=error)
        return JSONResponse(InternalError().to_payload(), status_code=500)

    @app.get("/health")
    async def health() -> Dict[str, str]:
        return {"status": "ok"}

    @app.get("/audio/{filename}")
    async def serve_audio(filename: str) -> FileResponse:
        target = audio_store.locate(filename)
        content_type = resolve_content_type(filename)
        _log_event("Serving audio", filename=filename, content_type=content_type)
        return FileResponse(
            target,
            media_type=content_type,
            headers={
                "Accept-Ranges": "bytes",
                "Cache-Control": IMMUTABLE_CACHE_CONTROL,
            },
        )

    @app.get("/video/{filename}")
    async def serve_video(filename: str) -> FileResponse:
        target = video_store.locate(filename)
        return FileResponse(
            target,
            media_type=resolve_content_type(filename, "video"),
            headers={
                "Accept-Ranges": "bytes",
                "Cache-Control": IMMUTABLE_CACHE_CONTROL,
            },
        )

    @app.get("/music/{path:path}")
    async def serve_music(path: str) -> FileResponse:
        target = music_store.locate(path)
        try:
            with target.open("rb"):
                pass
        except OSError as error:
            raise InternalError("Server error") from error
        return FileResponse(
            target,
            media_type=resolve_content_type(path),
            headers={"Cache-Control": SHORT_CACHE_CONTROL},
        )

    @app.get("/bg-images")
    async def list_background_images() -> JSONResponse:
        try:
            response = await backend.forward("bg_images")
            images = response.json()
        except (BackendUnavailableError, ValueError) as error:
            raise InternalError("Failed to fetch background images") from error
        return JSONResponse(images)

    @app.get("/bg-images/{filename}")
    async def fetch_background_image(filename: str) -> StreamingResponse:
        try:
            stream = await backend.stream("bg_image", filename)
        except BackendUnavailableError as error:
            if error.upstream_status is not None:
                raise NotFoundError("Image not found") from error
            raise InternalError("Failed to serve image") from error
        return _stream_response(
            stream,
            media_type=resolve_content_type(filename, "image"),
            headers={"Cache-Control": LONG_CACHE_CONTROL},
        )

    @app.get("/download/audio/{filename}")
    async def download_audio(filename: str) -> StreamingResponse:
        try:
            stream = await backend.stream("audio_download", filename)
        except BackendUnavailableError as error:
            if error.upstream_status is not None:
                raise NotFoundError("Audio file not found") from error
            raise
        return _stream_response(
            stream,
            media_type=resolve_content_type(filename),
            headers={
                "Content-Disposition": _attachment_header(filename),
                "Cache-Control": SHORT_CACHE_CONTROL,
            },
        )

    @app.get("/download/{job_id}", response_model=None)
    async def download_render(job_id: str) -> Union[StreamingResponse, Dict[str, Any]]:
        _JOB_ID_VAR.set(job_id)
        result = await submitter.download(job_id)
        if isinstance(result, BackendStream):
            return _stream_response(
                result,
                media_type="video/mp4",
                headers={"Content-Disposition": _attachment_header(f"render_{job_id}.mp4")},
            )
        return result

    @app.get("/render/{job_id}")
    async def render_status(job_id: str) -> Dict[str, Any]:
        _JOB_ID_VAR.set(job_id)
        return await resolver.resolve(job_id)

    @app.post("/render")
    async def start_render(payload: Dict[str, Any] = Body(...)) -> Dict[str, Any]:
        return await submitter.submit(payload)

    @app.post("/render/remotion")
    async def start_remotion_render(payload: Dict[str, Any] = Body(...)) -> Dict[str, Any]:
        return await submitter.submit(payload, engine="remotion")

    @app.get("/projects")
    async def list_projects() -> Dict[str, Any]:
        return await submitter.list_projects()

    @app.post("/projects")
    async def create_project(payload: Dict[str, Any] = Body(...)) -> Dict[str, Any]:
        return await submitter.create_project(payload)

    @app.post("/upload/audio")
    async def upload_audio(file: Optional[UploadFile] = File(None)) -> Dict[str, Any]:
        try:
            asset = await audio_ingestor.ingest(_upload_request(file))
        finally:
            if file is not None:
                await file.close()
        _log_event("Audio uploaded", filename=asset.filename, size=asset.size)
        return {
            "message": "Audio uploaded successfully",
            "filename": asset.filename,
            "originalName": asset.original_name,
            "size": asset.size,
            "contentType": asset.content_type,
            "audioUrl": asset.url,
        }

    @app.post("/video/upload")
    async def upload_video(file: Optional[UploadFile] = File(None)) -> Dict[str, Any]:
        try:
            asset = await video_ingestor.ingest(_upload_request(file))
        finally:
            if file is not None:
                await file.close()
        _log_event("Video uploaded", filename=asset.filename, size=asset.size, url=asset.url)
        return {
            "url": asset.url,
            "filename": asset.filename,
            "size": asset.size,
            "type": asset.content_type,
        }

    @app.post("/upload")
    async def upload_to_backend(file: Optional[UploadFile] = File(None)) -> Dict[str, Any]:
        try:
            return await upload_forwarder.forward(_upload_request(file))
        finally:
            if file is not None:
                await file.close()

    @app.post("/voiceover/generate")
    async def generate_voiceover(payload: VoiceoverPayload) -> Dict[str, Any]:
        result = await voiceover.generate(payload.text, payload.speaker_id)
        return result.to_dict()

    return app


__all__ = ["create_app"]
