"""Media delivery and render job services."""

from .backend import BackendProxy, BackendStream
from .content_types import resolve_content_type
from .ingestion import (
    BackendUploadForwarder,
    MediaAsset,
    UploadIngestor,
    UploadPolicy,
    UploadRequest,
)
from .media_store import HttpBlobStore, MediaStore, StoredMedia
from .progress import RampProgressEstimator, RandomProgressEstimator, build_estimator
from .render_jobs import RenderSubmitter
from .render_status import JobStatusResolver, RenderJob
from .voiceover import VoiceoverResult, VoiceoverService

__all__ = [
    "BackendProxy",
    "BackendStream",
    "BackendUploadForwarder",
    "HttpBlobStore",
    "JobStatusResolver",
    "MediaAsset",
    "MediaStore",
    "RampProgressEstimator",
    "RandomProgressEstimator",
    "RenderJob",
    "RenderSubmitter",
    "StoredMedia",
    "UploadIngestor",
    "UploadPolicy",
    "UploadRequest",
    "VoiceoverResult",
    "VoiceoverService",
    "build_estimator",
    "resolve_content_type",
]
