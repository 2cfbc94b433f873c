"""Validation and persistence of uploaded media files."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, BinaryIO, Dict, FrozenSet, Optional

from ..errors import BackendUnavailableError, ValidationError
from .backend import BackendProxy
from .content_types import MediaKind, resolve_content_type
from .media_store import BlobStore, too_large_error
from .naming import build_upload_name

LOGGER = logging.getLogger(__name__)

VIDEO_CONTENT_TYPES: FrozenSet[str] = frozenset(
    {"video/mp4", "video/mov", "video/quicktime", "video/avi", "video/webm"}
)


@dataclass(frozen=True)
class UploadRequest:
    """An incoming file as declared by the client."""

    filename: Optional[str]
    content_type: Optional[str]
    stream: Optional[BinaryIO]
    size: Optional[int] = None


@dataclass(frozen=True)
class UploadPolicy:
    """Which declared MIME types are accepted and how large a file may be."""

    kind: MediaKind
    max_bytes: Optional[int] = None
    type_prefix: Optional[str] = None
    allowed_types: FrozenSet[str] = field(default_factory=frozenset)
    type_error: str = "Unsupported file type"

    @classmethod
    def for_audio(cls, max_bytes: Optional[int]) -> "UploadPolicy":
        return cls(
            kind="audio",
            max_bytes=max_bytes,
            type_prefix="audio/",
            type_error="File must be an audio file",
        )

    @classmethod
    def for_video(cls, max_bytes: Optional[int]) -> "UploadPolicy":
        return cls(
            kind="video",
            max_bytes=max_bytes,
            allowed_types=VIDEO_CONTENT_TYPES,
            type_error="Unsupported format. Use MP4, MOV, AVI or WebM",
        )

    def accepts(self, content_type: Optional[str]) -> bool:
        declared = (content_type or "").strip().lower()
        if not declared:
            return False
        if self.type_prefix is not None:
            return declared.startswith(self.type_prefix)
        # Browsers report recordings as e.g. ``video/webm;codecs=vp9``.
        base_type = declared.split(";", 1)[0].strip()
        return base_type in self.allowed_types

    def validate(self, request: UploadRequest) -> None:
        """Raise :class:`ValidationError` when *request* breaks this policy."""

        if request.stream is None or not (request.filename or "").strip():
            raise ValidationError("missing_file", "No file provided")
        if not self.accepts(request.content_type):
            raise ValidationError("wrong_type", self.type_error)
        if self.max_bytes and request.size is not None and request.size > self.max_bytes:
            raise too_large_error(self.max_bytes)


@dataclass(frozen=True)
class MediaAsset:
    """A persisted upload and the URL it can be fetched from."""

    filename: str
    original_name: str
    content_type: str
    declared_type: str
    size: int
    url: str
    storage_location: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "filename": self.filename,
            "originalName": self.original_name,
            "size": self.size,
            "contentType": self.content_type,
            "url": self.url,
        }


class UploadIngestor:
    """Validate an :class:`UploadRequest` against a policy and store it."""

    def __init__(self, store: BlobStore, policy: UploadPolicy) -> None:
        self._store = store
        self._policy = policy

    @property
    def policy(self) -> UploadPolicy:
        return self._policy

    async def ingest(self, request: UploadRequest) -> MediaAsset:
        self._policy.validate(request)

        original_name = (request.filename or "").strip()
        name = build_upload_name(original_name)
        content_type = resolve_content_type(name, self._policy.kind)
        stored = await self._store.save(
            name,
            request.stream,  # type: ignore[arg-type]
            content_type=content_type,
            limit=self._policy.max_bytes,
        )
        LOGGER.info(
            "Ingested %s upload %s (%s bytes) as %s",
            self._policy.kind,
            original_name,
            stored.size,
            name,
        )
        return MediaAsset(
            filename=name,
            original_name=original_name,
            content_type=content_type,
            declared_type=(request.content_type or "").strip(),
            size=stored.size,
            url=stored.url,
            storage_location=stored.location,
        )


class BackendUploadForwarder:
    """Validate a video upload and hand it to the render backend as multipart.

    A backend failure does not fail the upload: the client keeps its local
    copy and is told that no backend response is available.
    """

    def __init__(self, backend: BackendProxy, policy: UploadPolicy) -> None:
        self._backend = backend
        self._policy = policy

    async def forward(self, request: UploadRequest) -> Dict[str, Any]:
        self._policy.validate(request)
        filename = (request.filename or "").strip()
        result: Dict[str, Any] = {
            "success": True,
            "filename": filename,
            "size": request.size,
            "content_type": request.content_type,
        }
        try:
            response = await self._backend.forward(
                "upload",
                files={"file": (filename, request.stream, request.content_type)},
            )
            backend_response = response.json()
        except (BackendUnavailableError, ValueError) as error:
            LOGGER.warning("Backend upload of %s failed, continuing without it: %s", filename, error)
            result.update(message="File uploaded (frontend only)", backend_response=None)
            return result
        result.update(message="File uploaded successfully", backend_response=backend_response)
        return result


__all__ = [
    "BackendUploadForwarder",
    "MediaAsset",
    "UploadIngestor",
    "UploadPolicy",
    "UploadRequest",
    "VIDEO_CONTENT_TYPES",
]
