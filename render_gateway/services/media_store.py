"""Storage backends for uploaded media.

:class:`MediaStore` keeps files on the local filesystem below a fixed root and
is used for uploaded audio (and for video when no blob API is configured).
:class:`HttpBlobStore` pushes video uploads to an external blob service and
returns the public URL it hands back.
"""

from __future__ import annotations

import asyncio
import contextlib
import functools
import logging
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any, AsyncIterator, BinaryIO, Dict, Optional, Protocol

import httpx

from ..errors import BackendUnavailableError, NotFoundError, ValidationError
from .events import emit_file_event

LOGGER = logging.getLogger(__name__)

DEFAULT_CHUNK_SIZE = 1024 * 1024


def _format_limit(limit: int) -> str:
    return f"{limit // (1024 * 1024)}MB"


def too_large_error(limit: int) -> ValidationError:
    return ValidationError("too_large", f"File too large. Maximum {_format_limit(limit)}")


@dataclass(frozen=True)
class StoredMedia:
    """Where a persisted upload ended up."""

    filename: str
    url: str
    location: str
    size: int


class BlobStore(Protocol):
    async def save(
        self,
        name: str,
        source: BinaryIO,
        *,
        content_type: str,
        limit: Optional[int] = None,
    ) -> StoredMedia:
        ...


class MediaStore:
    """Filesystem-backed media storage rooted at a single directory."""

    def __init__(self, root: Path, *, url_prefix: str, chunk_size: int = DEFAULT_CHUNK_SIZE) -> None:
        self._root = Path(root)
        self._url_prefix = "/" + url_prefix.strip("/")
        self._chunk_size = chunk_size

    @property
    def root(self) -> Path:
        return self._root

    def url_for(self, name: str) -> str:
        return f"{self._url_prefix}/{name}"

    def path_for(self, name: str) -> Path:
        """Return the storage path for *name*, refusing names outside the root."""

        if not name:
            raise NotFoundError("File not found")
        root = self._root.resolve()
        try:
            candidate = (root / name).resolve()
        except (OSError, ValueError) as error:
            # Embedded NUL bytes and over-long names cannot exist on disk.
            raise NotFoundError("File not found") from error
        if candidate == root or root not in candidate.parents:
            raise NotFoundError("File not found")
        return candidate

    def locate(self, name: str) -> Path:
        """Return the path of an existing asset or raise :class:`NotFoundError`."""

        target = self.path_for(name)
        try:
            found = target.is_file()
        except (OSError, ValueError) as error:
            raise NotFoundError("File not found") from error
        if not found:
            raise NotFoundError("File not found")
        return target

    def write(self, name: str, source: BinaryIO, *, limit: Optional[int] = None) -> int:
        """Copy *source* into the store and return the number of bytes written.

        The copy is chunked; once more than *limit* bytes arrive the partial
        file is removed and ``ValidationError("too_large")`` is raised.
        """

        target = self.path_for(name)
        target.parent.mkdir(parents=True, exist_ok=True)
        if hasattr(source, "seek"):
            with contextlib.suppress(OSError, ValueError):
                source.seek(0)

        written = 0
        start = time.perf_counter()
        try:
            with target.open("wb") as buffer:
                while True:
                    chunk = source.read(self._chunk_size)
                    if not chunk:
                        break
                    written += len(chunk)
                    if limit is not None and limit > 0 and written > limit:
                        raise too_large_error(limit)
                    buffer.write(chunk)
        except BaseException:
            target.unlink(missing_ok=True)
            raise

        emit_file_event(
            "Stored upload",
            payload={"path": target, "bytes": written},
            duration_ms=(time.perf_counter() - start) * 1000.0,
        )
        return written

    async def save(
        self,
        name: str,
        source: BinaryIO,
        *,
        content_type: str = "",
        limit: Optional[int] = None,
    ) -> StoredMedia:
        """Persist *source* without blocking the event loop."""

        loop = asyncio.get_running_loop()
        copy_operation = functools.partial(self.write, name, source, limit=limit)
        size = await loop.run_in_executor(None, copy_operation)
        return StoredMedia(
            filename=name,
            url=self.url_for(name),
            location=str(self.path_for(name)),
            size=size,
        )


async def _iter_chunks(
    source: BinaryIO,
    *,
    limit: Optional[int],
    chunk_size: int,
    counter: Dict[str, int],
) -> AsyncIterator[bytes]:
    loop = asyncio.get_running_loop()
    if hasattr(source, "seek"):
        with contextlib.suppress(OSError, ValueError):
            source.seek(0)
    while True:
        chunk = await loop.run_in_executor(None, source.read, chunk_size)
        if not chunk:
            return
        counter["bytes"] += len(chunk)
        if limit is not None and limit > 0 and counter["bytes"] > limit:
            raise too_large_error(limit)
        yield chunk


class HttpBlobStore:
    """Upload media to an external blob API with ``PUT {base_url}/{name}``.

    The API is expected to answer with JSON holding the public ``url``.
    """

    def __init__(
        self,
        base_url: str,
        *,
        token: Optional[str] = None,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._token = token
        self._timeout = timeout
        self._transport = transport
        self._chunk_size = chunk_size

    def _headers(self, content_type: str) -> Dict[str, str]:
        headers = {"x-content-type": content_type, "content-type": content_type}
        if self._token:
            headers["authorization"] = f"Bearer {self._token}"
        return headers

    async def save(
        self,
        name: str,
        source: BinaryIO,
        *,
        content_type: str,
        limit: Optional[int] = None,
    ) -> StoredMedia:
        counter = {"bytes": 0}
        body = _iter_chunks(source, limit=limit, chunk_size=self._chunk_size, counter=counter)
        start = time.perf_counter()
        try:
            async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
                response = await client.put(
                    f"{self._base_url}/{name}",
                    content=body,
                    headers=self._headers(content_type),
                )
        except httpx.HTTPError as error:
            LOGGER.warning("Blob upload of %s failed: %s", name, error)
            raise BackendUnavailableError("Blob storage is not reachable") from error

        if response.is_error:
            LOGGER.warning("Blob store rejected %s with status %s", name, response.status_code)
            raise BackendUnavailableError(
                "Blob storage rejected the upload",
                upstream_status=response.status_code,
                body=response.text,
            )

        try:
            payload: Any = response.json()
        except ValueError as error:
            raise BackendUnavailableError("Blob storage returned an unreadable response") from error
        url = payload.get("url") if isinstance(payload, dict) else None
        if not url:
            raise BackendUnavailableError("Blob storage response did not include a URL")

        emit_file_event(
            "Stored upload in blob store",
            payload={"url": url, "bytes": counter["bytes"]},
            duration_ms=(time.perf_counter() - start) * 1000.0,
        )
        return StoredMedia(filename=name, url=url, location=url, size=counter["bytes"])


__all__ = ["BlobStore", "HttpBlobStore", "MediaStore", "StoredMedia", "too_large_error"]
