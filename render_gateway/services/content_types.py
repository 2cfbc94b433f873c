"""Extension based MIME type resolution for served media."""

from __future__ import annotations

from types import MappingProxyType
from typing import Literal

MediaKind = Literal["audio", "image", "video"]

CONTENT_TYPES = MappingProxyType(
    {
        "mp3": "audio/mpeg",
        "wav": "audio/wav",
        "ogg": "audio/ogg",
        "m4a": "audio/mp4",
        "aac": "audio/aac",
        "flac": "audio/flac",
        "png": "image/png",
        "webp": "image/webp",
        "jpg": "image/jpeg",
        "jpeg": "image/jpeg",
        "mp4": "video/mp4",
        "webm": "video/webm",
        "mov": "video/quicktime",
        "avi": "video/x-msvideo",
    }
)

DEFAULT_CONTENT_TYPES = MappingProxyType(
    {
        "audio": "audio/mpeg",
        "image": "image/jpeg",
        "video": "video/mp4",
    }
)

FALLBACK_CONTENT_TYPE = "audio/mpeg"


def _extension(filename: str) -> str:
    name = filename.rsplit("/", 1)[-1]
    if "." not in name:
        return ""
    return name.rsplit(".", 1)[-1].strip().lower()


def resolve_content_type(filename: str, kind: MediaKind | str = "audio") -> str:
    """Return the MIME type for *filename*.

    Unknown or missing extensions never fail: they resolve to the default for
    *kind* (``audio/mpeg`` for audio and anything unmatched, ``image/jpeg`` for
    images).
    """

    mapped = CONTENT_TYPES.get(_extension(filename or ""))
    if mapped:
        return mapped
    return DEFAULT_CONTENT_TYPES.get(kind, FALLBACK_CONTENT_TYPE)


__all__ = ["CONTENT_TYPES", "DEFAULT_CONTENT_TYPES", "MediaKind", "resolve_content_type"]
