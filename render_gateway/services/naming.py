"""Utility helpers for consistent asset naming."""

from __future__ import annotations

import re
import secrets
import time
from pathlib import PurePosixPath, PureWindowsPath
from typing import Optional

__all__ = [
    "build_simulated_job_id",
    "build_upload_name",
    "sanitize_original_name",
    "slugify",
]


def slugify(value: str) -> str:
    """Return a filesystem-friendly representation of *value*."""

    value = value.strip().lower()
    value = re.sub(r"[^a-z0-9]+", "-", value)
    value = re.sub(r"-+", "-", value).strip("-")
    return value or "item"


def sanitize_original_name(name: Optional[str]) -> str:
    """Return the basename of a client supplied filename with a slugified stem.

    Directory components (POSIX or Windows style) are discarded and the
    extension is kept lowercased so content types still resolve.
    """

    raw = PureWindowsPath(PurePosixPath(name or "").name).name
    if "." in raw.strip("."):
        stem, _, extension = raw.rpartition(".")
        extension = re.sub(r"[^a-z0-9]+", "", extension.lower())
    else:
        stem, extension = raw, ""
    cleaned = slugify(stem) if stem else "upload"
    return f"{cleaned}.{extension}" if extension else cleaned


def _timestamp_ms(timestamp_ms: Optional[int]) -> int:
    return int(timestamp_ms if timestamp_ms is not None else time.time() * 1000)


def build_upload_name(
    original_name: Optional[str],
    *,
    timestamp_ms: Optional[int] = None,
    token: Optional[str] = None,
) -> str:
    """Return ``{unix_ms}_{token}_{original}`` for a newly uploaded asset."""

    suffix = token if token is not None else secrets.token_hex(4)
    return f"{_timestamp_ms(timestamp_ms)}_{suffix}_{sanitize_original_name(original_name)}"


def build_simulated_job_id(*, timestamp_ms: Optional[int] = None) -> str:
    """Return an id for a render job that only exists on this side."""

    return f"sim_{_timestamp_ms(timestamp_ms)}"
