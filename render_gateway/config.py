"""Configuration loading utilities for the render gateway."""

from __future__ import annotations

import contextlib
import json
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Iterable, Mapping, Optional, Tuple


LOGGER = logging.getLogger(__name__)


_PERMISSION_SENTINEL = ".render_gateway_write_check"

DEFAULT_BACKEND_URL = "http://localhost:8000"
DEFAULT_BACKEND_TIMEOUT_SECONDS = 10.0
DEFAULT_MAX_AUDIO_UPLOAD_BYTES = 100 * 1024 * 1024
DEFAULT_MAX_VIDEO_UPLOAD_BYTES = 500 * 1024 * 1024
FALLBACK_PROGRESS_MODES: Tuple[str, ...] = ("random", "ramp")


def _ensure_writable_directory(path: Path) -> bool:
    """Return ``True`` if *path* can be created and written to."""

    try:
        path.mkdir(parents=True, exist_ok=True)
    except OSError:
        return False

    test_file = path / _PERMISSION_SENTINEL
    try:
        with test_file.open("w", encoding="utf-8") as handle:
            handle.write("ok")
    except OSError:
        return False
    finally:
        with contextlib.suppress(OSError):
            test_file.unlink()

    return True


def _select_writable_directory(
    preferred: Path,
    *,
    label: str,
    fallbacks: Iterable[Path] = (),
) -> Tuple[Path, bool]:
    """Return a usable directory based on ``preferred`` and ``fallbacks``.

    The first writable candidate wins. When nothing can be prepared the
    original ``preferred`` path is returned so the bootstrapper can report it.
    """

    preferred = preferred.resolve()
    if _ensure_writable_directory(preferred):
        return preferred, False

    for fallback in fallbacks:
        candidate = fallback.resolve()
        if candidate == preferred:
            continue
        if _ensure_writable_directory(candidate):
            LOGGER.warning(
                "Preferred %s directory '%s' is not writable; using fallback '%s'.",
                label,
                preferred,
                candidate,
            )
            return candidate, True

    LOGGER.warning(
        "%s directory '%s' is not writable and no fallback is available.",
        label.capitalize(),
        preferred,
    )
    return preferred, False


def _read_int(value: Any, default: int) -> int:
    if value is None:
        return default
    try:
        return int(str(value).strip() or default)
    except ValueError:
        LOGGER.warning("Ignoring invalid integer setting %r; using %s", value, default)
        return default


def _read_float(value: Any, default: float) -> float:
    if value is None:
        return default
    try:
        parsed = float(str(value).strip() or default)
    except ValueError:
        LOGGER.warning("Ignoring invalid number setting %r; using %s", value, default)
        return default
    return parsed if parsed > 0 else default


def _normalize_backend_url(value: Optional[str]) -> str:
    candidate = (value or "").strip()
    if not candidate:
        return DEFAULT_BACKEND_URL
    return candidate.rstrip("/")


@dataclass(frozen=True)
class AppConfig:
    """Runtime settings for the gateway: storage roots, limits and backend access."""

    audio_root: Path
    video_root: Path
    music_root: Path
    backend_url: str = DEFAULT_BACKEND_URL
    backend_timeout: float = DEFAULT_BACKEND_TIMEOUT_SECONDS
    max_audio_upload_bytes: int = DEFAULT_MAX_AUDIO_UPLOAD_BYTES
    max_video_upload_bytes: int = DEFAULT_MAX_VIDEO_UPLOAD_BYTES
    fallback_progress: str = "random"
    blob_store_url: Optional[str] = None
    blob_store_token: Optional[str] = None

    @property
    def storage_root(self) -> Path:
        """Directory shared by the upload roots; hosts the log file."""

        return self.audio_root.parent

    @classmethod
    def from_mapping(
        cls,
        mapping: Mapping[str, Any],
        *,
        base_path: Path,
        environ: Optional[Mapping[str, str]] = None,
    ) -> "AppConfig":
        env = os.environ if environ is None else environ
        fallback_root = Path.home() / ".render_gateway"

        preferred_audio = (base_path / mapping["audio_root"]).resolve()
        audio_root, _ = _select_writable_directory(
            preferred_audio,
            label="audio upload",
            fallbacks=(fallback_root / "uploads" / "audio",),
        )

        preferred_video = (base_path / mapping.get("video_root", "uploads/video")).resolve()
        video_root, _ = _select_writable_directory(
            preferred_video,
            label="video upload",
            fallbacks=(fallback_root / "uploads" / "video",),
        )

        # Music assets are shipped by the backend checkout and only ever read.
        music_root = (base_path / mapping.get("music_root", "../backend/assets/music")).resolve()

        backend_url = _normalize_backend_url(
            env.get("BACKEND_URL") or mapping.get("backend_url")
        )
        backend_timeout = _read_float(
            env.get("RENDER_GATEWAY_BACKEND_TIMEOUT", mapping.get("backend_timeout_seconds")),
            DEFAULT_BACKEND_TIMEOUT_SECONDS,
        )
        max_audio = _read_int(
            env.get("RENDER_GATEWAY_MAX_AUDIO_UPLOAD_BYTES", mapping.get("max_audio_upload_bytes")),
            DEFAULT_MAX_AUDIO_UPLOAD_BYTES,
        )
        max_video = _read_int(
            env.get("RENDER_GATEWAY_MAX_VIDEO_UPLOAD_BYTES", mapping.get("max_video_upload_bytes")),
            DEFAULT_MAX_VIDEO_UPLOAD_BYTES,
        )

        fallback_progress = str(
            env.get("RENDER_GATEWAY_FALLBACK_PROGRESS", mapping.get("fallback_progress", "random"))
        ).strip().lower()
        if fallback_progress not in FALLBACK_PROGRESS_MODES:
            LOGGER.warning(
                "Unknown fallback progress mode '%s'; using 'random'.", fallback_progress
            )
            fallback_progress = "random"

        blob_store_url = (env.get("BLOB_STORE_URL") or mapping.get("blob_store_url") or "").strip()
        blob_store_token = (env.get("BLOB_STORE_TOKEN") or "").strip()

        return cls(
            audio_root=audio_root,
            video_root=video_root,
            music_root=music_root,
            backend_url=backend_url,
            backend_timeout=backend_timeout,
            max_audio_upload_bytes=max_audio,
            max_video_upload_bytes=max_video,
            fallback_progress=fallback_progress,
            blob_store_url=blob_store_url.rstrip("/") or None,
            blob_store_token=blob_store_token or None,
        )


def load_config(config_path: Path | None = None) -> AppConfig:
    """Load the gateway configuration from ``config/default.json`` by default."""

    base_path = Path(__file__).resolve().parent.parent
    if config_path is None:
        config_path = base_path / "config" / "default.json"

    with config_path.open("r", encoding="utf-8") as config_file:
        raw_config: Dict[str, Any] = json.load(config_file)

    return AppConfig.from_mapping(raw_config, base_path=base_path)


__all__ = ["AppConfig", "load_config"]
