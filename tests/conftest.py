from __future__ import annotations

import sys
from pathlib import Path
from typing import Callable

import httpx
import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from render_gateway.bootstrap import Bootstrapper
from render_gateway.config import AppConfig
from render_gateway.services.backend import BackendProxy


BACKEND_URL = "http://render-backend.test"


@pytest.fixture()
def temp_config(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> AppConfig:
    monkeypatch.chdir(tmp_path)

    config = AppConfig.from_mapping(
        {
            "audio_root": "uploads/audio",
            "video_root": "uploads/video",
            "music_root": "music",
            "backend_url": BACKEND_URL,
            "max_audio_upload_bytes": 1024 * 1024,
            "max_video_upload_bytes": 2 * 1024 * 1024,
        },
        base_path=tmp_path,
        environ={},
    )

    Bootstrapper(config).initialize()
    return config


def _offline(request: httpx.Request) -> httpx.Response:
    raise httpx.ConnectError("connection refused", request=request)


@pytest.fixture()
def make_backend() -> Callable[..., BackendProxy]:
    """Return a factory for a BackendProxy answering through *handler*.

    Without a handler the backend behaves as if it were offline.
    """

    def _factory(handler=None) -> BackendProxy:
        transport = httpx.MockTransport(handler or _offline)
        return BackendProxy(BACKEND_URL, timeout=1.0, transport=transport)

    return _factory
