import asyncio
import io
import re
from pathlib import Path

import httpx
import pytest

from render_gateway.config import DEFAULT_MAX_VIDEO_UPLOAD_BYTES
from render_gateway.errors import ValidationError
from render_gateway.services.ingestion import (
    BackendUploadForwarder,
    UploadIngestor,
    UploadPolicy,
    UploadRequest,
)
from render_gateway.services.media_store import MediaStore


def _request(filename="Narration.MP3", content_type="audio/mpeg", data=b"ID3-audio", size=None):
    return UploadRequest(
        filename=filename,
        content_type=content_type,
        stream=io.BytesIO(data) if data is not None else None,
        size=size,
    )


def _audio_ingestor(root: Path, max_bytes=1024) -> UploadIngestor:
    return UploadIngestor(MediaStore(root, url_prefix="/audio"), UploadPolicy.for_audio(max_bytes))


def test_ingest_audio_stores_file_with_unique_name(tmp_path: Path) -> None:
    ingestor = _audio_ingestor(tmp_path)

    asset = asyncio.run(ingestor.ingest(_request()))

    assert re.fullmatch(r"\d+_[0-9a-f]{8}_narration\.mp3", asset.filename)
    assert asset.original_name == "Narration.MP3"
    assert asset.content_type == "audio/mpeg"
    assert asset.size == len(b"ID3-audio")
    assert asset.url == f"/audio/{asset.filename}"
    assert (tmp_path / asset.filename).read_bytes() == b"ID3-audio"
    assert asset.to_dict()["originalName"] == "Narration.MP3"


def test_same_original_name_never_collides(tmp_path: Path) -> None:
    ingestor = _audio_ingestor(tmp_path)

    first = asyncio.run(ingestor.ingest(_request()))
    second = asyncio.run(ingestor.ingest(_request()))

    assert first.filename != second.filename
    assert len(list(tmp_path.iterdir())) == 2


def test_content_type_comes_from_extension_not_client_header(tmp_path: Path) -> None:
    ingestor = _audio_ingestor(tmp_path)

    asset = asyncio.run(ingestor.ingest(_request(filename="take.wav", content_type="audio/x-whatever")))

    assert asset.content_type == "audio/wav"
    assert asset.declared_type == "audio/x-whatever"


@pytest.mark.parametrize(
    ("request_kwargs", "code"),
    [
        ({"data": None}, "missing_file"),
        ({"filename": "  "}, "missing_file"),
        ({"content_type": "application/pdf"}, "wrong_type"),
        ({"content_type": None}, "wrong_type"),
        ({"size": 4096}, "too_large"),
    ],
)
def test_invalid_audio_uploads_are_rejected_without_writing(tmp_path: Path, request_kwargs, code) -> None:
    ingestor = _audio_ingestor(tmp_path)

    with pytest.raises(ValidationError) as excinfo:
        asyncio.run(ingestor.ingest(_request(**request_kwargs)))

    assert excinfo.value.code == code
    assert list(tmp_path.iterdir()) == []


def test_stream_longer_than_limit_is_rejected(tmp_path: Path) -> None:
    ingestor = _audio_ingestor(tmp_path, max_bytes=4)

    with pytest.raises(ValidationError) as excinfo:
        asyncio.run(ingestor.ingest(_request(data=b"0123456789")))

    assert excinfo.value.code == "too_large"
    assert list(tmp_path.iterdir()) == []


def test_video_policy_accepts_codec_parameters() -> None:
    policy = UploadPolicy.for_video(None)

    assert policy.accepts("video/webm;codecs=vp9")
    assert policy.accepts("video/quicktime")
    assert not policy.accepts("video/x-matroska")
    assert not policy.accepts("audio/mpeg")


def test_backend_upload_forwarder_relays_backend_answer(make_backend) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/api/upload"
        assert b"clip-bytes" in request.content
        return httpx.Response(200, json={"stored": True})

    forwarder = BackendUploadForwarder(make_backend(handler), UploadPolicy.for_video(None))

    result = asyncio.run(
        forwarder.forward(_request(filename="clip.mp4", content_type="video/mp4", data=b"clip-bytes"))
    )

    assert result["success"] is True
    assert result["message"] == "File uploaded successfully"
    assert result["backend_response"] == {"stored": True}


def test_backend_upload_forwarder_survives_offline_backend(make_backend) -> None:
    forwarder = BackendUploadForwarder(make_backend(), UploadPolicy.for_video(None))

    result = asyncio.run(
        forwarder.forward(_request(filename="clip.mp4", content_type="video/mp4", data=b"clip"))
    )

    assert result["success"] is True
    assert result["backend_response"] is None
    assert result["message"] == "File uploaded (frontend only)"


def test_video_policy_default_limit_boundaries(tmp_path: Path) -> None:
    policy = UploadPolicy.for_video(DEFAULT_MAX_VIDEO_UPLOAD_BYTES)
    ingestor = UploadIngestor(MediaStore(tmp_path, url_prefix="/video"), policy)

    oversized = _request(filename="long.mp4", content_type="video/mp4", size=600 * 1024 * 1024)
    with pytest.raises(ValidationError) as excinfo:
        asyncio.run(ingestor.ingest(oversized))

    assert excinfo.value.code == "too_large"
    assert excinfo.value.message == "File too large. Maximum 500MB"
    assert list(tmp_path.iterdir()) == []

    accepted = _request(
        filename="talk.mp4",
        content_type="video/mp4",
        data=b"mp4-bytes",
        size=100 * 1024 * 1024,
    )
    asset = asyncio.run(ingestor.ingest(accepted))

    assert asset.content_type == "video/mp4"
    assert asset.url == f"/video/{asset.filename}"
