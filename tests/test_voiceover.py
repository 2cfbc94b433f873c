import asyncio
import json

import httpx
import pytest

from render_gateway.errors import BackendUnavailableError, ValidationError
from render_gateway.services.voiceover import DEFAULT_SPEAKER_ID, VoiceoverService


def test_generate_forwards_text_and_maps_result(make_backend) -> None:
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen.update(json.loads(request.content))
        return httpx.Response(
            200,
            json={
                "message": "Voiceover generated",
                "filename": "vo_1.mp3",
                "audio_url": "/audio/vo_1.mp3",
                "duration": 3.2,
            },
        )

    result = asyncio.run(VoiceoverService(make_backend(handler)).generate("  Hello there  "))

    assert seen == {"text": "Hello there", "speaker_id": DEFAULT_SPEAKER_ID}
    assert result.to_dict() == {
        "message": "Voiceover generated",
        "filename": "vo_1.mp3",
        "audioUrl": "/audio/vo_1.mp3",
        "duration": 3.2,
    }


@pytest.mark.parametrize("text", [None, "", "   \n"])
def test_blank_text_is_rejected_before_backend_call(make_backend, text) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise AssertionError("backend must not be called")

    with pytest.raises(ValidationError) as excinfo:
        asyncio.run(VoiceoverService(make_backend(handler)).generate(text))

    assert excinfo.value.code == "empty_text"


def test_backend_detail_is_surfaced(make_backend) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(400, json={"detail": "Unknown speaker 'zed'"})

    with pytest.raises(BackendUnavailableError) as excinfo:
        asyncio.run(VoiceoverService(make_backend(handler)).generate("hi", "zed"))

    assert excinfo.value.http_status == 400
    assert excinfo.value.message == "Unknown speaker 'zed'"


def test_offline_backend_is_unavailable(make_backend) -> None:
    with pytest.raises(BackendUnavailableError) as excinfo:
        asyncio.run(VoiceoverService(make_backend()).generate("hi"))

    assert excinfo.value.http_status == 503
