"""Voiceover generation proxied to the render backend."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

from ..errors import BackendUnavailableError, ValidationError
from .backend import BackendProxy

LOGGER = logging.getLogger(__name__)

DEFAULT_SPEAKER_ID = "adam"


@dataclass(frozen=True)
class VoiceoverResult:
    message: Optional[str]
    filename: Optional[str]
    audio_url: Optional[str]
    duration: Optional[float]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "message": self.message,
            "filename": self.filename,
            "audioUrl": self.audio_url,
            "duration": self.duration,
        }


class VoiceoverService:
    def __init__(self, backend: BackendProxy) -> None:
        self._backend = backend

    async def generate(self, text: Optional[str], speaker_id: Optional[str] = None) -> VoiceoverResult:
        """Generate speech for *text*; blank text is rejected without a backend call."""

        cleaned = (text or "").strip()
        if not cleaned:
            raise ValidationError("empty_text", "Text is required to generate a voiceover")

        speaker = (speaker_id or "").strip() or DEFAULT_SPEAKER_ID
        response = await self._backend.forward(
            "voiceover",
            {"text": cleaned, "speaker_id": speaker},
        )
        try:
            result = response.json()
        except ValueError as error:
            raise BackendUnavailableError(
                "Render backend returned an unreadable voiceover response",
                upstream_status=response.status_code,
            ) from error
        if not isinstance(result, dict):
            raise BackendUnavailableError(
                "Render backend returned an unexpected voiceover response",
                upstream_status=response.status_code,
            )

        LOGGER.info("Generated voiceover %s with speaker %s", result.get("filename"), speaker)
        return VoiceoverResult(
            message=result.get("message"),
            filename=result.get("filename"),
            audio_url=result.get("audio_url"),
            duration=result.get("duration"),
        )


__all__ = ["DEFAULT_SPEAKER_ID", "VoiceoverResult", "VoiceoverService"]
