import logging
from pathlib import Path

from render_gateway.services.events import (
    emit_backend_event,
    normalize_context,
    sanitize_context_value,
)


def test_sanitize_context_value_handles_common_types() -> None:
    assert sanitize_context_value(Path("/srv/uploads/a.mp3")) == "/srv/uploads/a.mp3"
    assert sanitize_context_value(b"abc") == "<3 bytes>"
    assert sanitize_context_value(["a", "b"]) == "a, b"
    assert sanitize_context_value("   ") is None
    assert sanitize_context_value("x" * 300).endswith("…")


def test_normalize_context_masks_credentials_and_drops_empty_values() -> None:
    result = normalize_context(
        {"authorization": "Bearer secret", "path": "/api/render", "empty": "", "none": None}
    )

    assert result == {"authorization": "***", "path": "/api/render"}


def test_emit_backend_event_formats_details(caplog) -> None:
    with caplog.at_level(logging.INFO, logger="render_gateway.events"):
        emit_backend_event("status", payload={"status_code": 200}, duration_ms=12.34)

    record = caplog.records[-1]
    assert record.getMessage() == "[BACKEND_CALL] status (status_code=200, duration_ms=12.3)"
    assert record.event_type == "BACKEND_CALL"
    assert record.event_payload == {"status_code": 200}
