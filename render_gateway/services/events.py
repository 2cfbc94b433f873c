"""Structured event helpers shared across the gateway.

Events are ordinary log records on the ``render_gateway.events`` logger. The
human readable message carries ``key=value`` details; the same details are
attached to the record as ``event_payload`` for handlers that want them.
"""

from __future__ import annotations

import logging
from datetime import datetime
from pathlib import PurePath
from typing import Any, Dict, Mapping, Optional


DEFAULT_EVENT_LOGGER = logging.getLogger("render_gateway.events")

MAX_VALUE_LENGTH = 200
_SECRET_KEYS = frozenset({"authorization", "token", "blob_store_token", "password"})


def sanitize_context_value(value: Any) -> Any:
    """Return a log friendly, JSON-serialisable representation for *value*.

    Blank strings collapse to ``None`` and long values are truncated.
    """

    if value is None or isinstance(value, (bool, int, float)):
        return value
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, PurePath):
        return value.as_posix()
    if isinstance(value, (bytes, bytearray)):
        return f"<{len(value)} bytes>"
    if isinstance(value, Mapping):
        return normalize_context(value)
    if isinstance(value, (list, tuple, set, frozenset)):
        text = ", ".join(str(item) for item in value)
    else:
        text = str(value)
    text = text.strip()
    if not text:
        return None
    if len(text) > MAX_VALUE_LENGTH:
        return text[:MAX_VALUE_LENGTH] + "…"
    return text


def normalize_context(values: Optional[Mapping[str, Any]]) -> Dict[str, Any]:
    """Drop empty entries and mask credentials in structured metadata."""

    normalised: Dict[str, Any] = {}
    for key, raw_value in (values or {}).items():
        if not key:
            continue
        name = str(key)
        if name.lower() in _SECRET_KEYS:
            normalised[name] = "***"
            continue
        value = sanitize_context_value(raw_value)
        if value is None or value == "" or value == {}:
            continue
        normalised[name] = value
    return normalised


def emit_structured_event(
    event_type: str,
    message: str,
    *,
    payload: Optional[Dict[str, Any]] = None,
    correlation: Optional[Dict[str, Any]] = None,
    duration_ms: Optional[float] = None,
    level: int = logging.INFO,
    logger: logging.Logger | logging.LoggerAdapter = DEFAULT_EVENT_LOGGER,
) -> None:
    """Emit a structured event with consistent logging metadata."""

    base_message = str(message).strip()
    normalised_payload = normalize_context(payload)
    normalised_correlation = normalize_context(correlation)
    combined_details = {**normalised_correlation, **normalised_payload}
    if duration_ms is not None:
        combined_details["duration_ms"] = round(float(duration_ms), 1)
    details_text = ", ".join(f"{key}={value}" for key, value in combined_details.items())
    display_message = f"[{event_type}] {base_message}" if event_type else base_message
    log_message = f"{display_message} ({details_text})" if details_text else display_message
    extra: Dict[str, Any] = {
        "event": base_message,
        "event_type": event_type or "",
    }
    if normalised_payload:
        extra["event_payload"] = normalised_payload
    if duration_ms is not None:
        extra["event_duration_ms"] = float(duration_ms)
    logger.log(level, log_message, extra=extra)


def emit_file_event(
    operation: str,
    *,
    payload: Optional[Dict[str, Any]] = None,
    correlation: Optional[Dict[str, Any]] = None,
    duration_ms: Optional[float] = None,
    level: int = logging.INFO,
    logger: logging.Logger | logging.LoggerAdapter = DEFAULT_EVENT_LOGGER,
) -> None:
    """Emit a structured file-system event."""

    emit_structured_event(
        "FILE_OP",
        operation,
        payload=payload,
        correlation=correlation,
        duration_ms=duration_ms,
        level=level,
        logger=logger,
    )


def emit_backend_event(
    operation: str,
    *,
    payload: Optional[Dict[str, Any]] = None,
    correlation: Optional[Dict[str, Any]] = None,
    duration_ms: Optional[float] = None,
    level: int = logging.INFO,
    logger: logging.Logger | logging.LoggerAdapter = DEFAULT_EVENT_LOGGER,
) -> None:
    """Emit a structured event describing one outbound render backend call."""

    emit_structured_event(
        "BACKEND_CALL",
        operation,
        payload=payload,
        correlation=correlation,
        duration_ms=duration_ms,
        level=level,
        logger=logger,
    )


def emit_job_event(
    job_id: str,
    message: str,
    *,
    payload: Optional[Dict[str, Any]] = None,
    correlation: Optional[Dict[str, Any]] = None,
    level: int = logging.INFO,
    logger: logging.Logger | logging.LoggerAdapter = DEFAULT_EVENT_LOGGER,
) -> None:
    """Emit a structured render job status event."""

    event_payload: Dict[str, Any] = {"job_id": job_id}
    if payload:
        event_payload.update(payload)
    emit_structured_event(
        "JOB_STATUS",
        message,
        payload=event_payload,
        correlation=correlation,
        level=level,
        logger=logger,
    )


__all__ = [
    "DEFAULT_EVENT_LOGGER",
    "emit_backend_event",
    "emit_file_event",
    "emit_job_event",
    "emit_structured_event",
    "normalize_context",
    "sanitize_context_value",
]
