"""Error taxonomy shared by the gateway services and the HTTP layer."""

from __future__ import annotations

from typing import Any, Dict, Optional


class GatewayError(Exception):
    """Base class for errors that map onto an HTTP response."""

    status_code: int = 500
    default_code: str = "error"

    def __init__(self, message: str, *, code: Optional[str] = None) -> None:
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code

    @property
    def http_status(self) -> int:
        return self.status_code

    def to_payload(self) -> Dict[str, Any]:
        return {"error": self.message, "code": self.code}


class ValidationError(GatewayError):
    """Bad, missing, oversized or wrongly typed client input."""

    status_code = 400
    default_code = "invalid"

    def __init__(self, code: str, message: Optional[str] = None) -> None:
        super().__init__(message or code.replace("_", " ").capitalize(), code=code)


class NotFoundError(GatewayError):
    """The requested asset or job does not exist."""

    status_code = 404
    default_code = "not_found"


class BackendUnavailableError(GatewayError):
    """The render backend could not be reached or answered with a non-2xx status.

    ``upstream_status`` is ``None`` for transport failures and timeouts. When
    the upstream body was JSON with a ``detail`` field that text becomes the
    error message.
    """

    status_code = 503
    default_code = "backend_unavailable"

    def __init__(
        self,
        message: str,
        *,
        upstream_status: Optional[int] = None,
        body: Any = None,
        detail: Optional[str] = None,
    ) -> None:
        super().__init__(detail or message)
        self.upstream_status = upstream_status
        self.body = body
        self.detail = detail

    @property
    def http_status(self) -> int:
        if self.upstream_status is not None and self.upstream_status >= 400:
            return self.upstream_status
        return self.status_code


class InternalError(GatewayError):
    """Unexpected local fault; surfaces as a generic 500."""

    status_code = 500
    default_code = "internal_error"

    def __init__(self, message: str = "Internal server error") -> None:
        super().__init__(message)


__all__ = [
    "BackendUnavailableError",
    "GatewayError",
    "InternalError",
    "NotFoundError",
    "ValidationError",
]
