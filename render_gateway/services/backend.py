"""Thin client for the external render backend.

Every call is a single attempt bounded by the configured timeout. Transport
failures, timeouts and non-2xx answers all become
:class:`~render_gateway.errors.BackendUnavailableError`; callers decide
whether to surface the failure or degrade gracefully.
"""

from __future__ import annotations

import asyncio
import json
import logging
import time
from types import MappingProxyType
from typing import Any, AsyncIterator, Dict, Optional, Tuple
from urllib.parse import quote

import httpx

from ..errors import BackendUnavailableError
from .events import emit_backend_event

LOGGER = logging.getLogger(__name__)

# operation -> (HTTP method, path template); ``{param}`` is filled from the payload.
OPERATIONS = MappingProxyType(
    {
        "status": ("GET", "/api/render/status/{param}"),
        "voiceover": ("POST", "/api/voiceover/generate"),
        "bg_images": ("GET", "/api/bg-images"),
        "bg_image": ("GET", "/api/bg-images/{param}"),
        "audio_download": ("GET", "/api/download/audio/{param}"),
        "render": ("POST", "/api/render"),
        "render_remotion": ("POST", "/api/render/remotion"),
        "render_download": ("GET", "/api/download/{param}"),
        "projects": ("GET", "/api/projects"),
        "create_project": ("POST", "/api/projects"),
        "upload": ("POST", "/api/upload"),
    }
)


def _extract_detail(response: httpx.Response) -> Optional[str]:
    """Return the ``detail`` message of a JSON error body, if any."""

    try:
        payload = response.json()
    except (ValueError, UnicodeDecodeError):
        return None
    if not isinstance(payload, dict) or "detail" not in payload:
        return None
    detail = payload["detail"]
    if detail is None:
        return None
    if isinstance(detail, str):
        return detail.strip() or None
    return json.dumps(detail)


def _error_body(response: httpx.Response) -> Any:
    try:
        return response.json()
    except (ValueError, UnicodeDecodeError):
        return response.text


class BackendStream:
    """An open streaming response from the backend.

    Iterate :meth:`iter_bytes` to forward the body and call :meth:`aclose`
    once done; the owning client is closed along with the response.
    """

    def __init__(self, response: httpx.Response, client: httpx.AsyncClient) -> None:
        self._response = response
        self._client = client

    @property
    def status_code(self) -> int:
        return self._response.status_code

    @property
    def headers(self) -> httpx.Headers:
        return self._response.headers

    @property
    def content_type(self) -> str:
        return self._response.headers.get("content-type", "")

    @property
    def content_length(self) -> Optional[str]:
        return self._response.headers.get("content-length")

    async def iter_bytes(self) -> AsyncIterator[bytes]:
        async for chunk in self._response.aiter_bytes():
            yield chunk

    async def read_json(self) -> Any:
        try:
            await self._response.aread()
            return self._response.json()
        finally:
            await self.aclose()

    async def aclose(self) -> None:
        try:
            await self._response.aclose()
        finally:
            await self._client.aclose()


class BackendProxy:
    """Forward gateway operations to the render backend over HTTP."""

    def __init__(
        self,
        base_url: str,
        *,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._transport = transport

    @property
    def base_url(self) -> str:
        return self._base_url

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self._base_url,
            timeout=httpx.Timeout(self._timeout),
            transport=self._transport,
        )

    def _resolve(self, operation: str, payload: Any) -> Tuple[str, str]:
        try:
            method, template = OPERATIONS[operation]
        except KeyError:
            raise ValueError(f"Unknown backend operation: {operation}") from None
        if "{param}" in template:
            if payload is None or not str(payload):
                raise ValueError(f"Operation '{operation}' requires a path parameter")
            return method, template.format(param=quote(str(payload), safe=""))
        return method, template

    @staticmethod
    def _request_kwargs(
        method: str,
        payload: Any,
        files: Optional[Dict[str, Any]],
    ) -> Dict[str, Any]:
        kwargs: Dict[str, Any] = {}
        if files is not None:
            kwargs["files"] = files
        elif method == "POST" and payload is not None:
            kwargs["json"] = payload
        return kwargs

    async def forward(
        self,
        operation: str,
        payload: Any = None,
        *,
        files: Optional[Dict[str, Any]] = None,
    ) -> httpx.Response:
        """Run *operation* and return the fully read successful response.

        For operations whose path carries a parameter (job id, filename)
        *payload* is that parameter; for POST operations it is the JSON body.
        """

        method, path = self._resolve(operation, payload)
        kwargs = self._request_kwargs(method, payload, files)
        start = time.perf_counter()
        try:
            async with self._client() as client:
                # httpx timeouts apply per read; the deadline bounds the whole call.
                response = await asyncio.wait_for(
                    client.request(method, path, **kwargs),
                    self._timeout,
                )
        except (httpx.HTTPError, asyncio.TimeoutError) as error:
            self._record(operation, path, start, error=error)
            raise BackendUnavailableError(
                f"Render backend is not reachable ({error.__class__.__name__})"
            ) from error

        self._record(operation, path, start, status_code=response.status_code)
        if response.is_error:
            raise BackendUnavailableError(
                f"Render backend answered with status {response.status_code}",
                upstream_status=response.status_code,
                body=_error_body(response),
                detail=_extract_detail(response),
            )
        return response

    async def stream(self, operation: str, payload: Any = None) -> BackendStream:
        """Open a streaming GET for binary pass-through."""

        method, path = self._resolve(operation, payload)
        client = self._client()
        start = time.perf_counter()
        try:
            response = await asyncio.wait_for(
                client.send(client.build_request(method, path), stream=True),
                self._timeout,
            )
        except (httpx.HTTPError, asyncio.TimeoutError) as error:
            await client.aclose()
            self._record(operation, path, start, error=error)
            raise BackendUnavailableError(
                f"Render backend is not reachable ({error.__class__.__name__})"
            ) from error

        self._record(operation, path, start, status_code=response.status_code)
        if response.is_error:
            try:
                await response.aread()
                detail = _extract_detail(response)
                body = _error_body(response)
            finally:
                await response.aclose()
                await client.aclose()
            raise BackendUnavailableError(
                f"Render backend answered with status {response.status_code}",
                upstream_status=response.status_code,
                body=body,
                detail=detail,
            )
        return BackendStream(response, client)

    def _record(
        self,
        operation: str,
        path: str,
        start: float,
        *,
        status_code: Optional[int] = None,
        error: Optional[BaseException] = None,
    ) -> None:
        duration_ms = (time.perf_counter() - start) * 1000.0
        payload: Dict[str, Any] = {"path": path, "status_code": status_code}
        level = logging.INFO
        if error is not None:
            payload["error"] = f"{error.__class__.__name__}: {error}"
            level = logging.WARNING
        elif status_code is not None and status_code >= 400:
            level = logging.WARNING
        emit_backend_event(operation, payload=payload, duration_ms=duration_ms, level=level)


__all__ = ["BackendProxy", "BackendStream", "OPERATIONS"]
