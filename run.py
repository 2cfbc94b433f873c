"""Entry-point for the render gateway."""

from __future__ import annotations

import asyncio
import inspect
import json
import logging
from pathlib import Path
from typing import Optional

import uvicorn
import typer

from render_gateway.bootstrap import initialize_app
from render_gateway.logging_utils import (
    DEFAULT_LOG_FORMAT,
    configure_logging,
    get_log_file_path,
    resolve_log_level,
)
from render_gateway.services.backend import BackendProxy
from render_gateway.services.progress import build_estimator
from render_gateway.services.render_status import JobStatusResolver
from render_gateway.web import create_app


LOGGER = logging.getLogger("render_gateway.cli")


cli = typer.Typer(add_completion=False, help="Render gateway management commands")


DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 8000


def _prepare_logging(storage_root: Path, level: Optional[str] = None) -> None:
    log_file = get_log_file_path(storage_root)
    formatter = logging.Formatter(DEFAULT_LOG_FORMAT)
    file_handler = logging.FileHandler(log_file, encoding="utf-8")
    file_handler.setFormatter(formatter)
    stream_handler = logging.StreamHandler()
    stream_handler.setFormatter(formatter)
    configure_logging(resolve_log_level(level), handlers=[file_handler, stream_handler])


def _normalize_root_path(root_path: Optional[str]) -> str:
    if root_path is None:
        return ""
    normalized = root_path.strip()
    if not normalized:
        return ""
    if not normalized.startswith("/"):
        normalized = f"/{normalized}"
    return normalized.rstrip("/")


@cli.callback(invoke_without_command=True)
def main(ctx: typer.Context) -> None:
    """Launch the web server when no explicit command is provided."""

    if ctx.invoked_subcommand is None:
        ctx.invoke(serve, host=DEFAULT_HOST, port=DEFAULT_PORT, root_path=None, log_level=None)


@cli.command()
def serve(
    host: str = typer.Option(DEFAULT_HOST, help="Host interface for the web server"),
    port: int = typer.Option(DEFAULT_PORT, help="Port for the web server"),
    root_path: Optional[str] = typer.Option(
        None,
        help="Prefix the application expects when mounted behind a proxy",
        envvar="RENDER_GATEWAY_ROOT_PATH",
    ),
    log_level: Optional[str] = typer.Option(
        None,
        help="Logging level (debug, info, warning...)",
        envvar="RENDER_GATEWAY_LOG_LEVEL",
    ),
) -> None:
    """Run the FastAPI gateway."""

    app_config = initialize_app()
    _prepare_logging(app_config.storage_root, log_level)

    normalized_root = _normalize_root_path(root_path)
    app = create_app(app_config, root_path=normalized_root)

    config_kwargs = {}
    max_upload_bytes = max(app_config.max_audio_upload_bytes, app_config.max_video_upload_bytes)
    if max_upload_bytes > 0:
        config_signature = inspect.signature(uvicorn.Config.__init__)
        if "limit_max_request_size" in config_signature.parameters:
            config_kwargs["limit_max_request_size"] = max_upload_bytes
        else:
            LOGGER.debug(
                "uvicorn.Config does not support 'limit_max_request_size'; "
                "upload limits are enforced while streaming.",
            )

    server_config = uvicorn.Config(
        app,
        host=host,
        port=port,
        log_config=None,
        root_path=normalized_root,
        **config_kwargs,
    )
    server = uvicorn.Server(server_config)
    app.state.server = server
    LOGGER.info("Render gateway listening on http://%s:%s%s", host, port, normalized_root or "/")
    server.run()


@cli.command()
def status(
    job_id: str = typer.Argument(..., help="Render job identifier"),
) -> None:
    """Resolve the status of a single render job and print it as JSON."""

    app_config = initialize_app()
    configure_logging(logging.WARNING)

    backend = BackendProxy(app_config.backend_url, timeout=app_config.backend_timeout)
    resolver = JobStatusResolver(backend, estimator=build_estimator(app_config.fallback_progress))
    result = asyncio.run(resolver.resolve(job_id))
    typer.echo(json.dumps(result, indent=2, ensure_ascii=False))


if __name__ == "__main__":
    cli()
