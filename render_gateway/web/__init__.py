"""HTTP surface of the render gateway."""

from .server import create_app

__all__ = ["create_app"]
