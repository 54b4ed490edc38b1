"""FastAPI adapter: HTTP routes, chaos middleware and the live run WebSocket."""

from .app import create_app

__all__ = ["create_app"]
