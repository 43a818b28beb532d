"""HTTP adapter — Starlette application around the runtime."""

from xpapi.server.app import create_app

__all__ = ["create_app"]
