"""FastAPI server exposing the chat service over HTTP."""

from chatstudio.server.app import create_app

__all__ = ["create_app"]
