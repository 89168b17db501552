"""
asgi.py -- ASGI entry point for SessionKeeper.

Run with:  uvicorn asgi:app --host 127.0.0.1 --port 8765

The HTTP adapter is meant for the local machine only; TrustedHostMiddleware in
api/main.py rejects any Host header that is not localhost.
"""

from api.main import app

__all__ = ["app"]
