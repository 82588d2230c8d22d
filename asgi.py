"""
asgi.py -- Application assembly for Keyhole.

This is the ONLY file that imports from both api/ and web/, and the only
place that reads the process-wide settings. It joins the two independent
layers into a single ASGI app without coupling them to each other.

Run with:  uvicorn asgi:app --reload
"""

from __future__ import annotations

from fastapi import FastAPI

from api.main import create_app
from core.config import Settings, get_settings
from web.routes import router as web_router


def build_app(settings: Settings | None = None) -> FastAPI:
    """Return the full application (API + web UI) for the given settings."""
    app = create_app(settings or get_settings())
    app.include_router(web_router, tags=["Web UI"])
    return app


app = build_app()
