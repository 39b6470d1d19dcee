"""
FastAPI application entrypoint for the provider MCP bridge.
"""

from __future__ import annotations

from fastapi import FastAPI

from mcp_bridge.api.routes import router as api_router
from mcp_bridge.core.config import get_settings
from mcp_bridge.core.logging import configure_logging


def create_app() -> FastAPI:
    """Factory for the FastAPI application."""
    settings = get_settings()
    configure_logging(settings.log_level)

    app = FastAPI(
        title="MCP Bridge",
        version="0.1.0",
        description=(
            "Connects users to their provider tenant over OAuth 2.0 + PKCE and "
            "exposes the tenant's MCP tools."
        ),
    )
    app.include_router(api_router, prefix="/api")
    return app


app = create_app()

__all__ = ["app", "create_app"]
