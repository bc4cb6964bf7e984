"""FastAPI application factory.

Creates the REST API app that gets mounted alongside MCP.
"""

from fastapi import FastAPI

from stephie.api.routes import admin_router, cron_router


def create_api_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    app = FastAPI(
        title="STEPhie API",
        description="Admin endpoints for the STEPhie MCP server",
        version="0.1.0",
        docs_url="/docs",
        redoc_url=None,
        openapi_url="/openapi.json",
    )

    app.include_router(admin_router)
    app.include_router(cron_router)

    @app.get("/health")
    async def health() -> dict[str, str]:
        return {"status": "ok"}

    return app
