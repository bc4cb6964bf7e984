"""Entry point for the STEPhie MCP Server daemon.

Hosts both MCP protocol at /mcp and REST API at /api/*.
"""

from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

import structlog
from starlette.applications import Starlette
from starlette.routing import Mount

from stephie.config import settings

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator

log = structlog.get_logger()


@asynccontextmanager
async def service_lifespan() -> "AsyncGenerator[None]":
    """Start the metadata refresher; drain the queue and close clients on exit."""
    from stephie.gam.queue import shutdown_gam_queue
    from stephie.metadata.cache import get_metadata_cache
    from stephie.metadata.refresher import MetadataRefresher
    from stephie.monday.client import reset_monday_client

    refresher = MetadataRefresher(get_metadata_cache())
    refresher.start()
    try:
        yield
    finally:
        await refresher.stop()
        await shutdown_gam_queue()
        await reset_monday_client()


def create_combined_app(host: str | None = None, port: int | None = None) -> Starlette:
    """Create a combined Starlette app with MCP and REST API.

    Routes:
        /api/*  - FastAPI admin and cron endpoints
        /mcp    - MCP protocol endpoint (streamable HTTP)
    """
    from stephie.api.app import create_api_app
    from stephie.server import create_mcp_server

    host = host or settings.server_host
    port = port or settings.server_port

    api_app = create_api_app()
    mcp = create_mcp_server(host=host, port=port)
    mcp_app = mcp.streamable_http_app()

    @asynccontextmanager
    async def lifespan(_app: Starlette) -> "AsyncGenerator[None]":
        async with service_lifespan(), mcp.session_manager.run():
            yield

    # streamable_http_app() already routes to /mcp internally
    return Starlette(
        routes=[
            Mount("/api", app=api_app, name="api"),
            Mount("/", app=mcp_app, name="mcp"),
        ],
        lifespan=lifespan,
    )


def run_server(
    host: str | None = None,
    port: int | None = None,
    transport: str = "streamable-http",
) -> None:
    """Run the MCP server.

    Args:
        host: Host to bind to (defaults to settings.server_host)
        port: Port to listen on (defaults to settings.server_port)
        transport: Transport type ('streamable-http' or 'stdio')
    """
    from stephie.tools.admin import mark_server_started

    host = host or settings.server_host
    port = port or settings.server_port
    mark_server_started()

    log.info(
        "Starting STEPhie Server",
        version="0.1.0",
        name=settings.server_name,
        transport=transport,
        host=host,
        port=port,
    )

    if transport == "stdio":
        from stephie.server import create_mcp_server

        mcp = create_mcp_server(host=host, port=port)
        mcp.run(transport="stdio")
        return

    import uvicorn

    app = create_combined_app(host, port)
    log.info(
        "Server endpoints",
        api=f"http://{host}:{port}/api",
        mcp=f"http://{host}:{port}/mcp",
    )
    config = uvicorn.Config(app, host=host, port=port, log_level="warning", access_log=False)
    uvicorn.Server(config).run()


def main() -> None:
    """Main entry point for the server script."""
    from stephie.logging_config import configure_logging

    configure_logging(level=settings.log_level, json_output=settings.log_json)
    run_server()


if __name__ == "__main__":
    main()
