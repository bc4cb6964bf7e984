"""MCP Server definition using FastMCP with streamable-http transport.

Exposes 2 tools and 1 resource:
- Tools: sync_metadata, get_board_columns
- Resources: stephie://metadata
"""

import json
from typing import Any

from mcp.server.fastmcp import FastMCP

from stephie.config import settings

# Module-level server instance (created lazily)
_mcp: FastMCP | None = None


def create_mcp_server(
    host: str = "localhost",
    port: int = 3335,
) -> FastMCP:
    """Create and configure the MCP server instance."""
    mcp = FastMCP(
        settings.server_name,
        host=host,
        port=port,
        stateless_http=False,
    )

    _register_tools(mcp)
    _register_resources(mcp)
    return mcp


def get_mcp_server() -> FastMCP:
    """Get or create the default MCP server instance."""
    global _mcp  # noqa: PLW0603
    if _mcp is None:
        _mcp = create_mcp_server(
            host=settings.server_host,
            port=settings.server_port,
        )
    return _mcp


def _register_tools(mcp: FastMCP) -> None:
    """Register all MCP tools on the server instance."""

    @mcp.tool()
    async def sync_metadata() -> dict[str, Any]:
        """Refresh cached board column metadata from monday.com.

        Re-reads every known board in one pass. If a sync is already running,
        waits for it and returns its result instead of starting another.

        Returns:
            success, duration_ms, resource_count, total_column_count and
            last_sync_timestamp; or success=false with code and error.
        """
        from stephie.tools.admin import resync_metadata

        return await resync_metadata()

    @mcp.tool()
    async def get_board_columns(board: str) -> dict[str, Any]:
        """Column ids to request for a monday.com board.

        Args:
            board: Board id (e.g. "1698570295") or board name.

        Returns:
            board_id, board_name, column_ids (in registry order) and column
            descriptors; or success=false with code and error.
        """
        from stephie.tools.admin import get_board_columns as resolve_columns

        return await resolve_columns(board)


def _register_resources(mcp: FastMCP) -> None:
    """Register MCP resources on the server instance."""

    @mcp.resource("stephie://metadata")
    async def metadata_resource() -> str:
        """Metadata cache, request queue and credential status.

        Returns JSON with:
        - metadata: known boards, column counts, last_full_sync, ttl_seconds
        - queue: Ad Manager queue state and counters
        - credentials: token expiry and handshake counters
        """
        from stephie.tools.admin import get_status

        return json.dumps(get_status(), indent=2, default=str)
