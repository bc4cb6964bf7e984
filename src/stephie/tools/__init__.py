"""Tool implementations exposed over MCP, REST and the CLI."""

from stephie.tools.admin import get_board_columns, get_status, mark_server_started, resync_metadata

__all__ = ["get_board_columns", "get_status", "mark_server_started", "resync_metadata"]
