"""Tests for the MCP server registration."""

import json
from unittest.mock import AsyncMock, patch

import pytest

from stephie.server import create_mcp_server


@pytest.mark.asyncio
async def test_registers_tools() -> None:
    mcp = create_mcp_server()

    tools = {tool.name: tool for tool in await mcp.list_tools()}

    assert set(tools) == {"sync_metadata", "get_board_columns"}
    assert "board" in tools["get_board_columns"].inputSchema["properties"]


@pytest.mark.asyncio
async def test_registers_metadata_resource() -> None:
    mcp = create_mcp_server()

    resources = await mcp.list_resources()

    assert len(resources) == 1
    assert str(resources[0].uri).startswith("stephie://metadata")


@pytest.mark.asyncio
async def test_sync_tool_delegates_to_resync() -> None:
    mcp = create_mcp_server()
    payload = {"success": True, "resource_count": 2}

    with patch("stephie.tools.admin.resync_metadata", AsyncMock(return_value=payload)) as resync:
        await mcp.call_tool("sync_metadata", {})

    resync.assert_awaited_once()


@pytest.mark.asyncio
async def test_metadata_resource_reads_status() -> None:
    mcp = create_mcp_server()
    status = {"metadata": {"resource_count": 0}, "queue": {}, "credentials": {}}

    with patch("stephie.tools.admin.get_status", return_value=status):
        contents = list(await mcp.read_resource("stephie://metadata"))

    assert json.loads(contents[0].content) == status
