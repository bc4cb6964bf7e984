"""Main CLI application.

Commands run in-process against monday.com and Ad Manager using the same
configuration as the server.
"""

from datetime import UTC, datetime

import typer

from stephie.cli.common import (
    ELECTRIC_YELLOW,
    NEON_CYAN,
    console,
    create_table,
    error,
    info,
    print_json,
    run_async,
    success,
)

app = typer.Typer(
    name="stephie",
    help="STEPhie - monday.com and Ad Manager tools for MCP clients",
    add_completion=False,
    no_args_is_help=True,
)


def _format_timestamp(value: float | None) -> str:
    if value is None:
        return "never"
    return datetime.fromtimestamp(value, UTC).isoformat(timespec="seconds")


@app.command()
def serve(
    host: str | None = typer.Option(None, "--host", "-h", help="Host to bind to"),
    port: int | None = typer.Option(None, "--port", "-p", help="Port to listen on"),
    transport: str = typer.Option(
        "streamable-http",
        "--transport",
        "-t",
        help="Transport type (streamable-http, stdio)",
    ),
) -> None:
    """Start the STEPhie MCP server daemon."""
    from stephie.main import run_server

    try:
        run_server(host=host, port=port, transport=transport)
    except KeyboardInterrupt:
        console.print(f"\n[{NEON_CYAN}]Shutting down...[/{NEON_CYAN}]")


@app.command()
def sync(
    json_out: bool = typer.Option(False, "--json", "-j", help="Output as JSON"),
) -> None:
    """Re-read column metadata for every known board."""
    from stephie.monday.client import reset_monday_client
    from stephie.tools.admin import resync_metadata

    @run_async
    async def _run() -> dict:
        try:
            return await resync_metadata()
        finally:
            await reset_monday_client()

    result = _run()

    if json_out:
        print_json(result)
    elif result["success"]:
        success(
            f"Synced {result['resource_count']} boards, "
            f"{result['total_column_count']} columns in {result['duration_ms']}ms"
        )
    else:
        error(f"Sync failed: {result['error']}")

    if not result["success"]:
        raise typer.Exit(1)


@app.command()
def columns(
    board: str = typer.Argument(..., help="Board id or board name"),
    json_out: bool = typer.Option(False, "--json", "-j", help="Output as JSON"),
) -> None:
    """Show the column ids tools will request for a board."""
    from stephie.monday.client import reset_monday_client
    from stephie.tools.admin import get_board_columns

    @run_async
    async def _run() -> dict:
        try:
            return await get_board_columns(board)
        finally:
            await reset_monday_client()

    result = _run()

    if json_out:
        print_json(result)
        if not result["success"]:
            raise typer.Exit(1)
        return

    if not result["success"]:
        error(result["error"])
        raise typer.Exit(1)

    title = result["board_name"] or result["board_id"]
    table = create_table(f"Columns: {title}", "Column ID", "Title", "Type")
    described = {column["id"]: column for column in result["columns"]}
    for column_id in result["column_ids"]:
        column = described.get(column_id, {})
        table.add_row(column_id, column.get("title", ""), column.get("type", ""))
    console.print(table)


@app.command()
def token() -> None:
    """Fetch an Ad Manager access token and show when it expires."""
    from stephie.errors import StephieError
    from stephie.gam.auth import get_credential_cache

    credentials = get_credential_cache()

    @run_async
    async def _run() -> str:
        return await credentials.get_access_token()

    try:
        access_token = _run()
    except StephieError as e:
        error(f"{e.code}: {e.message}")
        raise typer.Exit(1) from e

    success(f"Token {access_token[:8]}… acquired")
    expires = _format_timestamp(credentials.expires_at)
    info(f"Cached until [{ELECTRIC_YELLOW}]{expires}[/{ELECTRIC_YELLOW}]")


@app.command()
def status(
    json_out: bool = typer.Option(False, "--json", "-j", help="Output as JSON"),
) -> None:
    """Show metadata cache contents for this process (including any snapshot)."""
    from stephie.tools.admin import get_status

    result = get_status()
    if json_out:
        print_json(result)
        return

    metadata = result["metadata"]
    info(f"Last full sync: {_format_timestamp(metadata['last_full_sync'])}")
    info(f"Staleness bound: {int(metadata['ttl_seconds'])}s")
    table = create_table("Boards", "Board ID", "Name", "Columns", "Synced")
    for resource in metadata["resources"]:
        table.add_row(
            resource["resource_id"],
            resource["name"] or "",
            str(resource["column_count"]),
            _format_timestamp(resource["last_synced_at"]),
        )
    console.print(table)


def main() -> None:
    """CLI entry point."""
    from stephie.config import settings
    from stephie.logging_config import configure_logging

    configure_logging(level=settings.log_level, json_output=settings.log_json)
    app()


if __name__ == "__main__":
    main()
