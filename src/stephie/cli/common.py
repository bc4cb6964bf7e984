"""Shared CLI utilities: console, colors and output helpers."""

import asyncio
import json
from collections.abc import Awaitable, Callable
from functools import wraps

from rich.console import Console
from rich.table import Table

NEON_CYAN = "#80ffea"
ELECTRIC_PURPLE = "#e135ff"
ELECTRIC_YELLOW = "#f1fa8c"
SUCCESS_GREEN = "#50fa7b"
ERROR_RED = "#ff6363"

# Shared console instance (for styled output only, NOT for JSON)
console = Console()


def print_json(data: object) -> None:
    """Print JSON to stdout without Rich formatting.

    Rich wraps long lines at terminal width, which breaks JSON parsing.
    """
    print(json.dumps(data, indent=2, default=str, ensure_ascii=False))


def success(message: str) -> None:
    console.print(f"[{SUCCESS_GREEN}]✓[/{SUCCESS_GREEN}] {message}")


def error(message: str) -> None:
    console.print(f"[{ERROR_RED}]✗[/{ERROR_RED}] {message}")


def info(message: str) -> None:
    console.print(f"[{NEON_CYAN}]→[/{NEON_CYAN}] {message}")


def create_table(title: str | None = None, *columns: str) -> Table:
    """Create a styled table."""
    table = Table(title=title, border_style=NEON_CYAN)
    for i, col in enumerate(columns):
        table.add_column(col, style=ELECTRIC_PURPLE if i == 0 else NEON_CYAN)
    return table


def run_async[**P, R](func: Callable[P, Awaitable[R]]) -> Callable[P, R]:
    """Decorator to run async functions in sync context (for Typer commands)."""

    @wraps(func)
    def wrapper(*args: P.args, **kwargs: P.kwargs) -> R:
        return asyncio.run(func(*args, **kwargs))

    return wrapper
