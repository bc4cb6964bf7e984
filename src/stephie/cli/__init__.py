"""Command line interface."""

from stephie.cli.main import app, main

__all__ = ["app", "main"]
