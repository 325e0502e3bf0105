"""Command-line interface for herd-sync."""

from herd_sync.cli.main import app, main

__all__ = ["app", "main"]
