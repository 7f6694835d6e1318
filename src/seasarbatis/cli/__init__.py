"""Command-line interface for seasarbatis (``seasarbatis`` entry point)."""

from seasarbatis.cli.app import app

__all__ = ["app"]
