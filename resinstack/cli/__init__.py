"""Command line interface for resinstack."""

from resinstack.cli.main import cli

__all__ = ["cli"]
