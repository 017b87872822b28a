"""Command-line entry points."""

from outage_radar.cli.main import cli


__all__ = ["cli"]
