"""rowspine command line."""

from rowspine.cli.app import app

__all__ = ["app"]
