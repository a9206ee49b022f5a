"""odsquota command line interface."""

from odsquota.cli.main import app, main

__all__ = ["app", "main"]
