"""Command-line interface for BioMM."""

from biomm.cli.main import cli, main

__all__ = ["cli", "main"]
