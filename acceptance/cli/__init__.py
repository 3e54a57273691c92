"""Command-line interface."""

from acceptance.cli.main import AcceptanceCLI

__all__ = ["AcceptanceCLI"]
