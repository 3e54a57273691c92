"""Behavior-driven acceptance test orchestrator for ec-cli."""

__version__ = "0.1.0"
