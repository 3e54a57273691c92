"""Logging utilities for the acceptance orchestrator."""

from acceptance.logging.adapter import Logger, ReportingSink, ScenarioLogger, logger_for
from acceptance.logging.formatters import ScenarioFormatter

__all__ = ["Logger", "ReportingSink", "ScenarioFormatter", "ScenarioLogger", "logger_for"]
