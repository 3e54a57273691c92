"""Report emitters."""

from acceptance.reporting.base import Reporter
from acceptance.reporting.console import ConsoleReporter
from acceptance.reporting.junit import JUnitReporter

__all__ = ["ConsoleReporter", "JUnitReporter", "Reporter"]
