"""Reporter interface shared by all report emitters."""

from __future__ import annotations

from typing import Protocol

from acceptance.core.discovery import RunPlan
from acceptance.core.outcome import RunResult, ScenarioOutcome


class Reporter(Protocol):
    """Receives run events from the scenario runner.

    ``scenario_finished`` is called from worker threads, implementations
    must be thread-safe.
    """

    def start(self, plan: RunPlan) -> None:
        """Called once before any scenario executes.

        Raising ``ConfigurationError`` aborts the run.
        """
        ...

    def scenario_finished(self, outcome: ScenarioOutcome) -> None:
        ...

    def finish(self, result: RunResult) -> None:
        """Called once after the run, also after fatal errors."""
        ...
