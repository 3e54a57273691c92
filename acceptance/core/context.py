"""Context object handed to every hook and step implementation."""

from __future__ import annotations

from typing import Any

from acceptance.core.config import RunOptions
from acceptance.core.discovery import ScenarioRef
from acceptance.core.environment import TestEnvironment
from acceptance.logging.adapter import ScenarioLogger, logger_for


class ScenarioContext:
    """Per-scenario execution context.

    Attributes
    ----------
    env : TestEnvironment
        The scenario's exclusive environment
    scenario : ScenarioRef
        Scenario being executed
    options : RunOptions
        Immutable run options
    step : Any
        Parsed step currently executing, if any
    table : Any
        Data table attached to the current step
    text : str | None
        Doc string attached to the current step
    """

    def __init__(self, env: TestEnvironment, scenario: ScenarioRef, options: RunOptions) -> None:
        self.env = env
        self.scenario = scenario
        self.options = options
        self.step: Any = None
        self.table: Any = None
        self.text: str | None = None

    @property
    def logger(self) -> ScenarioLogger:
        return logger_for(self.env)
