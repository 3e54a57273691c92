"""Forwards step module log calls to the scenario's reporting sink."""

from __future__ import annotations

import logging
import threading
from typing import Any, Protocol

from acceptance.core.environment import LOGGER, TESTING, TestEnvironment

SCENARIO_LOGGER_NAME = "acceptance.scenario"


class Logger(Protocol):
    """Logging capability shared by all step modules."""

    def log(self, *args: Any) -> None:
        ...

    def logf(self, format: str, *args: Any) -> None:
        ...

    def printf(self, format: str, *args: Any) -> None:
        ...


class ReportingSink:
    """Collects a scenario's log lines and forwards them to ``logging``.

    One sink is bound per scenario under the ``TESTING`` key. Captured lines
    end up in the scenario outcome and in the reports.

    Parameters
    ----------
    scenario : str
        Name used to tag forwarded log records
    """

    def __init__(self, scenario: str = "") -> None:
        self.scenario = scenario
        self.lines: list[str] = []
        self._lock = threading.Lock()
        self._logger = logging.getLogger(SCENARIO_LOGGER_NAME)

    def write(self, line: str) -> None:
        with self._lock:
            self.lines.append(line)
        self._logger.info(line, extra={"scenario": self.scenario})


class ScenarioLogger:
    """Logger writing to a ``ReportingSink``."""

    def __init__(self, sink: ReportingSink) -> None:
        self.sink = sink

    def name(self, name: str) -> None:
        """Tag subsequent records with ``name``."""
        self.sink.scenario = name

    def log(self, *args: Any) -> None:
        """Log the given values separated by spaces."""
        self.sink.write(" ".join(str(a) for a in args))

    def logf(self, format: str, *args: Any) -> None:
        """Log using a printf-style ``format`` and its arguments."""
        self.sink.write(format % args if args else format)

    def printf(self, format: str, *args: Any) -> None:
        """Same as ``logf``, for code written against print-style loggers."""
        self.logf(format, *args)


def logger_for(env: TestEnvironment) -> ScenarioLogger:
    """Return the scenario logger bound in ``env``, creating it if needed.

    A ``ReportingSink`` must be bound under ``TESTING``; the created logger
    is bound under ``LOGGER`` so later steps share it.
    """
    existing = env.get(LOGGER, None)
    if existing is not None:
        return existing

    logger = ScenarioLogger(env.get(TESTING))
    env.set(LOGGER, logger)
    return logger
