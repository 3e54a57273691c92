"""Logging formatters for scenario-tagged records."""

import logging


class ScenarioFormatter(logging.Formatter):
    """Logging formatter that prepends the scenario name when present."""

    def format(self, record: logging.LogRecord) -> str:
        """Format log record with a scenario prefix if present.

        Parameters
        ----------
        record : logging.LogRecord
            Log record to format

        Returns
        -------
        str
            Formatted log message with optional ``[scenario]`` prefix
        """
        msg = super().format(record)
        scenario = getattr(record, "scenario", None)

        if scenario:
            return f"[{scenario}] {msg}"

        return msg
