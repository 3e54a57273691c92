"""CLI entry point for the acceptance test runner."""

from __future__ import annotations

import logging
import os
import sys
from collections.abc import Callable
from typing import Any

import fire

from acceptance.constants import (
    ENV_DEBUG,
    EXIT_CONFIGURATION_ERROR,
    EXIT_FAILED,
)
from acceptance.core.config import ConfigLoader, RunOptions
from acceptance.core.errors import AcceptanceError, ConfigurationError
from acceptance.core.runner import ScenarioRunner
from acceptance.logging import ScenarioFormatter
from acceptance.logging.adapter import SCENARIO_LOGGER_NAME
from acceptance.reporting import ConsoleReporter, JUnitReporter, Reporter

logger = logging.getLogger(__name__)


def configure_logging(verbose: bool = False) -> None:
    """Route log records to stderr, scenario log lines only when verbose.

    Scenario log lines are already captured in the scenario outcome and
    printed by the console reporter for failing scenarios.
    """
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(ScenarioFormatter("%(levelname)s %(name)s: %(message)s"))

    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        handlers=[handler],
        force=True,
    )
    logging.getLogger(SCENARIO_LOGGER_NAME).setLevel(logging.DEBUG if verbose else logging.WARNING)


class AcceptanceCLI:
    """Runs the ec-cli acceptance scenarios.

    Parameters
    ----------
    runner_factory : Callable[..., ScenarioRunner] | None
        Factory creating the runner from options and reporters
    """

    def __init__(self, runner_factory: Callable[..., ScenarioRunner] | None = None) -> None:
        self._runner_factory = runner_factory or ScenarioRunner

    def run(
        self,
        persist: bool | None = None,
        restore: bool | None = None,
        no_colors: bool | None = None,
        tags: str | None = None,
        seed: int | None = None,
        features: str | None = None,
        concurrency: int | None = None,
        config: str | None = None,
        verbose: bool | None = None,
    ) -> None:
        """Run the scenarios and exit with the aggregate status.

        Parameters
        ----------
        persist : bool | None
            Persist the stubbed environment to facilitate debugging
        restore : bool | None
            Restore the last persisted environment
        no_colors : bool | None
            Disable colored output
        tags : str | None
            Select scenarios to run based on tags, e.g. "@policy and not @slow"
        seed : int | None
            Random seed to shuffle scenarios with, -1 picks one
        features : str | None
            Directory holding the feature files
        concurrency : int | None
            Maximum number of scenarios running at once
        config : str | None
            YAML configuration file
        verbose : bool | None
            Log debug output including scenario log lines

        Notes
        -----
        Boolean flags left out keep the value from the configuration file;
        the negated form (e.g. ``--nopersist``) switches one off explicitly.
        The JUnit report destination is read from the JUNIT_REPORT
        environment variable.
        """
        options = ConfigLoader().build_options(
            config,
            overrides={
                "persist": persist,
                "restore": restore,
                "no_colors": no_colors,
                "tags": tags,
                "seed": seed,
                "features_dir": features,
                "concurrency": concurrency,
                "verbose": verbose,
            },
        )
        configure_logging(options.verbose)

        sys.exit(self.execute(options))

    def execute(self, options: RunOptions) -> int:
        """Run with ``options`` and return the process exit code.

        Raises
        ------
        ConfigurationError
            If the run could not start because of its configuration
        """
        reporters: list[Reporter] = [ConsoleReporter(no_color=options.no_colors)]
        if options.junit_report is not None:
            print(f"📄 Will write JUnit report to: {options.junit_report}")
            reporters.append(JUnitReporter(options.junit_report))

        result = self._runner_factory(options, reporters=reporters).run()

        if options.junit_report is not None:
            if options.junit_report.exists():
                logger.info("JUnit report created at: %s", options.junit_report)
            else:
                logger.warning("JUnit report NOT created at: %s", options.junit_report)

        if isinstance(result.fatal_error, ConfigurationError):
            raise result.fatal_error

        return result.exit_code


def handle_configuration_error(error: Exception, debug_mode: bool) -> None:
    """Print a configuration error and exit with the configuration status.

    Raises
    ------
    Exception
        Re-raised if debug mode is enabled
    """
    if debug_mode:
        raise error

    print(f"Configuration error: {error}", file=sys.stderr)
    sys.exit(EXIT_CONFIGURATION_ERROR)


def handle_run_error(error: AcceptanceError, debug_mode: bool) -> None:
    """Print an unexpected run error and exit with the failure status.

    Raises
    ------
    AcceptanceError
        Re-raised if debug mode is enabled
    """
    if debug_mode:
        raise error

    print(f"Run failed: {error}", file=sys.stderr)
    sys.exit(EXIT_FAILED)


def main(argv: list[str] | None = None) -> Any:
    """Entry point for the Fire CLI.

    Fire maps ``AcceptanceCLI`` methods to commands, e.g.
    ``ec-acceptance run --persist --tags "@policy"``.
    """
    debug_mode = os.environ.get(ENV_DEBUG) == "1"

    try:
        return fire.Fire(AcceptanceCLI, command=argv, name="ec-acceptance")
    except (ConfigurationError, ValueError) as e:
        handle_configuration_error(e, debug_mode)
    except AcceptanceError as e:
        handle_run_error(e, debug_mode)
