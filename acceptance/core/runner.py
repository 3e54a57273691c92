"""Scenario runner: plans a run and executes scenarios concurrently.

Each scenario moves through ``discovered -> initializing -> executing ->
finalizing`` and ends ``passed``, ``failed`` or ``pending``. Scenarios run
on a bounded thread pool, each against its own environment derived from
the run's root environment; steps within a scenario run sequentially in
declared order. After-hooks (persistence) always run for every scenario
that started, including when the run is aborted.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Sequence
from concurrent.futures import ThreadPoolExecutor, wait
from typing import Any

from acceptance.core.config import RunOptions
from acceptance.core.context import ScenarioContext
from acceptance.core.discovery import RunPlan, ScenarioRef, plan_run
from acceptance.core.environment import (
    NO_COLORS,
    OPTIONS,
    PERSIST_STUB_ENVIRONMENT,
    RESTORE_STUB_ENVIRONMENT,
    SCENARIO,
    TESTING,
    TestEnvironment,
)
from acceptance.core.errors import (
    AcceptanceError,
    ConfigurationError,
    MissingPreconditionError,
    PendingStepError,
    RunAbortedError,
    TeardownError,
)
from acceptance.core.hooks import ScenarioHooks, SuiteContext, initialize_scenario
from acceptance.core.outcome import RunResult, ScenarioOutcome, ScenarioState, Status, StepResult
from acceptance.core.persistence import PersistenceController, SnapshotStore, run_id_for
from acceptance.core.registry import StepModuleRegistry, StepProvider
from acceptance.core.signals import AbortManager, abort_on_signals
from acceptance.logging.adapter import ReportingSink
from acceptance.reporting.base import Reporter

logger = logging.getLogger(__name__)


class ScenarioRunner:
    """Runs the scenarios selected by ``RunOptions``.

    Parameters
    ----------
    options : RunOptions
        Immutable run options
    providers : Sequence[StepProvider] | None
        Step vocabularies; defaults to ``acceptance.steps.DEFAULT_PROVIDERS``
    reporters : Sequence[Reporter]
        Report emitters receiving the run's events
    """

    def __init__(
        self,
        options: RunOptions,
        providers: Sequence[StepProvider] | None = None,
        reporters: Sequence[Reporter] = (),
    ) -> None:
        if providers is None:
            from acceptance.steps import DEFAULT_PROVIDERS

            providers = DEFAULT_PROVIDERS

        self.options = options
        self.reporters = list(reporters)
        self.registry = StepModuleRegistry(providers)
        self.root = self._root_environment()
        self.suite = SuiteContext(options, self.root)
        self.registry.initialize_suite(self.suite)
        self.hooks = ScenarioHooks()
        self.persistence = PersistenceController(
            SnapshotStore(options.state_dir, run_id_for(options.features_dir)),
            self.registry.catalogue(),
        )
        initialize_scenario(self.hooks, self.persistence)
        self._abort = AbortManager()

    def _root_environment(self) -> TestEnvironment:
        root = TestEnvironment()
        root.set(OPTIONS, self.options)
        root.set(PERSIST_STUB_ENVIRONMENT, self.options.persist)
        root.set(RESTORE_STUB_ENVIRONMENT, self.options.restore)
        root.set(NO_COLORS, self.options.no_colors)
        return root

    def abort(self, reason: str = "run aborted") -> None:
        """Stop starting scenarios; running ones finish their after-hooks."""
        self._abort.abort(reason)

    def plan(self) -> RunPlan:
        """Discover, filter and order scenarios.

        Raises
        ------
        ConfigurationError
            If no feature files are found, a file cannot be parsed, the tag
            expression is invalid, or restore was requested and a snapshot
            is missing
        """
        run_plan = plan_run(self.options.features_dir, self.options.tags, self.options.seed)

        if self.options.restore:
            self.persistence.check(s.identity for s in run_plan.scenarios)

        return run_plan

    def run(self) -> RunResult:
        """Execute the run and return its aggregated result.

        Configuration, persistence-precheck and suite setup errors are
        reported through ``RunResult.fatal_error``; no scenario executes in
        that case.
        """
        started = time.monotonic()
        result = RunResult()
        started_reporters: list[Reporter] = []

        try:
            run_plan = self.plan()
            result.seed = run_plan.seed
            for reporter in self.reporters:
                reporter.start(run_plan)
                started_reporters.append(reporter)
        except AcceptanceError as e:
            logger.error("Run aborted before executing any scenario: %s", e)
            result.fatal_error = e
            return self._finish(result, started_reporters, started)

        try:
            self.suite.setup()
        except AcceptanceError as e:
            result.fatal_error = e
            result.suite_errors.extend(self.suite.teardown())
            return self._finish(result, started_reporters, started)

        result.outcomes = [self._new_outcome(s) for s in run_plan.scenarios]

        try:
            with abort_on_signals(self.abort):
                self._execute(run_plan.scenarios, result.outcomes)
        finally:
            result.suite_errors.extend(self.suite.teardown())
            result.aborted = self._abort.aborted

        return self._finish(result, started_reporters, started)

    def _finish(
        self, result: RunResult, reporters: list[Reporter], started: float
    ) -> RunResult:
        result.duration = time.monotonic() - started

        for reporter in reporters:
            try:
                reporter.finish(result)
            except OSError as e:
                logger.error("Failed to write report: %s", e)
                if result.fatal_error is None:
                    result.fatal_error = ConfigurationError(f"Failed to write report: {e}")

        return result

    def _execute(self, scenarios: list[ScenarioRef], outcomes: list[ScenarioOutcome]) -> None:
        if not scenarios:
            return

        workers = max(1, min(self.options.concurrency, len(scenarios)))
        logger.debug("Running %d scenarios on %d workers", len(scenarios), workers)

        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="scenario") as executor:
            futures = [
                executor.submit(self._run_scenario, scenario, outcome)
                for scenario, outcome in zip(scenarios, outcomes)
            ]
            wait(futures)

        for future, outcome in zip(futures, outcomes):
            error = future.exception()
            if error is not None:
                logger.error("Scenario '%s' crashed the runner: %s", outcome.name, error)
                outcome.error = outcome.error or error
                outcome.status = Status.FAILED

    def _new_outcome(self, scenario: ScenarioRef) -> ScenarioOutcome:
        return ScenarioOutcome(
            identity=scenario.identity,
            name=scenario.name,
            feature=scenario.feature,
            filename=scenario.filename,
            tags=list(scenario.tags),
        )

    def _run_scenario(self, scenario: ScenarioRef, outcome: ScenarioOutcome) -> ScenarioOutcome:
        if self._abort.aborted:
            outcome.enter(ScenarioState.SKIPPED)
            outcome.status = Status.SKIPPED
            return outcome

        outcome.enter(ScenarioState.INITIALIZING)
        sink = ReportingSink(scenario.name)
        env = self.root.derive()
        env.set(SCENARIO, scenario)
        env.set(TESTING, sink)
        context = ScenarioContext(env, scenario, self.options)

        try:
            self.hooks.run_before(context)
        except Exception as e:
            logger.error("Initialization of '%s' failed: %s", scenario.name, e)
            outcome.error = e
            outcome.steps = [self._skipped(step) for step in scenario.steps]
        else:
            outcome.enter(ScenarioState.EXECUTING)
            self._execute_steps(context, outcome)

        outcome.enter(ScenarioState.FINALIZING)
        outcome.hook_errors.extend(self.hooks.run_after(context))

        teardown_errors = env.close()
        if teardown_errors:
            outcome.hook_errors.append(TeardownError("; ".join(teardown_errors)))

        outcome.log = list(sink.lines)
        outcome.status = self._status_of(outcome)
        outcome.enter(ScenarioState(outcome.status.value))

        for reporter in self.reporters:
            reporter.scenario_finished(outcome)

        return outcome

    def _execute_steps(self, context: ScenarioContext, outcome: ScenarioOutcome) -> None:
        halted = False

        for step in context.scenario.steps:
            if not halted and self._abort.aborted:
                outcome.error = RunAbortedError(self._abort.reason or "run aborted")
                halted = True

            if halted:
                outcome.steps.append(self._skipped(step))
                continue

            result = self._run_step(context, step)
            outcome.steps.append(result)

            if result.status != Status.PASSED:
                halted = True
                if result.status == Status.FAILED:
                    outcome.error = result.error

    def _run_step(self, context: ScenarioContext, step: Any) -> StepResult:
        result = StepResult(
            keyword=step.keyword,
            text=step.name,
            status=Status.UNDEFINED,
            location=str(step.location),
        )

        match = self.registry.find(step)
        if match is None:
            logger.warning("Undefined step in '%s': %s %s", context.scenario.name, step.keyword, step.name)
            return result

        context.step = step
        context.table = step.table
        context.text = step.text
        started = time.monotonic()

        try:
            for key in match.requires:
                if not context.env.is_bound(key):
                    raise MissingPreconditionError(step.name, key.name, key.owner)
            match.func(context, *match.args, **match.kwargs)
            result.status = Status.PASSED
        except PendingStepError as e:
            result.status = Status.PENDING
            result.error = e
        except Exception as e:
            result.status = Status.FAILED
            result.error = e
        finally:
            result.duration = time.monotonic() - started
            context.step = context.table = context.text = None

        return result

    @staticmethod
    def _skipped(step: Any) -> StepResult:
        return StepResult(
            keyword=step.keyword,
            text=step.name,
            status=Status.SKIPPED,
            location=str(step.location),
        )

    @staticmethod
    def _status_of(outcome: ScenarioOutcome) -> Status:
        if outcome.error is not None or outcome.hook_errors:
            return Status.FAILED
        if any(s.status == Status.FAILED for s in outcome.steps):
            return Status.FAILED
        if any(s.status in (Status.PENDING, Status.UNDEFINED) for s in outcome.steps):
            return Status.PENDING
        return Status.PASSED
