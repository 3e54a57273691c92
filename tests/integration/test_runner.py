"""End-to-end tests of the scenario runner against real feature files."""

import shutil
import signal
import tempfile
import xml.etree.ElementTree as ET
from pathlib import Path

import pytest

from acceptance.core.errors import (
    ConfigurationError,
    MissingPreconditionError,
    PersistenceError,
    RunAbortedError,
    SnapshotNotFoundError,
    SuiteSetupError,
)
from acceptance.core.outcome import ScenarioState, Status
from acceptance.core.runner import ScenarioRunner
from acceptance.reporting import JUnitReporter
from tests.fakes import FakeSteps

THREE_SCENARIOS = """
Feature: Values

  Scenario: First
    Given the value is "one"
    Then the value should be "one"

  Scenario: Second
    Given the value is "two"
    When the step fails
    Then the value should be "two"

  Scenario: Third
    Given the value is "three"
    Then the value should be "three"
"""


def statuses(result) -> list[Status]:
    return [o.status for o in result.outcomes]


@pytest.fixture
def provider() -> FakeSteps:
    return FakeSteps()


class TestScenarioExecution:
    """Test scenario outcomes and lifecycle."""

    def test_failure_does_not_stop_other_scenarios(self, options, write_feature, provider) -> None:
        """Test a failing scenario is isolated from the ones around it."""
        write_feature("values.feature", THREE_SCENARIOS)
        runner = ScenarioRunner(options, providers=[provider])
        finished = []
        runner.hooks.after_scenario(lambda ctx: finished.append(ctx.scenario.name))

        result = runner.run()

        assert statuses(result) == [Status.PASSED, Status.FAILED, Status.PASSED]
        assert result.exit_code == 1
        assert finished == ["First", "Second", "Third"]

        second = result.outcomes[1]
        assert isinstance(second.error, AssertionError)
        assert [s.status for s in second.steps] == [Status.PASSED, Status.FAILED, Status.SKIPPED]
        assert second.transitions == [
            ScenarioState.DISCOVERED,
            ScenarioState.INITIALIZING,
            ScenarioState.EXECUTING,
            ScenarioState.FINALIZING,
            ScenarioState.FAILED,
        ]

    def test_all_passing_run_exits_zero(self, options, write_feature, provider) -> None:
        """Test a clean run exits 0 and captures scenario logs."""
        write_feature(
            "values.feature",
            """
            Feature: Values

              Scenario: Only
                Given the value is "one"
                Then the value should be "one"
            """,
        )

        result = ScenarioRunner(options, providers=[provider]).run()

        assert result.exit_code == 0
        assert result.outcomes[0].log == ["value set to one"]

    def test_concurrent_scenarios_are_isolated(self, make_options, write_feature, provider) -> None:
        """Test scenarios running at the same time never see each other's values."""
        scenarios = "\n".join(
            f"""
  Scenario: Scenario {i}
    Given the value is "{i}"
    When 0.05 seconds pass
    Then the value should be "{i}"
"""
            for i in range(6)
        )
        write_feature("parallel.feature", f"Feature: Parallel\n{scenarios}")

        result = ScenarioRunner(make_options(concurrency=6), providers=[provider]).run()

        assert statuses(result) == [Status.PASSED] * 6
        assert provider.seen_before_set == {f"Scenario {i}": None for i in range(6)}
        assert provider.suite_setups == 1
        assert provider.suite_teardowns == 1

    def test_background_and_outline(self, options, write_feature, provider) -> None:
        """Test background steps run first and outlines expand per example."""
        write_feature(
            "outline.feature",
            """
            Feature: Outline

              Background:
                Given the value is "base"

              Scenario Outline: Override with <value>
                Then the value should be "base"
                Given the value is "<value>"
                Then the value should be "<value>"

                Examples:
                  | value  |
                  | strict |
                  | lax    |
            """,
        )

        result = ScenarioRunner(options, providers=[provider]).run()

        assert statuses(result) == [Status.PASSED, Status.PASSED]
        assert [len(o.steps) for o in result.outcomes] == [4, 4]

    def test_pending_and_undefined_do_not_fail(self, options, write_feature, provider) -> None:
        """Test unwritten steps mark scenarios pending without failing the run."""
        write_feature(
            "pending.feature",
            """
            Feature: Pending

              Scenario: Not written
                When the step is not written yet
                Then the value should be "x"

              Scenario: Unknown
                When the moon is full
            """,
        )

        result = ScenarioRunner(options, providers=[provider]).run()

        assert statuses(result) == [Status.PENDING, Status.PENDING]
        assert result.outcomes[0].steps[1].status == Status.SKIPPED
        assert result.outcomes[1].steps[0].status == Status.UNDEFINED
        assert result.exit_code == 0

    def test_missing_precondition_names_provider(self, options, write_feature, provider) -> None:
        """Test a step needing unbound state fails with a helpful error."""
        write_feature(
            "precondition.feature",
            """
            Feature: Preconditions

              Scenario: No handle
                Then the handle should point at "10.0.0.1"
            """,
        )

        result = ScenarioRunner(options, providers=[provider]).run()

        outcome = result.outcomes[0]
        assert outcome.status == Status.FAILED
        assert isinstance(outcome.error, MissingPreconditionError)
        assert outcome.error.owner == "fake"
        assert provider.executed_steps == []

    def test_tag_filter(self, make_options, write_feature, provider) -> None:
        """Test only scenarios matching the tag expression run."""
        write_feature(
            "tagged.feature",
            """
            Feature: Tagged

              @smoke
              Scenario: Smoke
                Given the value is "a"

              Scenario: Full
                Given the value is "b"
            """,
        )

        result = ScenarioRunner(make_options(tags="@smoke"), providers=[provider]).run()

        assert [o.name for o in result.outcomes] == ["Smoke"]

    def test_seed_is_reported_and_reproducible(self, make_options, write_feature, provider) -> None:
        """Test a random seed is reported and replays the same order."""
        scenarios = "\n".join(
            f'  Scenario: S{i}\n    Given the value is "{i}"\n' for i in range(12)
        )
        write_feature("many.feature", f"Feature: Many\n{scenarios}")

        first = ScenarioRunner(make_options(seed=-1), providers=[FakeSteps()]).run()
        replay = ScenarioRunner(make_options(seed=first.seed), providers=[FakeSteps()]).run()

        assert first.seed is not None and first.seed > 0
        assert [o.name for o in replay.outcomes] == [o.name for o in first.outcomes]


class TestFatalErrors:
    """Test errors that stop the run before any scenario executes."""

    def test_no_feature_files(self, options, provider) -> None:
        """Test an empty features directory is a configuration error."""
        result = ScenarioRunner(options, providers=[provider]).run()

        assert isinstance(result.fatal_error, ConfigurationError)
        assert result.outcomes == []
        assert result.exit_code == 1
        assert provider.suite_setups == 0

    def test_restore_without_snapshot(self, make_options, write_feature, provider) -> None:
        """Test restoring with nothing persisted fails before any scenario runs."""
        write_feature("values.feature", THREE_SCENARIOS)

        result = ScenarioRunner(make_options(restore=True), providers=[provider]).run()

        assert isinstance(result.fatal_error, SnapshotNotFoundError)
        assert result.outcomes == []
        assert provider.executed_steps == []
        assert provider.suite_setups == 0

    def test_suite_setup_failure(self, options, write_feature) -> None:
        """Test a failing suite hook is fatal and no scenario executes."""
        write_feature("values.feature", THREE_SCENARIOS)
        provider = FakeSteps(fail_suite_setup=True)

        result = ScenarioRunner(options, providers=[provider]).run()

        assert isinstance(result.fatal_error, SuiteSetupError)
        assert result.outcomes == []
        assert provider.executed_steps == []
        assert provider.suite_teardowns == 1


class TestPersistence:
    """Test persisting and restoring through whole runs."""

    def test_persist_then_restore(self, make_options, write_feature) -> None:
        """Test a restored run sees the handles persisted by the previous run."""
        write_feature(
            "handles.feature",
            """
            Feature: Handles

              Scenario: Listener
                Given a handle at "10.0.0.1:8080"
            """,
        )
        persisting = FakeSteps()
        first = ScenarioRunner(make_options(persist=True), providers=[persisting]).run()

        assert first.exit_code == 0
        assert persisting.handles[0].closed is False

        write_feature(
            "handles.feature",
            """
            Feature: Handles

              Scenario: Listener
                Then the handle should point at "10.0.0.1:8080"
            """,
        )
        second = ScenarioRunner(make_options(restore=True), providers=[FakeSteps()]).run()

        assert statuses(second) == [Status.PASSED]

    @pytest.mark.skipif(shutil.which("git") is None, reason="git is not installed")
    def test_snapshot_restores_repeatedly(
        self, make_options, write_feature, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """Test a restored run leaves the snapshot usable for the next restore."""
        monkeypatch.setattr(tempfile, "tempdir", str(tmp_path))
        write_feature(
            "repository.feature",
            """
            Feature: Repository

              Scenario: Policy source
                Given a git repository named "policy" with files
                  | path      | content |
                  | README.md | policy  |
            """,
        )
        first = ScenarioRunner(make_options(persist=True)).run()

        write_feature(
            "repository.feature",
            """
            Feature: Repository

              Scenario: Policy source
                Then the git repository "policy" should contain "README.md"
            """,
        )
        replays = [ScenarioRunner(make_options(restore=True)).run() for _ in range(2)]

        assert statuses(first) == [Status.PASSED]
        assert [statuses(replay) for replay in replays] == [[Status.PASSED], [Status.PASSED]]

    def test_persistence_error_does_not_mask_step_failure(self, make_options, write_feature, provider) -> None:
        """Test both the step failure and the persistence failure are reported."""
        write_feature(
            "broken.feature",
            """
            Feature: Broken

              Scenario: Unserializable
                Given a handle at "broken-listener"
                When the step fails
            """,
        )

        result = ScenarioRunner(make_options(persist=True), providers=[provider]).run()

        outcome = result.outcomes[0]
        assert outcome.status == Status.FAILED
        assert isinstance(outcome.error, AssertionError)
        assert [type(e) for e in outcome.hook_errors] == [PersistenceError]
        assert provider.handles[0].closed is True


class TestAbort:
    """Test aborting a run mid-flight."""

    def test_abort_skips_unstarted_and_finalizes_running(self, options, write_feature, provider) -> None:
        """Test the running scenario finishes its after-hooks and the rest never start."""
        write_feature(
            "abort.feature",
            """
            Feature: Abort

              Scenario: Running
                When the run is aborted
                Then the value should be "x"

              Scenario: Waiting
                Given the value is "a"

              Scenario: Also waiting
                Given the value is "b"
            """,
        )
        runner = ScenarioRunner(options, providers=[provider])
        provider.on_abort = runner.abort
        finished = []
        runner.hooks.after_scenario(lambda ctx: finished.append(ctx.scenario.name))

        result = runner.run()

        running, waiting, also_waiting = result.outcomes
        assert result.aborted is True
        assert result.exit_code == 1
        assert running.status == Status.FAILED
        assert isinstance(running.error, RunAbortedError)
        assert [s.status for s in running.steps] == [Status.PASSED, Status.SKIPPED]
        assert waiting.status == also_waiting.status == Status.SKIPPED
        assert not waiting.executed and not also_waiting.executed
        assert finished == ["Running"]

    def test_sigint_aborts_and_restores_handler(
        self, options, write_feature, provider, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """Test SIGINT during a step aborts the run after the scenario's after-hooks."""
        write_feature(
            "interrupt.feature",
            """
            Feature: Interrupt

              Scenario: Interrupted
                When the process is interrupted
                Then the value should be "x"

              Scenario: Never started
                Given the value is "a"
            """,
        )
        runner = ScenarioRunner(options, providers=[provider])
        abort = runner.abort

        def abort_and_resume(reason: str = "run aborted") -> None:
            abort(reason)
            provider.interrupted.set()

        monkeypatch.setattr(runner, "abort", abort_and_resume)
        finished = []
        runner.hooks.after_scenario(lambda ctx: finished.append(ctx.scenario.name))
        previous_handler = signal.getsignal(signal.SIGINT)

        result = runner.run()

        interrupted, never_started = result.outcomes
        assert result.aborted is True
        assert [interrupted.status, never_started.status] == [Status.FAILED, Status.SKIPPED]
        assert isinstance(interrupted.error, RunAbortedError)
        assert "SIGINT" in str(interrupted.error)
        assert finished == ["Interrupted"]
        assert signal.getsignal(signal.SIGINT) is previous_handler


class TestReports:
    """Test reports written by a real run."""

    def test_junit_report(self, make_options, write_feature, provider, tmp_path: Path) -> None:
        """Test the JUnit report lists every executed scenario."""
        write_feature("values.feature", THREE_SCENARIOS)
        path = tmp_path / "junit.xml"
        options = make_options(junit_report=path)

        ScenarioRunner(options, providers=[provider], reporters=[JUnitReporter(path)]).run()

        root = ET.parse(path).getroot()
        assert root.get("tests") == "3"
        assert root.get("failures") == "1"
        assert [c.get("name") for c in root.iter("testcase")] == ["First", "Second", "Third"]

    def test_unwritable_report_is_fatal(self, options, write_feature, provider, tmp_path: Path) -> None:
        """Test an unwritable report destination stops the run before scenarios execute."""
        write_feature("values.feature", THREE_SCENARIOS)
        blocker = tmp_path / "blocker"
        blocker.write_text("")

        result = ScenarioRunner(
            options, providers=[provider], reporters=[JUnitReporter(blocker / "junit.xml")]
        ).run()

        assert isinstance(result.fatal_error, ConfigurationError)
        assert provider.executed_steps == []


class TestSampleFeatures:
    """Test the shipped feature files against the built-in step vocabularies."""

    def test_sample_features_pass(self, make_options) -> None:
        """Test every shipped scenario passes with the default providers."""
        features_dir = Path(__file__).parent.parent.parent / "features"
        tags = "" if shutil.which("git") else "not @git"

        result = ScenarioRunner(make_options(features_dir=features_dir, tags=tags, concurrency=4)).run()

        assert result.fatal_error is None
        assert [o.name for o in result.outcomes if o.status != Status.PASSED] == []
        assert result.exit_code == 0
