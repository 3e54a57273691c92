"""Pytest configuration and fixtures for acceptance orchestrator tests."""

import os
import sys
import textwrap
from collections.abc import Callable, Generator
from dataclasses import replace
from pathlib import Path

import pytest

tests_root = Path(__file__).parent.parent
if str(tests_root) not in sys.path:
    sys.path.insert(0, str(tests_root))

from acceptance.core.config import RunOptions  # noqa: E402
from acceptance.core.context import ScenarioContext  # noqa: E402
from acceptance.core.discovery import ScenarioRef  # noqa: E402
from acceptance.core.environment import SCENARIO, TESTING, TestEnvironment  # noqa: E402
from acceptance.logging.adapter import ReportingSink  # noqa: E402

ISOLATED_ENV_VARS = ("JUNIT_REPORT", "ACCEPTANCE_CONFIG", "ACCEPTANCE_DEBUG", "KUBECONFIG")


@pytest.fixture(autouse=True)
def clean_orchestrator_env() -> Generator[None, None, None]:
    """Remove environment variables read by the orchestrator.

    Yields
    ------
    None
        Control back to test after clearing the variables

    Notes
    -----
    Restores the original values afterwards so a developer's shell setup
    does not leak into tests or get lost.
    """
    saved = {name: os.environ.pop(name) for name in ISOLATED_ENV_VARS if name in os.environ}

    yield

    for name in ISOLATED_ENV_VARS:
        os.environ.pop(name, None)
    os.environ.update(saved)


@pytest.fixture
def features_dir(tmp_path: Path) -> Path:
    """Empty directory for feature files."""
    directory = tmp_path / "features"
    directory.mkdir()
    return directory


@pytest.fixture
def write_feature(features_dir: Path) -> Callable[[str, str], Path]:
    """Factory writing a dedented feature file into ``features_dir``.

    Returns
    -------
    Callable[[str, str], Path]
        ``write_feature(filename, text)`` returning the written path
    """

    def write(filename: str, text: str) -> Path:
        path = features_dir / filename
        path.write_text(textwrap.dedent(text).lstrip(), encoding="utf-8")
        return path

    return write


@pytest.fixture
def options(tmp_path: Path, features_dir: Path) -> RunOptions:
    """Run options confined to the test's temporary directory."""
    return RunOptions(
        features_dir=features_dir,
        state_dir=tmp_path / "state",
        concurrency=1,
        scenario_timeout=30,
    )


@pytest.fixture
def make_options(options: RunOptions) -> Callable[..., RunOptions]:
    """Factory deriving run options with a few fields changed."""

    def make(**changes) -> RunOptions:
        return replace(options, **changes)

    return make


@pytest.fixture
def scenario_context(options: RunOptions) -> ScenarioContext:
    """Context of a standalone scenario for calling step functions directly."""
    scenario = ScenarioRef(
        identity="unit.feature:Unit scenario",
        name="Unit scenario",
        feature="Unit",
        filename="unit.feature",
    )
    env = TestEnvironment().derive()
    env.set(SCENARIO, scenario)
    env.set(TESTING, ReportingSink(scenario.name))
    return ScenarioContext(env, scenario, options)
