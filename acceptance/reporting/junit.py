"""Machine-readable JUnit XML report."""

from __future__ import annotations

import logging
import xml.etree.ElementTree as ET
from collections import OrderedDict
from pathlib import Path
from typing import IO

from acceptance.constants import SUITE_NAME
from acceptance.core.discovery import RunPlan
from acceptance.core.errors import ConfigurationError
from acceptance.core.outcome import RunResult, ScenarioOutcome, Status

logger = logging.getLogger(__name__)


class JUnitReporter:
    """Writes the executed scenarios as a JUnit XML document.

    The destination file is created when the run starts, so an unwritable
    destination stops the run before any scenario executes. The document
    itself is written once, after the run.

    Parameters
    ----------
    path : Path
        Destination of the report
    suite_name : str
        Name of the top-level ``testsuites`` element
    """

    def __init__(self, path: Path, suite_name: str = SUITE_NAME) -> None:
        self.path = Path(path)
        self.suite_name = suite_name
        self._file: IO[bytes] | None = None

    def start(self, plan: RunPlan) -> None:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self._file = open(self.path, "wb")
        except OSError as e:
            raise ConfigurationError(f"failed to create JUnit report {self.path}: {e}") from e

        logger.debug("Writing JUnit report to %s", self.path)

    def scenario_finished(self, outcome: ScenarioOutcome) -> None:
        pass

    def finish(self, result: RunResult) -> None:
        if self._file is None:
            return

        try:
            tree = ET.ElementTree(build_document(result, self.suite_name))
            ET.indent(tree)
            tree.write(self._file, encoding="utf-8", xml_declaration=True)
        finally:
            self._file.close()
            self._file = None

        logger.info("JUnit report created at %s", self.path)


def build_document(result: RunResult, suite_name: str = SUITE_NAME) -> ET.Element:
    """Build the ``testsuites`` element for the executed scenarios."""
    executed = result.executed
    root = ET.Element(
        "testsuites",
        name=suite_name,
        tests=str(len(executed)),
        failures=str(result.count(Status.FAILED)),
        skipped=str(result.count(Status.PENDING)),
        errors="0",
        time=f"{result.duration:.3f}",
    )

    by_feature: OrderedDict[str, list[ScenarioOutcome]] = OrderedDict()
    for outcome in executed:
        by_feature.setdefault(outcome.feature or outcome.filename, []).append(outcome)

    for feature, outcomes in by_feature.items():
        suite = ET.SubElement(
            root,
            "testsuite",
            name=feature,
            tests=str(len(outcomes)),
            failures=str(sum(1 for o in outcomes if o.status == Status.FAILED)),
            skipped=str(sum(1 for o in outcomes if o.status == Status.PENDING)),
            errors="0",
            time=f"{sum(o.duration for o in outcomes):.3f}",
        )
        for outcome in outcomes:
            suite.append(_testcase(outcome))

    return root


def _testcase(outcome: ScenarioOutcome) -> ET.Element:
    case = ET.Element(
        "testcase",
        name=outcome.name,
        classname=outcome.filename,
        status=outcome.status.value,
        time=f"{outcome.duration:.3f}",
    )

    if outcome.status == Status.FAILED:
        messages = []
        for step in outcome.steps:
            if step.status == Status.FAILED:
                messages.append(f"Step {step.text}: {step.error_message}")
        if outcome.error is not None and not any(s.error is outcome.error for s in outcome.steps):
            messages.append(f"{type(outcome.error).__name__}: {outcome.error}")
        for error in outcome.hook_errors:
            messages.append(f"After hook: {type(error).__name__}: {error}")

        failure = ET.SubElement(case, "failure", message=messages[0] if messages else "failed")
        failure.text = "\n".join(messages)
    elif outcome.status == Status.PENDING:
        pending = [s for s in outcome.steps if s.status in (Status.PENDING, Status.UNDEFINED)]
        message = (
            f"Step {pending[0].text}: {pending[0].status.value}" if pending else "pending"
        )
        ET.SubElement(case, "skipped", message=message)

    if outcome.log:
        system_out = ET.SubElement(case, "system-out")
        system_out.text = "\n".join(outcome.log)

    return case
