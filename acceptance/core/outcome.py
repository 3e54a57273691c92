"""Scenario and run outcome models."""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from enum import Enum


class Status(str, Enum):
    """Final status of a step or scenario."""

    PASSED = "passed"
    FAILED = "failed"
    PENDING = "pending"
    UNDEFINED = "undefined"
    SKIPPED = "skipped"


class ScenarioState(str, Enum):
    """Lifecycle states a scenario moves through."""

    DISCOVERED = "discovered"
    INITIALIZING = "initializing"
    EXECUTING = "executing"
    FINALIZING = "finalizing"
    PASSED = "passed"
    FAILED = "failed"
    PENDING = "pending"
    SKIPPED = "skipped"


TERMINAL_STATES = frozenset(
    {ScenarioState.PASSED, ScenarioState.FAILED, ScenarioState.PENDING, ScenarioState.SKIPPED}
)

_TRANSITIONS: dict[ScenarioState, frozenset[ScenarioState]] = {
    ScenarioState.DISCOVERED: frozenset({ScenarioState.INITIALIZING, ScenarioState.SKIPPED}),
    ScenarioState.INITIALIZING: frozenset({ScenarioState.EXECUTING, ScenarioState.FINALIZING}),
    ScenarioState.EXECUTING: frozenset({ScenarioState.FINALIZING}),
    ScenarioState.FINALIZING: frozenset(
        {ScenarioState.PASSED, ScenarioState.FAILED, ScenarioState.PENDING}
    ),
}


@dataclass
class StepResult:
    """Result of one executed (or skipped) step."""

    keyword: str
    text: str
    status: Status
    duration: float = 0.0
    error: BaseException | None = None
    location: str = ""

    @property
    def error_message(self) -> str:
        if self.error is None:
            return ""
        return f"{type(self.error).__name__}: {self.error}"


@dataclass
class ScenarioOutcome:
    """Everything recorded about one scenario execution.

    Attributes
    ----------
    identity : str
        Stable identity of the scenario (feature file and name)
    name : str
        Scenario display name
    feature : str
        Name of the feature the scenario belongs to
    filename : str
        Feature file the scenario was parsed from
    tags : list[str]
        Effective tags of the scenario
    status : Status
        Final status
    steps : list[StepResult]
        Step results in declared order
    log : list[str]
        Lines logged through the scenario's logger
    error : BaseException | None
        Error that failed the scenario's steps or initialization
    hook_errors : list[BaseException]
        Errors raised by after-hooks (persistence, teardown), kept apart
        from ``error`` so neither masks the other
    transitions : list[ScenarioState]
        Lifecycle states in the order they were entered
    executed : bool
        False when the scenario never started (run aborted first)
    """

    identity: str
    name: str
    feature: str = ""
    filename: str = ""
    tags: list[str] = field(default_factory=list)
    status: Status = Status.SKIPPED
    steps: list[StepResult] = field(default_factory=list)
    log: list[str] = field(default_factory=list)
    error: BaseException | None = None
    hook_errors: list[BaseException] = field(default_factory=list)
    transitions: list[ScenarioState] = field(
        default_factory=lambda: [ScenarioState.DISCOVERED]
    )
    started_at: float = 0.0
    duration: float = 0.0
    executed: bool = False

    @property
    def state(self) -> ScenarioState:
        return self.transitions[-1]

    def enter(self, state: ScenarioState) -> None:
        """Move to ``state``, enforcing the lifecycle order.

        Raises
        ------
        ValueError
            If the transition is not allowed from the current state
        """
        allowed = _TRANSITIONS.get(self.state, frozenset())
        if state not in allowed:
            raise ValueError(f"invalid transition {self.state.value} -> {state.value}")

        if state == ScenarioState.INITIALIZING:
            self.executed = True
            self.started_at = time.monotonic()

        self.transitions.append(state)

        if state in TERMINAL_STATES and self.started_at:
            self.duration = time.monotonic() - self.started_at

    @property
    def failed(self) -> bool:
        return self.status == Status.FAILED


@dataclass
class RunResult:
    """Aggregated result of a run."""

    outcomes: list[ScenarioOutcome] = field(default_factory=list)
    seed: int | None = None
    fatal_error: BaseException | None = None
    suite_errors: list[BaseException] = field(default_factory=list)
    aborted: bool = False
    duration: float = 0.0

    @property
    def executed(self) -> list[ScenarioOutcome]:
        return [o for o in self.outcomes if o.executed]

    def count(self, status: Status) -> int:
        return sum(1 for o in self.executed if o.status == status)

    @property
    def failed(self) -> int:
        return self.count(Status.FAILED)

    @property
    def hook_errors(self) -> list[BaseException]:
        return [e for o in self.outcomes for e in o.hook_errors]

    @property
    def exit_code(self) -> int:
        if self.fatal_error is not None or self.failed or self.aborted or self.suite_errors:
            return 1
        return 0
