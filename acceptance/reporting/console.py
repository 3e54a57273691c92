"""Interactive, human-readable run output."""

from __future__ import annotations

import threading

from rich.console import Console
from rich.text import Text

from acceptance.core.discovery import RunPlan
from acceptance.core.outcome import RunResult, ScenarioOutcome, Status

STATUS_STYLES = {
    Status.PASSED: ("✔", "green"),
    Status.FAILED: ("✘", "bold red"),
    Status.PENDING: ("…", "yellow"),
    Status.UNDEFINED: ("?", "yellow"),
    Status.SKIPPED: ("-", "cyan"),
}


class ConsoleReporter:
    """Prints each scenario as soon as it finishes, then a summary.

    Parameters
    ----------
    console : Console | None
        Rich console to print to; a stdout console is created if omitted
    no_color : bool
        Disable colors on the created console
    """

    def __init__(self, console: Console | None = None, no_color: bool = False) -> None:
        self.console = console or Console(no_color=no_color, highlight=False)
        self._lock = threading.Lock()

    def start(self, plan: RunPlan) -> None:
        with self._lock:
            self.console.print(
                f"🔍 Found {len(plan.feature_files)} feature files in {plan.features_dir}",
                markup=False,
            )
            if plan.seed is not None:
                self.console.print(f"🎲 Randomized with seed {plan.seed}", markup=False)
            self.console.print(f"▶ Running {len(plan.scenarios)} scenarios", markup=False)

    def scenario_finished(self, outcome: ScenarioOutcome) -> None:
        symbol, style = STATUS_STYLES[outcome.status]
        header = Text.assemble(
            (f"{symbol} ", style),
            (outcome.name, "bold"),
            (f"  {outcome.filename}", "dim"),
            (f"  ({outcome.duration:.2f}s)", "dim"),
        )

        with self._lock:
            self.console.print(header)

            if outcome.status in (Status.FAILED, Status.PENDING):
                for step in outcome.steps:
                    step_symbol, step_style = STATUS_STYLES[step.status]
                    line = Text.assemble(
                        ("    ", ""),
                        (f"{step_symbol} {step.keyword} {step.text}", step_style),
                    )
                    self.console.print(line)
                    if step.error is not None:
                        self.console.print(Text(f"        {step.error_message}", "red"))

            if outcome.status == Status.FAILED:
                if outcome.error is not None and not any(s.error is outcome.error for s in outcome.steps):
                    self.console.print(
                        Text(f"    {type(outcome.error).__name__}: {outcome.error}", "red")
                    )
                for error in outcome.hook_errors:
                    self.console.print(
                        Text(f"    after-hook {type(error).__name__}: {error}", "red")
                    )
                for line in outcome.log:
                    self.console.print(Text(f"    | {line}", "dim"))

    def finish(self, result: RunResult) -> None:
        with self._lock:
            if result.fatal_error is not None:
                self.console.print(
                    Text(f"❌ {type(result.fatal_error).__name__}: {result.fatal_error}", "bold red")
                )

            executed = result.executed
            counts = Text.assemble(
                f"{len(executed)} scenarios (",
                (f"{result.count(Status.PASSED)} passed", "green"),
                ", ",
                (f"{result.count(Status.FAILED)} failed", "red"),
                ", ",
                (f"{result.count(Status.PENDING)} pending", "yellow"),
                f") in {result.duration:.2f}s",
            )
            self.console.print(counts)

            for error in result.suite_errors:
                self.console.print(Text(f"suite teardown: {error}", "red"))

            if result.aborted:
                skipped = len(result.outcomes) - len(executed)
                self.console.print(
                    Text(f"Run aborted, {skipped} scenarios not started", "bold yellow")
                )

            if result.seed is not None:
                self.console.print(f"Replay this order with --seed {result.seed}", markup=False)
