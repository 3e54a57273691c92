"""Steps invoking the command-line tool under test."""

from __future__ import annotations

import os
import shlex
import subprocess
from dataclasses import dataclass

from acceptance.core.context import ScenarioContext
from acceptance.core.environment import Key
from acceptance.core.registry import StepCollector
from acceptance.steps.variables import expand

NAME = "cli"


@dataclass(frozen=True)
class CommandResult:
    """Exit status and captured output of a command."""

    argv: tuple[str, ...]
    status: int
    stdout: str
    stderr: str


RESULT = Key("cli.result", owner=NAME, type=CommandResult)
ENVIRONMENT = Key("cli.environment", owner=NAME, type=dict)

KEYS = (RESULT, ENVIRONMENT)


def set_environment_variable(context: ScenarioContext, name: str, value: str) -> None:
    variables = dict(context.env.get(ENVIRONMENT, {}))
    variables[name] = expand(value, context.env)
    context.env.set(ENVIRONMENT, variables)


def run_command(context: ScenarioContext, command: str) -> None:
    argv = tuple(shlex.split(expand(command, context.env)))
    if not argv:
        raise ValueError("empty command")

    process_env = dict(os.environ)
    process_env.update(context.env.get(ENVIRONMENT, {}))

    context.logger.logf("Running %s", shlex.join(argv))
    completed = subprocess.run(
        list(argv),
        capture_output=True,
        text=True,
        env=process_env,
        stdin=subprocess.DEVNULL,
        timeout=context.options.scenario_timeout,
    )
    context.logger.logf("Exit status %d", completed.returncode)

    context.env.set(
        RESULT,
        CommandResult(
            argv=argv,
            status=completed.returncode,
            stdout=completed.stdout,
            stderr=completed.stderr,
        ),
    )


def exit_status_should_be(context: ScenarioContext, status: int) -> None:
    result: CommandResult = context.env.get(RESULT)
    assert result.status == status, (
        f"expected exit status {status}, got {result.status}\n"
        f"stdout:\n{result.stdout}\nstderr:\n{result.stderr}"
    )


def output_should_contain(context: ScenarioContext, text: str) -> None:
    result: CommandResult = context.env.get(RESULT)
    expected = expand(text, context.env)
    assert expected in result.stdout, f"'{expected}' not found in stdout:\n{result.stdout}"


def stderr_should_contain(context: ScenarioContext, text: str) -> None:
    result: CommandResult = context.env.get(RESULT)
    expected = expand(text, context.env)
    assert expected in result.stderr, f"'{expected}' not found in stderr:\n{result.stderr}"


def output_should_be(context: ScenarioContext) -> None:
    result: CommandResult = context.env.get(RESULT)
    expected = expand(context.text or "", context.env).strip()
    actual = result.stdout.strip()
    assert actual == expected, f"stdout differs\nexpected:\n{expected}\nactual:\n{actual}"


def add_steps_to(steps: StepCollector) -> None:
    steps.given('the environment variable "{name}" is set to "{value}"', set_environment_variable)
    steps.when('the command "{command}" is run', run_command)
    steps.then("the exit status should be {status:d}", exit_status_should_be, requires=(RESULT,))
    steps.then('the output should contain "{text}"', output_should_contain, requires=(RESULT,))
    steps.then(
        'the standard error should contain "{text}"', stderr_should_contain, requires=(RESULT,)
    )
    steps.then("the output should be", output_should_be, requires=(RESULT,))
