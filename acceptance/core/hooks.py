"""Scenario and suite lifecycle hooks."""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable

from acceptance.core.config import RunOptions
from acceptance.core.context import ScenarioContext
from acceptance.core.environment import RESTORE_STUB_ENVIRONMENT, TestEnvironment
from acceptance.core.errors import SuiteSetupError
from acceptance.core.persistence import PersistenceController
from acceptance.logging.adapter import logger_for

logger = logging.getLogger(__name__)

ScenarioHook = Callable[[ScenarioContext], None]
SuiteHook = Callable[["SuiteContext"], None]


class ScenarioHooks:
    """Callbacks run around every scenario.

    Before-hooks run in registration order and stop at the first failure.
    After-hooks run in reverse registration order and always all run; their
    errors are collected instead of raised.
    """

    def __init__(self) -> None:
        self._before: list[ScenarioHook] = []
        self._after: list[ScenarioHook] = []

    def before_scenario(self, hook: ScenarioHook) -> ScenarioHook:
        self._before.append(hook)
        return hook

    def after_scenario(self, hook: ScenarioHook) -> ScenarioHook:
        self._after.append(hook)
        return hook

    def run_before(self, context: ScenarioContext) -> None:
        for hook in self._before:
            hook(context)

    def run_after(self, context: ScenarioContext) -> list[BaseException]:
        errors: list[BaseException] = []
        for hook in reversed(self._after):
            try:
                hook(context)
            except Exception as e:
                logger.warning("After-scenario hook failed for '%s': %s", context.scenario.name, e)
                errors.append(e)
        return errors


class SuiteContext:
    """Run-once hooks for expensive setup shared by all scenarios.

    Suite hooks receive this object and may bind shared handles into
    ``env``, the root environment every scenario environment derives from.

    Parameters
    ----------
    options : RunOptions
        Immutable run options
    env : TestEnvironment
        Root environment of the run
    """

    def __init__(self, options: RunOptions, env: TestEnvironment) -> None:
        self.options = options
        self.env = env
        self._before: list[SuiteHook] = []
        self._after: list[SuiteHook] = []
        self._lock = threading.Lock()
        self._set_up = False
        self._torn_down = False

    def before_suite(self, hook: SuiteHook) -> SuiteHook:
        self._before.append(hook)
        return hook

    def after_suite(self, hook: SuiteHook) -> SuiteHook:
        self._after.append(hook)
        return hook

    def setup(self) -> None:
        """Run before-suite hooks exactly once.

        Raises
        ------
        SuiteSetupError
            If any before-suite hook fails
        """
        with self._lock:
            if self._set_up:
                return
            self._set_up = True

            for hook in self._before:
                name = getattr(hook, "__qualname__", repr(hook))
                try:
                    hook(self)
                except Exception as e:
                    logger.error("Suite setup hook %s failed: %s", name, e)
                    raise SuiteSetupError(f"Suite setup failed in {name}: {e}") from e

    def teardown(self) -> list[BaseException]:
        """Run after-suite hooks once, then dispose root-owned resources.

        Returns
        -------
        list[BaseException]
            Errors raised by hooks or disposals
        """
        with self._lock:
            if self._torn_down or not self._set_up:
                return []
            self._torn_down = True

            errors: list[BaseException] = []
            for hook in reversed(self._after):
                try:
                    hook(self)
                except Exception as e:
                    logger.warning("Suite teardown hook failed: %s", e)
                    errors.append(e)

            for message in self.env.close():
                errors.append(RuntimeError(message))

            return errors


def initialize_scenario(hooks: ScenarioHooks, persistence: PersistenceController) -> None:
    """Install the default scenario hooks.

    Before: name the scenario's logger and, with the restore directive,
    restore the persisted environment. After: attempt to persist the
    environment (a no-op unless the persist directive is set).
    """

    def name_logger_and_restore(context: ScenarioContext) -> None:
        logger_for(context.env).name(context.scenario.name)
        if context.env.get(RESTORE_STUB_ENVIRONMENT, False):
            persistence.restore(context.env)

    def persist(context: ScenarioContext) -> None:
        persistence.persist(context.env)

    hooks.before_scenario(name_logger_and_restore)
    hooks.after_scenario(persist)
