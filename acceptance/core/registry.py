"""Assembles step vocabularies into one dispatch table.

Each vocabulary provider contributes step matchers through a
``StepCollector`` and declares the environment keys it owns. Providers are
registered once per process; all state they touch at step execution time
lives in the scenario's ``TestEnvironment``.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from typing import Any, Protocol

from behave.step_registry import StepRegistry

from acceptance.core.environment import WELL_KNOWN_KEYS, Key
from acceptance.core.errors import StepRegistrationError

logger = logging.getLogger(__name__)

StepFunc = Callable[..., Any]

STEP_TYPES = ("given", "when", "then", "step")


class StepProvider(Protocol):
    """A step vocabulary: contributes matchers that read/write the environment.

    Providers may also define ``initialize_suite(suite)`` to register
    run-once suite hooks.
    """

    NAME: str
    KEYS: Sequence[Key]

    def add_steps_to(self, steps: StepCollector) -> None:
        ...


@dataclass(frozen=True)
class StepMatch:
    """A step definition matched against a step's text.

    Attributes
    ----------
    func : StepFunc
        Step implementation, called as ``func(context, *args, **kwargs)``
    args : tuple
        Positional values extracted from the step text
    kwargs : dict
        Named values extracted from the step text
    requires : tuple[Key, ...]
        Keys that must be bound before the step may run
    provider : str
        Name of the contributing provider
    """

    func: StepFunc
    args: tuple[Any, ...] = ()
    kwargs: dict[str, Any] = field(default_factory=dict)
    requires: tuple[Key, ...] = ()
    provider: str = ""


class StepCollector:
    """Registration facade handed to a provider's ``add_steps_to``.

    Each method can be called directly, ``steps.given(pattern, func)``, or
    used as a decorator, ``@steps.given(pattern)``.
    """

    def __init__(self, registry: StepModuleRegistry, provider: str) -> None:
        self._registry = registry
        self._provider = provider

    def _add(
        self,
        step_type: str,
        pattern: str,
        func: StepFunc | None,
        requires: Sequence[Key],
    ) -> Any:
        if func is None:

            def decorator(f: StepFunc) -> StepFunc:
                self._registry.add_step(step_type, pattern, f, requires, self._provider)
                return f

            return decorator

        self._registry.add_step(step_type, pattern, func, requires, self._provider)
        return func

    def given(self, pattern: str, func: StepFunc | None = None, *, requires: Sequence[Key] = ()) -> Any:
        return self._add("given", pattern, func, requires)

    def when(self, pattern: str, func: StepFunc | None = None, *, requires: Sequence[Key] = ()) -> Any:
        return self._add("when", pattern, func, requires)

    def then(self, pattern: str, func: StepFunc | None = None, *, requires: Sequence[Key] = ()) -> Any:
        return self._add("then", pattern, func, requires)

    def step(self, pattern: str, func: StepFunc | None = None, *, requires: Sequence[Key] = ()) -> Any:
        """Register a matcher usable with any keyword."""
        return self._add("step", pattern, func, requires)


class StepModuleRegistry:
    """Fixed set of step providers assembled into one dispatch table.

    Parameters
    ----------
    providers : Sequence[StepProvider]
        Providers to register, in order
    """

    def __init__(self, providers: Sequence[StepProvider] = ()) -> None:
        self._steps = StepRegistry()
        self._definitions: dict[tuple[str, str], StepFunc] = {}
        self._requires: dict[StepFunc, tuple[Key, ...]] = {}
        self._owners: dict[StepFunc, str] = {}
        self._catalogue: dict[str, Key] = {k.name: k for k in WELL_KNOWN_KEYS}
        self.providers: list[StepProvider] = []

        for provider in providers:
            self.add(provider)

    def add(self, provider: StepProvider) -> None:
        """Register a provider's keys and step matchers.

        Adding the same provider twice is a no-op.

        Raises
        ------
        StepRegistrationError
            If the provider declares a key name already owned elsewhere or
            contributes a matcher that conflicts with an existing one
        """
        if provider in self.providers:
            return

        name = getattr(provider, "NAME", getattr(provider, "__name__", repr(provider)))

        for key in getattr(provider, "KEYS", ()):
            existing = self._catalogue.get(key.name)
            if existing is not None and existing is not key:
                raise StepRegistrationError(
                    f"Key '{key.name}' declared by '{name}' is already owned by '{existing.owner}'"
                )
            self._catalogue[key.name] = key

        provider.add_steps_to(StepCollector(self, name))
        self.providers.append(provider)
        logger.debug("Registered step provider %s", name)

    def add_step(
        self,
        step_type: str,
        pattern: str,
        func: StepFunc,
        requires: Sequence[Key] = (),
        provider: str = "",
    ) -> None:
        """Add one matcher to the dispatch table.

        Raises
        ------
        StepRegistrationError
            If ``pattern`` is already bound to another function or is
            ambiguous with an existing pattern
        """
        if step_type not in STEP_TYPES:
            raise StepRegistrationError(f"Unknown step type '{step_type}' for '{pattern}'")

        existing = self._definitions.get((step_type, pattern))
        if existing == func:
            return
        if existing is not None:
            raise StepRegistrationError(
                f"{step_type.capitalize()} step '{pattern}' from '{provider}' is already "
                f"defined by '{self._owners.get(existing, '')}'"
            )

        try:
            self._steps.add_step_definition(step_type, pattern, func)
        except ValueError as e:
            raise StepRegistrationError(
                f"{step_type.capitalize()} step '{pattern}' from '{provider}' conflicts: {e}"
            ) from e

        self._definitions[(step_type, pattern)] = func
        self._requires[func] = tuple(dict.fromkeys(self._requires.get(func, ()) + tuple(requires)))
        self._owners[func] = provider

    def find(self, step: Any) -> StepMatch | None:
        """Match a parsed step against the dispatch table."""
        match = self._steps.find_match(step)
        if match is None:
            return None

        args: list[Any] = []
        kwargs: dict[str, Any] = {}
        for argument in match.arguments or ():
            if argument.name is not None:
                kwargs[argument.name] = argument.value
            else:
                args.append(argument.value)

        return StepMatch(
            func=match.func,
            args=tuple(args),
            kwargs=kwargs,
            requires=self._requires.get(match.func, ()),
            provider=self._owners.get(match.func, ""),
        )

    def catalogue(self) -> dict[str, Key]:
        """Return every key known to the run, by name."""
        return dict(self._catalogue)

    def initialize_suite(self, suite: Any) -> None:
        """Let providers register their suite-level hooks."""
        for provider in self.providers:
            initializer = getattr(provider, "initialize_suite", None)
            if initializer is not None:
                initializer(suite)

    def __len__(self) -> int:
        return len(self._definitions)
