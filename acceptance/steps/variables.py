"""Substitution of ``${NAME}`` placeholders from bound stub handles."""

from __future__ import annotations

from string import Template
from typing import Any

from acceptance.core.environment import TestEnvironment


def variables_of(env: TestEnvironment) -> dict[str, str]:
    """Collect variables exposed by bound values.

    Any bound value with an ``as_variables()`` method contributes to the
    mapping, so step modules can reference each other's handles in step
    text without importing each other.
    """
    variables: dict[str, str] = {}
    for value in env.bindings(local_only=False).values():
        provider: Any = getattr(value, "as_variables", None)
        if callable(provider):
            variables.update({k: str(v) for k, v in provider().items()})
    return variables


def expand(text: str, env: TestEnvironment) -> str:
    """Replace known ``${NAME}`` placeholders, leaving unknown ones as-is."""
    return Template(text).safe_substitute(variables_of(env))
