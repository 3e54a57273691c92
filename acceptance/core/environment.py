"""Scenario-scoped test environment store.

Every piece of state a scenario needs (the scenario handle, the reporting
sink, run directives and the handles created by step modules) is bound in
a ``TestEnvironment`` under a typed ``Key``. Each scenario gets its own
environment derived from the run's root environment, so concurrently
running scenarios never observe each other's bindings.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from typing import Any, Callable, Iterator

from acceptance.core.errors import NotBoundError
from acceptance.core.resources import ResourceRegistry

_MISSING = object()


@dataclass(frozen=True)
class Codec:
    """Converts a bound value to and from a JSON-compatible payload.

    ``load`` is expected to reacquire the live handle described by the
    payload (reconnect, re-listen, reopen) rather than create a new one.
    Restored handles stay owned by the snapshot, so a snapshot can be
    restored any number of times. ``detach`` releases only what ``load``
    acquired in this process (a re-opened listener) and must leave the
    persisted resource intact; the restoring environment calls it at
    teardown.
    """

    dump: Callable[[Any], Any]
    load: Callable[[Any], Any]
    detach: Callable[[Any], None] | None = None


@dataclass(frozen=True)
class Key:
    """Typed key into a ``TestEnvironment``.

    Attributes
    ----------
    name : str
        Unique name of the key, also used in persisted snapshots
    owner : str
        Step module responsible for creating values under this key
    codec : Codec | None
        Present when values under this key can be persisted
    type : type | None
        Expected value type, checked on ``set`` when given
    """

    name: str
    owner: str
    codec: Codec | None = field(default=None, compare=False, repr=False)
    type: type | None = field(default=None, compare=False, repr=False)

    @property
    def persistable(self) -> bool:
        return self.codec is not None


SCENARIO = Key("testenv.scenario", owner="testenv")
TESTING = Key("testenv.testing", owner="testenv")
LOGGER = Key("testenv.logger", owner="testenv")
OPTIONS = Key("testenv.options", owner="testenv")
NO_COLORS = Key("testenv.no_colors", owner="testenv", type=bool)
PERSIST_STUB_ENVIRONMENT = Key("testenv.persist", owner="testenv", type=bool)
RESTORE_STUB_ENVIRONMENT = Key("testenv.restore", owner="testenv", type=bool)

WELL_KNOWN_KEYS = (
    SCENARIO,
    TESTING,
    LOGGER,
    OPTIONS,
    NO_COLORS,
    PERSIST_STUB_ENVIRONMENT,
    RESTORE_STUB_ENVIRONMENT,
)


class TestEnvironment:
    """Mapping from ``Key`` to value with parent fallback and owned resources.

    A child created with ``derive`` sees its parent's bindings, but its own
    writes stay local until explicitly copied back with ``propagate``.

    Parameters
    ----------
    parent : TestEnvironment | None
        Environment whose bindings are visible through this one
    """

    __test__ = False

    def __init__(self, parent: TestEnvironment | None = None) -> None:
        self.parent = parent
        self.resources = ResourceRegistry()
        self._values: dict[Key, Any] = {}
        self._lock = threading.RLock()

    def get(self, key: Key, default: Any = _MISSING) -> Any:
        """Return the value bound to ``key`` here or in an ancestor.

        Raises
        ------
        NotBoundError
            If the key is unbound and no default was given
        """
        value = self._lookup(key)
        if value is not _MISSING:
            return value

        if default is _MISSING:
            raise NotBoundError(key.name)

        return default

    def _lookup(self, key: Key) -> Any:
        env: TestEnvironment | None = self
        while env is not None:
            with env._lock:
                if key in env._values:
                    return env._values[key]
            env = env.parent
        return _MISSING

    def set(self, key: Key, value: Any) -> None:
        """Bind ``value`` under ``key`` in this environment only."""
        if key.type is not None and value is not None and not isinstance(value, key.type):
            raise TypeError(
                f"value for '{key.name}' must be {key.type.__name__}, "
                f"got {type(value).__name__}"
            )

        with self._lock:
            self._values[key] = value

    def is_bound(self, key: Key) -> bool:
        return self._lookup(key) is not _MISSING

    def __contains__(self, key: object) -> bool:
        return isinstance(key, Key) and self.is_bound(key)

    def derive(self) -> TestEnvironment:
        """Create a child environment that reads through to this one."""
        return TestEnvironment(parent=self)

    def propagate(self, *keys: Key) -> None:
        """Copy local bindings of ``keys`` into the parent environment.

        Raises
        ------
        NotBoundError
            If one of the keys is not bound locally
        RuntimeError
            If this environment has no parent
        """
        if self.parent is None:
            raise RuntimeError("cannot propagate from a root environment")

        with self._lock:
            missing = [k.name for k in keys if k not in self._values]
            if missing:
                raise NotBoundError(missing[0])
            values = {k: self._values[k] for k in keys}

        for key, value in values.items():
            self.parent.set(key, value)

    def own(self, key: Key, value: Any, dispose: Callable[[Any], None]) -> Any:
        """Bind a resource handle and take ownership of its disposal.

        Returns
        -------
        Any
            The bound value, for call chaining in steps
        """
        self.set(key, value)
        self.resources.register(key.name, value, dispose, owner=key.owner)
        return value

    def release(self, key: Key) -> None:
        """Give up ownership of the resource bound under ``key``."""
        self.resources.release(key.name)

    def bindings(self, local_only: bool = True) -> dict[Key, Any]:
        """Return a copy of the bindings, optionally including ancestors."""
        chain: list[TestEnvironment] = []
        env: TestEnvironment | None = self
        while env is not None:
            chain.append(env)
            if local_only:
                break
            env = env.parent

        merged: dict[Key, Any] = {}
        for env in reversed(chain):
            with env._lock:
                merged.update(env._values)

        return merged

    def persistable(self) -> dict[Key, Any]:
        """Return local bindings whose keys can be snapshotted."""
        return {k: v for k, v in self.bindings().items() if k.persistable}

    def close(self) -> list[str]:
        """Dispose owned resources, returning disposal error messages."""
        return self.resources.cleanup_all()

    def __iter__(self) -> Iterator[Key]:
        return iter(self.bindings(local_only=False))
