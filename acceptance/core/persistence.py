"""Persisting and restoring scenario environments.

A persisted snapshot lets a failing scenario be replayed against the same
stub resources (listeners, keys, repositories, namespaces) without
provisioning them again. Persisting is attempted after every scenario but
only takes effect when the run was started with the persist directive;
restoring is an explicit opt-in and fails loudly when nothing was
persisted.
"""

from __future__ import annotations

import hashlib
import json
import logging
import os
import re
import tempfile
import threading
from collections.abc import Iterable, Mapping
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from acceptance.constants import SNAPSHOT_FORMAT, SNAPSHOT_VERSION
from acceptance.core.environment import (
    PERSIST_STUB_ENVIRONMENT,
    SCENARIO,
    Key,
    TestEnvironment,
)
from acceptance.core.errors import (
    PersistenceError,
    SnapshotConflictError,
    SnapshotCorruptError,
    SnapshotNotFoundError,
)

logger = logging.getLogger(__name__)


def snapshot_slug(identity: str) -> str:
    """Return a file-system friendly, collision resistant name for ``identity``."""
    readable = re.sub(r"[^a-z0-9]+", "-", identity.lower()).strip("-")[:80]
    digest = hashlib.sha1(identity.encode("utf-8")).hexdigest()[:10]
    return f"{readable}-{digest}" if readable else digest


def run_id_for(features_dir: Path) -> str:
    """Stable identifier of a run, derived from the features directory."""
    return hashlib.sha1(str(Path(features_dir).resolve()).encode("utf-8")).hexdigest()[:12]


class SnapshotStore:
    """JSON snapshot files under ``state_dir / run_id``.

    Parameters
    ----------
    state_dir : Path
        Root directory for persisted environments
    run_id : str
        Identifier of the run the snapshots belong to
    """

    def __init__(self, state_dir: Path, run_id: str) -> None:
        self.directory = Path(state_dir) / run_id

    def path_for(self, identity: str) -> Path:
        return self.directory / f"{snapshot_slug(identity)}.json"

    def write(self, identity: str, bindings: dict[str, Any]) -> Path:
        """Atomically write a snapshot for ``identity``.

        Raises
        ------
        PersistenceError
            If the bindings cannot be serialized or the file cannot be written
        """
        document = {
            "format": SNAPSHOT_FORMAT,
            "version": SNAPSHOT_VERSION,
            "scenario": identity,
            "created": datetime.now(timezone.utc).isoformat(),
            "bindings": bindings,
        }

        try:
            payload = json.dumps(document, indent=2, sort_keys=True)
        except (TypeError, ValueError) as e:
            raise PersistenceError(f"Cannot serialize environment of '{identity}': {e}") from e

        path = self.path_for(identity)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(dir=path.parent, suffix=".tmp")
            with os.fdopen(fd, "w", encoding="utf-8") as tmp_file:
                tmp_file.write(payload)
            os.replace(tmp_name, path)
        except OSError as e:
            raise PersistenceError(f"Cannot write snapshot {path}: {e}") from e

        return path

    def read(self, identity: str) -> dict[str, Any]:
        """Read the bindings persisted for ``identity``.

        Raises
        ------
        SnapshotNotFoundError
            If no snapshot exists for ``identity``
        SnapshotCorruptError
            If the snapshot exists but cannot be interpreted
        PersistenceError
            If the snapshot cannot be read
        """
        path = self.path_for(identity)

        try:
            text = path.read_text(encoding="utf-8")
        except FileNotFoundError:
            raise SnapshotNotFoundError(identity, str(path)) from None
        except UnicodeDecodeError as e:
            raise SnapshotCorruptError(str(path), "not valid UTF-8") from e
        except OSError as e:
            raise PersistenceError(f"Cannot read snapshot {path}: {e}") from e

        try:
            document = json.loads(text)
        except json.JSONDecodeError as e:
            raise SnapshotCorruptError(str(path), f"invalid JSON ({e})") from e

        if not isinstance(document, dict) or document.get("format") != SNAPSHOT_FORMAT:
            raise SnapshotCorruptError(str(path), "not an acceptance snapshot")

        version = document.get("version")
        if isinstance(version, bool) or not isinstance(version, int) or version > SNAPSHOT_VERSION:
            raise SnapshotCorruptError(str(path), f"unsupported version {version!r}")

        if document.get("scenario") != identity:
            raise SnapshotCorruptError(
                str(path), f"belongs to scenario {document.get('scenario')!r}"
            )

        bindings = document.get("bindings")
        if not isinstance(bindings, dict):
            raise SnapshotCorruptError(str(path), "bindings must be an object")

        return bindings


class PersistenceController:
    """Snapshots persistable bindings of an environment and restores them.

    Parameters
    ----------
    store : SnapshotStore
        Where snapshots are written and read
    catalogue : Mapping[str, Key]
        All keys known to the run, by name, used to decode snapshots
    """

    def __init__(self, store: SnapshotStore, catalogue: Mapping[str, Key]) -> None:
        self.store = store
        self.catalogue = dict(catalogue)
        self._persisted: set[str] = set()
        self._lock = threading.Lock()

    def persist(self, env: TestEnvironment) -> bool:
        """Persist ``env`` if the persist directive is set.

        Ownership of every persisted resource moves to the snapshot, so
        those resources are not disposed when the environment closes.

        Returns
        -------
        bool
            True if a snapshot was written

        Raises
        ------
        PersistenceError
            If a value cannot be encoded or the snapshot cannot be written
        SnapshotConflictError
            If the scenario was already persisted during this run
        """
        if not env.get(PERSIST_STUB_ENVIRONMENT, False):
            return False

        identity = env.get(SCENARIO).identity

        with self._lock:
            if identity in self._persisted:
                raise SnapshotConflictError(
                    f"Scenario '{identity}' was already persisted in this run"
                )
            self._persisted.add(identity)

        persistable = env.persistable()
        bindings: dict[str, Any] = {}
        for key, value in persistable.items():
            try:
                bindings[key.name] = key.codec.dump(value)
            except Exception as e:
                raise PersistenceError(
                    f"Cannot persist '{key.name}' owned by {key.owner}: {e}"
                ) from e

        path = self.store.write(identity, bindings)

        for key in persistable:
            env.release(key)

        logger.info("Persisted %d binding(s) of '%s' to %s", len(bindings), identity, path)
        return True

    def restore(self, env: TestEnvironment) -> list[Key]:
        """Bind the values persisted for the environment's scenario.

        Restored resources remain owned by the snapshot: closing ``env``
        only detaches them, so the same snapshot can be restored again.

        Returns
        -------
        list[Key]
            Keys restored into ``env``

        Raises
        ------
        SnapshotNotFoundError, SnapshotCorruptError
            If the snapshot is missing or unreadable
        PersistenceError
            If a codec cannot reacquire a persisted handle
        """
        identity = env.get(SCENARIO).identity
        bindings = self.store.read(identity)

        restored: list[Key] = []
        for name, payload in bindings.items():
            key = self.catalogue.get(name)
            if key is None or key.codec is None:
                logger.warning("Ignoring unknown persisted key '%s' for '%s'", name, identity)
                continue

            try:
                value = key.codec.load(payload)
            except Exception as e:
                raise PersistenceError(
                    f"Cannot restore '{name}' owned by {key.owner}: {e}"
                ) from e

            if key.codec.detach is not None:
                env.own(key, value, key.codec.detach)
            else:
                env.set(key, value)
            restored.append(key)

        logger.info("Restored %d binding(s) of '%s'", len(restored), identity)
        return restored

    def check(self, identities: Iterable[str]) -> None:
        """Verify a readable snapshot exists for every identity.

        Raises
        ------
        SnapshotNotFoundError
            For the first identity without a snapshot
        SnapshotCorruptError
            For the first snapshot that cannot be interpreted
        """
        for identity in identities:
            self.store.read(identity)
