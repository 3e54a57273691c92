"""Exception taxonomy for the acceptance orchestrator."""

from __future__ import annotations


class AcceptanceError(Exception):
    """Base exception for orchestrator failures."""


class ConfigurationError(AcceptanceError):
    """Raised when the run cannot start because of its configuration.

    Configuration errors are fatal and are raised before any scenario
    executes.
    """


class SnapshotNotFoundError(ConfigurationError):
    """Raised when a restore is requested but no snapshot was persisted."""

    def __init__(self, identity: str, path: str) -> None:
        super().__init__(
            f"No persisted environment for scenario '{identity}' (expected {path}); "
            "run once with --persist before using --restore"
        )
        self.identity = identity
        self.path = path


class PersistenceError(AcceptanceError):
    """Raised when a snapshot cannot be written, read or decoded."""


class SnapshotCorruptError(PersistenceError):
    """Raised when a snapshot exists but cannot be interpreted."""

    def __init__(self, path: str, reason: str) -> None:
        super().__init__(f"Corrupt snapshot {path}: {reason}")
        self.path = path
        self.reason = reason


class SnapshotConflictError(PersistenceError):
    """Raised when a scenario identity is persisted twice within one run."""


class SuiteSetupError(AcceptanceError):
    """Raised when suite-level setup fails; fatal to the whole run."""


class TeardownError(AcceptanceError):
    """Raised when owned resources could not be disposed after a scenario."""


class StepRegistrationError(AcceptanceError):
    """Raised when step modules contribute conflicting matchers or keys."""


class NotBoundError(AcceptanceError, KeyError):
    """Raised when reading a key that is not bound in the environment.

    Distinct from a key bound to ``None``, which is a legal value.
    """

    def __init__(self, key_name: str) -> None:
        super().__init__(key_name)
        self.key_name = key_name

    def __str__(self) -> str:
        return f"key '{self.key_name}' is not bound in the test environment"


class MissingPreconditionError(AcceptanceError, AssertionError):
    """Raised when a step requires a key that no earlier step has bound."""

    def __init__(self, step_text: str, key_name: str, owner: str) -> None:
        super().__init__(
            f"step '{step_text}' requires '{key_name}' which is provided by the "
            f"'{owner}' steps; add a step from that module before this one"
        )
        self.step_text = step_text
        self.key_name = key_name
        self.owner = owner


class PendingStepError(AcceptanceError):
    """Raised by a step implementation that is not written yet."""


class RunAbortedError(AcceptanceError):
    """Raised inside a scenario when the run was aborted mid-flight."""
