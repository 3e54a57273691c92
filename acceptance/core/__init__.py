"""Scenario execution and test environment lifecycle."""

from acceptance.core.environment import Codec, Key, TestEnvironment
from acceptance.core.errors import (
    AcceptanceError,
    ConfigurationError,
    NotBoundError,
    PendingStepError,
    PersistenceError,
)

__all__ = [
    "AcceptanceError",
    "Codec",
    "ConfigurationError",
    "Key",
    "NotBoundError",
    "PendingStepError",
    "PersistenceError",
    "TestEnvironment",
]
