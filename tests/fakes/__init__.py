"""Test fake implementations for dependency injection testing."""

from tests.fakes.fake_steps import FakeHandle, FakeSteps, HANDLE, VALUE

__all__ = ["FakeHandle", "FakeSteps", "HANDLE", "VALUE"]
