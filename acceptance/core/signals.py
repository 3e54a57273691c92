"""Signal handling that lets in-flight scenarios finish their after-hooks."""

from __future__ import annotations

import logging
import signal
import threading
import types
from collections.abc import Callable, Iterator
from contextlib import contextmanager

logger = logging.getLogger(__name__)

HANDLED_SIGNALS = (signal.SIGINT, signal.SIGTERM)


class AbortManager:
    """Thread-safe abort flag shared by the runner and its workers.

    Aborting never interrupts a running step; workers observe the flag
    between steps and before starting a scenario, so every started
    scenario still reaches its after-hooks.
    """

    def __init__(self) -> None:
        self._event = threading.Event()
        self._lock = threading.Lock()
        self._reason: str | None = None

    def abort(self, reason: str = "run aborted") -> None:
        """Request an abort; the first reason wins."""
        with self._lock:
            if self._reason is None:
                self._reason = reason
            self._event.set()

    @property
    def aborted(self) -> bool:
        return self._event.is_set()

    @property
    def reason(self) -> str | None:
        with self._lock:
            return self._reason


@contextmanager
def abort_on_signals(abort: Callable[[str], None]) -> Iterator[None]:
    """Route SIGINT/SIGTERM to ``abort`` for the duration of the block.

    Signal handlers can only be installed from the main thread; elsewhere
    the block runs without them. Previous handlers are restored on exit.
    """
    if threading.current_thread() is not threading.main_thread():
        yield
        return

    def handler(signum: int, frame: types.FrameType | None) -> None:
        name = signal.Signals(signum).name
        logger.warning("Received %s, waiting for running scenarios to finish their after-hooks", name)
        abort(f"received {name}")

    previous = {sig: signal.getsignal(sig) for sig in HANDLED_SIGNALS}
    for sig in HANDLED_SIGNALS:
        signal.signal(sig, handler)

    try:
        yield
    finally:
        for sig, old_handler in previous.items():
            signal.signal(sig, old_handler if old_handler is not None else signal.SIG_DFL)
