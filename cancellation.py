"""Cooperative cancellation checked at the pipeline's suspension points."""

from __future__ import annotations

import logging
import threading

from errors import Cancelled

LOGGER = logging.getLogger(__name__)


class CancellationToken:
    """Thread-safe flag with an interruptible sleep.

    Long-running stages call ``raise_if_cancelled`` before each request or
    batch and ``sleep`` for rate-limit waits, so a ``cancel()`` from another
    thread or a signal handler stops them promptly.
    """

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        if not self._event.is_set():
            LOGGER.warning("Cancellation requested")
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self, stage: str = "", **progress: int) -> None:
        if self._event.is_set():
            raise Cancelled(f"Cancelled during {stage or 'run'}", stage=stage, **progress)

    def sleep(self, seconds: float, stage: str = "", **progress: int) -> None:
        """Wait ``seconds`` unless cancelled first; raise ``Cancelled`` if so."""
        self.raise_if_cancelled(stage, **progress)
        if self._event.wait(timeout=seconds):
            raise Cancelled(f"Cancelled during {stage or 'run'}", stage=stage, **progress)
