"""Cancellation context handed to scheduled tasks and delivery transports."""

import threading
import time
from typing import Optional


class TaskContext:
    """Cancellable context with an optional absolute deadline.

    The context counts as cancelled once cancel() is called or the deadline
    passes. Blocking waits should go through wait() so they wake up early
    on cancellation.

    Args:
        timeout: Seconds from now until the context expires. None means the
            context only ends through cancel().
    """

    def __init__(self, timeout: Optional[float] = None):
        self._event = threading.Event()
        self._deadline = time.monotonic() + timeout if timeout is not None else None

    @classmethod
    def background(cls) -> "TaskContext":
        """A context that never expires on its own."""
        return cls()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        if self._event.is_set():
            return True
        return self._deadline is not None and time.monotonic() >= self._deadline

    @property
    def timed_out(self) -> bool:
        return (
            not self._event.is_set()
            and self._deadline is not None
            and time.monotonic() >= self._deadline
        )

    def remaining(self) -> Optional[float]:
        """Seconds left before the deadline, None when there is none."""
        if self._deadline is None:
            return None
        return max(0.0, self._deadline - time.monotonic())

    def wait(self, seconds: float) -> bool:
        """Sleep up to seconds; return True if the context got cancelled."""
        remaining = self.remaining()
        if remaining is not None:
            seconds = min(seconds, remaining)
        self._event.wait(max(0.0, seconds))
        return self.cancelled
