from __future__ import annotations

import threading
import time
from typing import Callable

DEFAULT_TIMEOUT_SECONDS = 60.0

STOP_TIMEOUT = "timeout"
STOP_CANCELLED = "cancelled"


class Deadline:
    """Wall-clock budget measured from construction."""

    def __init__(
        self,
        seconds: float | None,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.seconds = seconds
        self._clock = clock
        self.started_at = clock()

    @classmethod
    def expired_now(cls) -> "Deadline":
        return cls(0.0)

    @property
    def elapsed(self) -> float:
        return max(0.0, self._clock() - self.started_at)

    @property
    def remaining(self) -> float | None:
        if self.seconds is None:
            return None
        return max(0.0, self.seconds - self.elapsed)

    def expired(self) -> bool:
        if self.seconds is None:
            return False
        return self.elapsed >= self.seconds


class StopSignal:
    """
    Cooperative stop flag shared by a segmentation run.

    Long loops call :meth:`should_stop` after bounded units of work. The
    signal trips either when the deadline passes or when :meth:`cancel` is
    called; once tripped it stays tripped and remembers why.
    """

    def __init__(self, deadline: Deadline | None = None) -> None:
        self.deadline = deadline if deadline is not None else Deadline(None)
        self._event = threading.Event()
        self._lock = threading.Lock()
        self._reason: str | None = None

    def cancel(self) -> None:
        self._trip(STOP_CANCELLED)

    def _trip(self, reason: str) -> None:
        with self._lock:
            if self._reason is None:
                self._reason = reason
            self._event.set()

    def should_stop(self) -> bool:
        if self._event.is_set():
            return True
        if self.deadline.expired():
            self._trip(STOP_TIMEOUT)
            return True
        return False

    @property
    def reason(self) -> str | None:
        with self._lock:
            return self._reason

    @property
    def elapsed(self) -> float:
        return self.deadline.elapsed


__all__ = [
    "DEFAULT_TIMEOUT_SECONDS",
    "Deadline",
    "STOP_CANCELLED",
    "STOP_TIMEOUT",
    "StopSignal",
]
