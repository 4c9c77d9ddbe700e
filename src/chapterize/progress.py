from __future__ import annotations

import logging
import threading
from typing import Callable, Mapping

from .deadline import StopSignal

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[Mapping[str, object]], None]

SCAN_SHARE = 50.0


class ProgressReporter:
    """Forward progress events, never letting the percentage go backwards."""

    def __init__(self, callback: ProgressCallback | None, stop: StopSignal) -> None:
        self._callback = callback
        self._stop = stop
        self._lock = threading.Lock()
        self.percentage = 0.0

    def report(self, event: str, percentage: float, **fields: object) -> None:
        with self._lock:
            value = min(100.0, max(self.percentage, float(percentage)))
            self.percentage = value
        if self._callback is None:
            return
        payload: dict[str, object] = {
            "event": event,
            "percentage": value,
            "elapsed": self._stop.elapsed,
        }
        payload.update(fields)
        try:
            self._callback(payload)
        except Exception:
            logger.exception("Progress callback failed for %s event", event)


__all__ = ["ProgressCallback", "ProgressReporter", "SCAN_SHARE"]
