"""Tick sources: a Qt timer-backed clock for the app and a manual one for tests."""
from __future__ import annotations

import heapq
import itertools
import logging
from abc import ABC, abstractmethod
from typing import Callable, List, Optional, Tuple

from PySide6.QtCore import QElapsedTimer, QObject, QTimer

logger = logging.getLogger(__name__)

Callback = Callable[[], None]


class TimerHandle:
    """A pending ``schedule_next`` call that may be cancelled."""

    def __init__(self, on_cancel: Optional[Callback] = None):
        self.active = True
        self._on_cancel = on_cancel

    def cancel(self) -> None:
        if self.active:
            self.active = False
            if self._on_cancel is not None:
                self._on_cancel()


class Clock(ABC):
    @abstractmethod
    def now_ms(self) -> float:
        """Monotonic milliseconds since the clock started."""

    @abstractmethod
    def schedule_next(self, callback: Callback, delay_ms: float) -> TimerHandle:
        """Run *callback* once, no earlier than *delay_ms* from now."""


class ManualClock(Clock):
    """Virtual time advanced explicitly with :meth:`advance`."""

    def __init__(self, start_ms: float = 0.0):
        self._now = float(start_ms)
        self._seq = itertools.count()
        self._queue: List[Tuple[float, int, TimerHandle, Callback]] = []

    def now_ms(self) -> float:
        return self._now

    def schedule_next(self, callback: Callback, delay_ms: float) -> TimerHandle:
        handle = TimerHandle()
        heapq.heappush(self._queue, (self._now + max(0.0, delay_ms), next(self._seq), handle, callback))
        return handle

    @property
    def pending(self) -> int:
        return sum(1 for _, _, handle, _ in self._queue if handle.active)

    def advance(self, ms: float) -> None:
        """Move time forward, firing due callbacks in deadline order."""
        target = self._now + ms
        while self._queue and self._queue[0][0] <= target:
            due, _, handle, callback = heapq.heappop(self._queue)
            self._now = max(self._now, due)
            if handle.active:
                handle.active = False
                callback()
        self._now = target

    def run_until_idle(self, step_ms: float = 1.0, limit_ms: float = 3_600_000) -> None:
        """Advance in *step_ms* increments until nothing is scheduled."""
        elapsed = 0.0
        while self.pending and elapsed < limit_ms:
            self.advance(step_ms)
            elapsed += step_ms


class QtClock(Clock):
    """Wall-clock time from QElapsedTimer; callbacks via single-shot QTimers.

    Must be created and used on the thread whose event loop runs the timers.
    """

    def __init__(self, parent: Optional[QObject] = None):
        self._owner = QObject(parent)
        self._elapsed = QElapsedTimer()
        self._elapsed.start()
        self._timers: List[QTimer] = []

    def now_ms(self) -> float:
        return float(self._elapsed.elapsed())

    def schedule_next(self, callback: Callback, delay_ms: float) -> TimerHandle:
        timer = QTimer(self._owner)
        timer.setSingleShot(True)
        self._timers.append(timer)

        def _release() -> None:
            timer.stop()
            if timer in self._timers:
                self._timers.remove(timer)
            timer.deleteLater()

        handle = TimerHandle(on_cancel=_release)

        def _fire() -> None:
            if not handle.active:
                return
            handle.active = False
            _release()
            callback()

        timer.timeout.connect(_fire)
        timer.start(max(0, int(round(delay_ms))))
        return handle
