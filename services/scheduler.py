"""
Scheduler Service.

Timer abstraction used for every delayed continuation in the simulator
(status transitions, auto-connection attempts, ping pacing).

- ManualScheduler: virtual clock advanced explicitly, for tests and
  offline scripting
- QtScheduler: real single-shot QTimers on the Qt event loop
- TaskRegistry: pending timers keyed by entity id so that deleting an
  entity cancels all of its continuations at once
- TimedSequence: runs a generator that yields delays, so paced
  multi-step scripts read as straight-line code
"""

import heapq
import itertools
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Generator, Optional

from PyQt6.QtCore import QObject, QTimer

logger = logging.getLogger(__name__)

_handle_ids = itertools.count(1)


@dataclass(eq=False)
class TimerHandle:
    """A scheduled callback."""
    due_ms: float
    callback: Callable[[], None]
    id: int = field(default_factory=lambda: next(_handle_ids))
    cancelled: bool = False
    fired: bool = False

    @property
    def pending(self) -> bool:
        return not (self.cancelled or self.fired)


class Scheduler:
    """Base interface: millisecond clock plus one-shot callbacks."""

    def now(self) -> float:
        raise NotImplementedError

    def call_later(self, delay_ms: float, callback: Callable[[], None]) -> TimerHandle:
        raise NotImplementedError

    def cancel(self, handle: TimerHandle):
        handle.cancelled = True


class ManualScheduler(Scheduler):
    """
    Deterministic scheduler driven by ``advance()``.

    Callbacks run in due-time order; ties run in the order they were
    scheduled. A callback may schedule further callbacks, which run in
    the same ``advance()`` call if they fall due before its end.
    """

    def __init__(self, start_ms: float = 0.0):
        self._now = float(start_ms)
        self._queue: list[tuple[float, int, TimerHandle]] = []

    def now(self) -> float:
        return self._now

    def call_later(self, delay_ms: float, callback: Callable[[], None]) -> TimerHandle:
        handle = TimerHandle(due_ms=self._now + max(0.0, delay_ms), callback=callback)
        heapq.heappush(self._queue, (handle.due_ms, handle.id, handle))
        return handle

    @property
    def pending_count(self) -> int:
        return sum(1 for _, _, h in self._queue if h.pending)

    def advance(self, delay_ms: float) -> int:
        """Move the clock forward, firing every callback that falls due. Returns how many fired."""
        target = self._now + delay_ms
        fired = 0
        while self._queue and self._queue[0][0] <= target:
            due, _, handle = heapq.heappop(self._queue)
            if not handle.pending:
                continue
            self._now = due
            handle.fired = True
            handle.callback()
            fired += 1
        self._now = target
        return fired

    def run_until_idle(self, max_ms: float = 600_000.0) -> int:
        """Fire callbacks in order until none are pending or max_ms elapses."""
        deadline = self._now + max_ms
        fired = 0
        while True:
            pending = [h for _, _, h in self._queue if h.pending]
            if not pending:
                break
            next_due = min(h.due_ms for h in pending)
            if next_due > deadline:
                break
            fired += self.advance(next_due - self._now)
        return fired


class QtScheduler(QObject, Scheduler):
    """
    Scheduler backed by single-shot QTimers.

    Requires a running Q(Core)Application event loop. Exceptions raised by
    callbacks are logged here; letting them escape a Qt slot aborts the
    process.
    """

    def __init__(self, parent: Optional[QObject] = None):
        super().__init__(parent)
        self._timers: dict[int, QTimer] = {}

    def now(self) -> float:
        return time.time() * 1000.0

    def call_later(self, delay_ms: float, callback: Callable[[], None]) -> TimerHandle:
        handle = TimerHandle(due_ms=self.now() + max(0.0, delay_ms), callback=callback)

        timer = QTimer(self)
        timer.setSingleShot(True)
        timer.timeout.connect(lambda: self._fire(handle))
        self._timers[handle.id] = timer
        timer.start(int(max(0.0, delay_ms)))
        return handle

    def cancel(self, handle: TimerHandle):
        handle.cancelled = True
        timer = self._timers.pop(handle.id, None)
        if timer is not None:
            timer.stop()
            timer.deleteLater()

    @property
    def pending_count(self) -> int:
        return len(self._timers)

    def _fire(self, handle: TimerHandle):
        timer = self._timers.pop(handle.id, None)
        if timer is not None:
            timer.deleteLater()
        if not handle.pending:
            return
        handle.fired = True
        try:
            handle.callback()
        except Exception:
            logger.exception(f"Scheduled callback {handle.id} failed")


class TaskRegistry:
    """
    Pending timers grouped by entity key.

    ``cancel_all(key)`` invalidates every continuation registered for an
    entity, which is how deletion cancels lifecycle timers.
    """

    def __init__(self, scheduler: Scheduler):
        self.scheduler = scheduler
        self._tasks: dict[str, dict[int, TimerHandle]] = {}

    def schedule(self, key: str, delay_ms: float, callback: Callable[[], None]) -> TimerHandle:
        def run():
            self._forget(key, handle)
            callback()

        handle = self.scheduler.call_later(delay_ms, run)
        self._tasks.setdefault(key, {})[handle.id] = handle
        logger.debug(f"Scheduled task {handle.id} for {key} in {delay_ms:.0f}ms")
        return handle

    def cancel(self, key: str, handle: TimerHandle):
        self.scheduler.cancel(handle)
        self._forget(key, handle)

    def cancel_all(self, key: str) -> int:
        """Cancel every pending task for key. Returns how many were cancelled."""
        handles = self._tasks.pop(key, {})
        for handle in handles.values():
            self.scheduler.cancel(handle)
        return len(handles)

    def has_pending(self, key: str) -> bool:
        return bool(self._tasks.get(key))

    def clear(self):
        for key in list(self._tasks):
            self.cancel_all(key)

    def _forget(self, key: str, handle: TimerHandle):
        handles = self._tasks.get(key)
        if handles is None:
            return
        handles.pop(handle.id, None)
        if not handles:
            del self._tasks[key]


class TimedSequence:
    """
    Drive a generator that yields delays in milliseconds.

    The code before the first ``yield`` runs synchronously in ``start()``;
    each later segment runs when its delay elapses. The generator's return
    value is passed to ``on_done``.
    """

    def __init__(self, registry: TaskRegistry, key: str,
                 steps: Generator[float, None, Any],
                 on_done: Optional[Callable[[Any], None]] = None):
        self.registry = registry
        self.key = key
        self._steps = steps
        self._on_done = on_done
        self._handle: Optional[TimerHandle] = None
        self.finished = False
        self.cancelled = False

    def start(self) -> "TimedSequence":
        self._step()
        return self

    def cancel(self):
        if self.finished or self.cancelled:
            return
        self.cancelled = True
        if self._handle is not None:
            self.registry.cancel(self.key, self._handle)
        self._steps.close()

    def _step(self):
        if self.cancelled:
            return
        try:
            delay = next(self._steps)
        except StopIteration as stop:
            self.finished = True
            if self._on_done is not None:
                self._on_done(stop.value)
            return
        self._handle = self.registry.schedule(self.key, delay, self._step)
