"""
NF Log Book.

Stores the narrative log lines attached to each network function and
notifies listeners (log panels, console echo) as entries arrive.
"""

import logging
from typing import Callable, Optional

from models.logs import LogEntry, LogLevel

logger = logging.getLogger(__name__)

_STDLIB_LEVELS = {
    LogLevel.DEBUG: logging.DEBUG,
    LogLevel.INFO: logging.INFO,
    LogLevel.SUCCESS: logging.INFO,
    LogLevel.WARNING: logging.WARNING,
    LogLevel.ERROR: logging.ERROR,
}

LogListener = Callable[[LogEntry], None]


class LogBook:
    """
    Bounded per-NF log storage.

    Args:
        clock: Returns the current time in ms; normally the scheduler's now()
        max_logs_per_nf: Oldest entries are dropped beyond this count
    """

    def __init__(self, clock: Callable[[], float], max_logs_per_nf: int = 100):
        self._clock = clock
        self.max_logs_per_nf = max_logs_per_nf
        self._logs: dict[str, list[LogEntry]] = {}
        self._listeners: list[LogListener] = []

    def add_log(self, nf_id: str, level: LogLevel, message: str,
                details: Optional[dict] = None) -> LogEntry:
        entry = LogEntry(
            nf_id=nf_id,
            timestamp=self._clock(),
            level=level,
            message=message,
            details=dict(details or {}),
        )

        nf_logs = self._logs.setdefault(nf_id, [])
        nf_logs.append(entry)
        if len(nf_logs) > self.max_logs_per_nf:
            del nf_logs[:len(nf_logs) - self.max_logs_per_nf]

        logger.log(_STDLIB_LEVELS[level], f"[{nf_id}] {message}")

        for listener in list(self._listeners):
            try:
                listener(entry)
            except Exception:
                logger.exception("Log listener failed")
        return entry

    def get_logs(self, nf_id: str) -> list[LogEntry]:
        return list(self._logs.get(nf_id, []))

    def get_all_logs(self) -> list[LogEntry]:
        """Every entry across all NFs in timestamp order."""
        entries = [e for nf_logs in self._logs.values() for e in nf_logs]
        return sorted(entries, key=lambda e: e.timestamp)

    def clear_logs(self, nf_id: str):
        self._logs.pop(nf_id, None)

    def clear_all(self):
        self._logs.clear()

    def add_listener(self, listener: LogListener):
        if listener not in self._listeners:
            self._listeners.append(listener)

    def remove_listener(self, listener: LogListener):
        if listener in self._listeners:
            self._listeners.remove(listener)
