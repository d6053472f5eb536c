"""
Network function log entries.

Narrative log lines attached to an NF (lifecycle transitions,
auto-connections, ping output) shown by the log panel.
"""

from dataclasses import dataclass, field
from enum import Enum
import uuid


class LogLevel(Enum):
    """Severity of an NF log line."""
    DEBUG = "DEBUG"
    INFO = "INFO"
    SUCCESS = "SUCCESS"
    WARNING = "WARNING"
    ERROR = "ERROR"


@dataclass
class LogEntry:
    """A single log line for a network function."""
    id: str = field(default_factory=lambda: f"log-{str(uuid.uuid4())[:8]}")
    nf_id: str = ""
    timestamp: float = 0.0
    level: LogLevel = LogLevel.INFO
    message: str = ""
    details: dict = field(default_factory=dict)

    def format(self) -> str:
        """One-line rendering used by console listeners."""
        return f"[{self.level.value}] {self.message}"
