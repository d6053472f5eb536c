"""
Diagnostics result models.

Ping replies, aggregated statistics and subnet scan results produced by
the reachability simulator. Aggregates are derived deterministically from
the individual replies.
"""

from dataclasses import dataclass, field
from typing import Optional
import uuid


@dataclass
class PingReply:
    """Outcome of a single simulated ICMP echo."""
    sequence: int = 1
    success: bool = False
    time_ms: Optional[int] = None   # Round trip time, only set on success
    ttl: Optional[int] = None
    timed_out: bool = False


@dataclass
class PingStatistics:
    """Windows-style ping summary."""
    sent: int = 0
    received: int = 0
    min_ms: Optional[int] = None
    max_ms: Optional[int] = None
    avg_ms: Optional[int] = None

    @property
    def lost(self) -> int:
        return self.sent - self.received

    @property
    def loss_percent(self) -> int:
        """Packet loss percentage, rounded to the nearest integer."""
        if self.sent == 0:
            return 0
        return round(self.lost / self.sent * 100)

    @classmethod
    def from_replies(cls, replies: list[PingReply]) -> "PingStatistics":
        times = [r.time_ms for r in replies if r.success and r.time_ms is not None]
        stats = cls(sent=len(replies), received=len(times))
        if times:
            stats.min_ms = min(times)
            stats.max_ms = max(times)
            stats.avg_ms = round(sum(times) / len(times))
        return stats


@dataclass
class PingSession:
    """
    One ping invocation from a source NF to a target address.

    Replies accumulate as the scheduler paces the packets; ``completed``
    flips once the summary has been produced.
    """
    id: str = field(default_factory=lambda: f"ping-{str(uuid.uuid4())[:8]}")
    source_id: str = ""
    target_ip: str = ""
    count: int = 4
    replies: list[PingReply] = field(default_factory=list)
    started_at: float = 0.0
    completed: bool = False
    cancelled: bool = False

    @property
    def statistics(self) -> PingStatistics:
        return PingStatistics.from_replies(self.replies)

    @property
    def is_active(self) -> bool:
        return not (self.completed or self.cancelled)


@dataclass
class ScanTarget:
    """A single NF probed during a subnet scan."""
    nf_id: str = ""
    name: str = ""
    ip_address: str = ""
    nf_type: str = ""
    status: str = ""
    reply: Optional[PingReply] = None

    @property
    def was_stable(self) -> bool:
        return self.status == "stable"


@dataclass
class SubnetScanResult:
    """Result of probing every other NF in the source's subnet."""
    source_id: str = ""
    subnet: str = ""
    targets: list[ScanTarget] = field(default_factory=list)
    completed: bool = False

    @property
    def stable_count(self) -> int:
        return sum(1 for t in self.targets if t.was_stable)

    @property
    def unstable_count(self) -> int:
        return len(self.targets) - self.stable_count

    @property
    def reachable_count(self) -> int:
        return sum(1 for t in self.targets if t.reply is not None and t.reply.success)

    @property
    def cidr(self) -> str:
        return f"{self.subnet}.0/24"


@dataclass
class PingHistoryEntry:
    """Record of a finished ping session kept per source NF."""
    timestamp: float = 0.0
    target_ip: str = ""
    replies: list[PingReply] = field(default_factory=list)

    @property
    def statistics(self) -> PingStatistics:
        return PingStatistics.from_replies(self.replies)
