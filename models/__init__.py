"""
Models package.

This package contains all data models for the SBA topology simulator.

- Topology (NetworkFunction, Connection, Bus, BusConnection)
- Diagnostics (PingReply, PingStatistics, PingSession, SubnetScanResult)
- Logs (LogLevel, LogEntry)
"""

from .network import (
    NFType,
    NFStatus,
    HttpProtocol,
    ConnectionType,
    Position,
    NFConfig,
    NetworkFunction,
    ConnectionOptions,
    Connection,
    Bus,
    BusConnection,
    NF_DEFINITIONS,
    DEFAULT_NF_DEFINITION,
    AUTO_CONNECTION_RULES,
    DEPENDENCY_RULES,
    STATUS_COLORS,
    REFERENCE_POINTS,
    subnet_of,
    service_interface_name,
)
from .diagnostics import (
    PingReply,
    PingStatistics,
    PingSession,
    ScanTarget,
    SubnetScanResult,
    PingHistoryEntry,
)
from .logs import (
    LogLevel,
    LogEntry,
)


__all__ = [
    # Topology
    "NFType",
    "NFStatus",
    "HttpProtocol",
    "ConnectionType",
    "Position",
    "NFConfig",
    "NetworkFunction",
    "ConnectionOptions",
    "Connection",
    "Bus",
    "BusConnection",
    "NF_DEFINITIONS",
    "DEFAULT_NF_DEFINITION",
    "AUTO_CONNECTION_RULES",
    "DEPENDENCY_RULES",
    "STATUS_COLORS",
    "REFERENCE_POINTS",
    "subnet_of",
    "service_interface_name",
    # Diagnostics
    "PingReply",
    "PingStatistics",
    "PingSession",
    "ScanTarget",
    "SubnetScanResult",
    "PingHistoryEntry",
    # Logs
    "LogLevel",
    "LogEntry",
]
