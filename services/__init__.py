"""Services package."""

from .address_allocator import AddressAllocator
from .topology_store import TopologyStore, TopologyEvent
from .connectivity import ConnectivityResolver
from .scheduler import (
    Scheduler,
    ManualScheduler,
    QtScheduler,
    TaskRegistry,
    TimedSequence,
    TimerHandle,
)
from .log_book import LogBook
from .connection_manager import ConnectionManager
from .lifecycle import (
    LifecycleEngine,
    ConfigUpdateResult,
    ConfigError,
    calculate_auto_position,
)
from .diagnostics import ReachabilitySimulator, PingManager
from .settings_manager import (
    SettingsManager,
    SimulatorSettings,
    AddressSettings,
    LifecycleSettings,
    ReachabilitySettings,
    PingSettings,
    LogSettings,
    get_settings,
    reset_settings_manager,
)
from .simulator import SBASimulator

__all__ = [
    "AddressAllocator",
    "TopologyStore",
    "TopologyEvent",
    "ConnectivityResolver",
    # Scheduling
    "Scheduler",
    "ManualScheduler",
    "QtScheduler",
    "TaskRegistry",
    "TimedSequence",
    "TimerHandle",
    "LogBook",
    "ConnectionManager",
    # Lifecycle
    "LifecycleEngine",
    "ConfigUpdateResult",
    "ConfigError",
    "calculate_auto_position",
    # Diagnostics
    "ReachabilitySimulator",
    "PingManager",
    # Settings
    "SettingsManager",
    "SimulatorSettings",
    "AddressSettings",
    "LifecycleSettings",
    "ReachabilitySettings",
    "PingSettings",
    "LogSettings",
    "get_settings",
    "reset_settings_manager",
    "SBASimulator",
]
