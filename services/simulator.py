"""
SBA Simulator.

Composition root: builds one instance of every engine, wires them
together and exposes the operations the UI/terminal layer calls.
"""

import logging
import random
from typing import Callable, Optional, Union

from models.diagnostics import PingHistoryEntry, PingSession, SubnetScanResult
from models.logs import LogEntry
from models.network import (
    Bus,
    BusConnection,
    Connection,
    ConnectionOptions,
    HttpProtocol,
    NetworkFunction,
    NFType,
    Position,
)
from .address_allocator import AddressAllocator
from .connection_manager import ConnectionManager
from .connectivity import ConnectivityResolver
from .diagnostics import PingManager, ReachabilitySimulator
from .lifecycle import ConfigUpdateResult, LifecycleEngine
from .log_book import LogBook
from .scheduler import ManualScheduler, Scheduler, TaskRegistry
from .settings_manager import SimulatorSettings
from .topology_store import Subscriber, TopologyStore

logger = logging.getLogger(__name__)


class SBASimulator:
    """
    Owns the store and every engine built on it.

    Args:
        settings: Timing, address and probability settings
        scheduler: Timer backend; a ManualScheduler if omitted
        rng: Random source shared by every engine
        seed: Seed for a new Random when rng is not given
    """

    def __init__(self, settings: Optional[SimulatorSettings] = None,
                 scheduler: Optional[Scheduler] = None,
                 rng: Optional[random.Random] = None,
                 seed: Optional[int] = None):
        self.settings = settings or SimulatorSettings()
        self.scheduler = scheduler or ManualScheduler()
        self.rng = rng or random.Random(seed)

        self.store = TopologyStore()
        self.tasks = TaskRegistry(self.scheduler)
        self.allocator = AddressAllocator(self.settings.addresses, self.rng)
        self.resolver = ConnectivityResolver(self.store)
        self.log_book = LogBook(self.scheduler.now, self.settings.logs.max_logs_per_nf)
        self.connections = ConnectionManager(self.store, self.scheduler.now)
        self.lifecycle = LifecycleEngine(
            self.store, self.allocator, self.resolver, self.connections,
            self.tasks, self.log_book, self.settings.lifecycle, self.rng,
        )
        self.reachability = ReachabilitySimulator(
            self.store, self.resolver, self.settings.reachability, self.rng,
        )
        self.pings = PingManager(
            self.store, self.reachability, self.tasks, self.log_book, self.settings.ping,
        )
        logger.debug("Simulator initialized")

    # NF CRUD

    def create_nf(self, nf_type: Union[NFType, str],
                  position: Union[Position, tuple, None] = None) -> NetworkFunction:
        return self.lifecycle.create_network_function(nf_type, position)

    def delete_nf(self, nf_id: str) -> bool:
        return self.lifecycle.delete_network_function(nf_id)

    def get_nf(self, nf_id: str) -> Optional[NetworkFunction]:
        return self.store.get_nf_by_id(nf_id)

    def get_all_nfs(self) -> list[NetworkFunction]:
        return self.store.get_all_nfs()

    def move_nf(self, nf_id: str, position: Union[Position, tuple]) -> Optional[NetworkFunction]:
        return self.lifecycle.move_nf(nf_id, position)

    def rename_nf(self, nf_id: str, name: str) -> Optional[NetworkFunction]:
        return self.lifecycle.rename_nf(nf_id, name)

    def update_nf_config(self, nf_id: str, **config) -> ConfigUpdateResult:
        return self.lifecycle.update_nf_config(nf_id, **config)

    def update_global_protocol(self, new_protocol: Union[HttpProtocol, str]) -> int:
        return self.lifecycle.update_global_protocol(new_protocol)

    def start_service(self, nf_id: str) -> bool:
        return self.lifecycle.start_service(nf_id)

    def stop_service(self, nf_id: str) -> bool:
        return self.lifecycle.stop_service(nf_id)

    # Connections and buses

    def connect(self, source_id: str, target_id: str,
                options: Optional[ConnectionOptions] = None) -> Optional[Connection]:
        return self.connections.create_connection(source_id, target_id, options)

    def disconnect(self, conn_id: str) -> Optional[Connection]:
        return self.connections.remove_connection(conn_id)

    def create_bus(self, name: Optional[str] = None, orientation: str = "horizontal",
                   position: Optional[Position] = None, length: float = 400) -> Bus:
        return self.connections.create_bus(name, orientation, position, length)

    def remove_bus(self, bus_id: str) -> Optional[Bus]:
        return self.connections.remove_bus(bus_id)

    def attach_to_bus(self, nf_id: str, bus_id: str,
                      interface_name: Optional[str] = None) -> Optional[BusConnection]:
        return self.connections.connect_nf_to_bus(nf_id, bus_id, interface_name)

    def detach_from_bus(self, nf_id: str, bus_id: str) -> bool:
        return self.connections.disconnect_nf_from_bus(nf_id, bus_id)

    # Diagnostics

    def ping_once(self, source_id: str, target_ip: str, count: Optional[int] = None,
                  on_complete: Optional[Callable[[PingSession], None]] = None
                  ) -> Optional[PingSession]:
        return self.pings.ping_once(source_id, target_ip, count, on_complete)

    def ping_subnet(self, source_id: str,
                    on_complete: Optional[Callable[[SubnetScanResult], None]] = None
                    ) -> Optional[SubnetScanResult]:
        return self.pings.ping_subnet(source_id, on_complete)

    def cancel_ping(self, nf_id: str) -> bool:
        return self.pings.cancel_ping(nf_id)

    def get_ping_history(self, nf_id: str) -> list[PingHistoryEntry]:
        return self.pings.get_ping_history(nf_id)

    # Observation

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        return self.store.subscribe(callback)

    def get_logs(self, nf_id: str) -> list[LogEntry]:
        return self.log_book.get_logs(nf_id)

    def reset(self):
        """Cancel every pending timer and clear topology, logs, history and counters."""
        self.tasks.clear()
        self.pings.reset()
        self.store.clear_all()
        self.log_book.clear_all()
        self.lifecycle.reset()
        self.connections.reset()
        logger.info("Simulator reset")
