"""
Lifecycle Engine.

Creates network functions, drives them from starting to stable, and
attempts same-subnet auto-connections once they are stable. Also owns
NF-level edits (move, rename, config, protocol) and service start/stop.

Every delayed continuation is registered in the TaskRegistry under the
NF id, so deleting or stopping an NF cancels its pending transitions.
"""

import logging
import random
from dataclasses import dataclass, replace
from enum import Enum
from typing import Optional, Union

from models.network import (
    AUTO_CONNECTION_RULES,
    STATUS_COLORS,
    Connection,
    HttpProtocol,
    NetworkFunction,
    NFConfig,
    NFStatus,
    NFType,
    Position,
    subnet_of,
)
from models.logs import LogLevel
from .address_allocator import AddressAllocator
from .connection_manager import ConnectionManager
from .connectivity import ConnectivityResolver
from .log_book import LogBook
from .scheduler import TaskRegistry
from .settings_manager import LifecycleSettings
from .topology_store import TopologyStore

logger = logging.getLogger(__name__)

# Auto-layout grid
NFS_PER_ROW = 6
COLUMN_PITCH = 100
ROW_PITCH = 140
GRID_ORIGIN = (120, 120)


class ConfigError(Enum):
    """Reasons a manual configuration edit is rejected."""
    NOT_FOUND = "not_found"
    INVALID_ADDRESS = "invalid_address"
    INVALID_PORT = "invalid_port"
    IP_CONFLICT = "ip_conflict"
    PORT_CONFLICT = "port_conflict"
    INVALID_PROTOCOL = "invalid_protocol"


@dataclass
class ConfigUpdateResult:
    """Outcome of update_nf_config(); the NF is untouched unless success is True."""
    success: bool
    nf: Optional[NetworkFunction] = None
    error: Optional[ConfigError] = None
    error_message: str = ""

    @classmethod
    def rejected(cls, error: ConfigError, message: str) -> "ConfigUpdateResult":
        return cls(success=False, error=error, error_message=message)


def calculate_auto_position(count: int) -> Position:
    """Grid slot for the count-th NF of a type (1-based)."""
    index = max(count, 1) - 1
    row, col = divmod(index, NFS_PER_ROW)
    return Position(
        x=GRID_ORIGIN[0] + col * COLUMN_PITCH,
        y=GRID_ORIGIN[1] + row * ROW_PITCH,
    )


class LifecycleEngine:
    """
    NF creation, status transitions and auto-connection.

    State machine: starting -> stable after ``stable_delay_ms``;
    starting/stable -> stopped on stop_service(); stopped/error ->
    starting on start_service(); any -> error on fail_service().
    """

    def __init__(self, store: TopologyStore, allocator: AddressAllocator,
                 resolver: ConnectivityResolver, connections: ConnectionManager,
                 tasks: TaskRegistry, log_book: LogBook,
                 settings: Optional[LifecycleSettings] = None,
                 rng: Optional[random.Random] = None):
        self.store = store
        self.allocator = allocator
        self.resolver = resolver
        self.connections = connections
        self.tasks = tasks
        self.log_book = log_book
        self.settings = settings or LifecycleSettings()
        self._rng = rng or random.Random()

        self._counters: dict[NFType, int] = {t: 0 for t in NFType}
        self.global_protocol = HttpProtocol(self.settings.default_protocol)
        self.connections.protocol = self.global_protocol

    def _now(self) -> float:
        return self.tasks.scheduler.now()

    def _log(self, nf_id: str, level: LogLevel, message: str, **details):
        self.log_book.add_log(nf_id, level, message, details)

    # ------------------------------------------------------------------
    # Create / delete
    # ------------------------------------------------------------------

    def create_network_function(self, nf_type: Union[NFType, str],
                                position: Union[Position, tuple, None] = None) -> NetworkFunction:
        """
        Create an NF in ``starting`` state and schedule its startup.

        The address and port come from the allocator using the addresses
        in use right now. When the pool is exhausted the fallback address
        may collide; the NF is created anyway.
        """
        if isinstance(nf_type, str):
            nf_type = NFType.from_name(nf_type)

        self._counters[nf_type] += 1
        count = self._counters[nf_type]

        if position is None:
            position = calculate_auto_position(count)
        elif isinstance(position, tuple):
            position = Position(*position)

        ip_address = self.allocator.allocate_ip(self.store.used_ips())
        port = self.allocator.allocate_port(self.store.used_ports())

        now = self._now()
        nf = NetworkFunction(
            nf_type=nf_type,
            name=f"{nf_type.value}-{count}",
            position=position,
            status=NFStatus.STARTING,
            status_timestamp=now,
            created_at=now,
            config=NFConfig(
                ip_address=ip_address,
                port=port,
                http_protocol=self.global_protocol,
            ),
        )
        self.store.add_nf(nf)
        logger.info(f"Created {nf.name} at {nf.config.endpoint}")
        self._log(nf.id, LogLevel.INFO, f"{nf_type.value} instance created: {nf.name}",
                  ip_address=ip_address, port=port)

        self._begin_startup(nf)
        return nf

    def delete_network_function(self, nf_id: str) -> bool:
        """Delete an NF, cancelling its pending timers. Returns False if unknown."""
        nf = self.store.get_nf_by_id(nf_id)
        if nf is None:
            return False

        cancelled = self.tasks.cancel_all(nf_id)
        if cancelled:
            logger.debug(f"Cancelled {cancelled} pending task(s) for {nf.name}")

        for other_id in self.resolver.neighbors(nf_id):
            self._log(other_id, LogLevel.WARNING, f"Lost connection to {nf.name}",
                      removed_nf=nf_id)

        self.store.remove_nf(nf_id)
        self.log_book.clear_logs(nf_id)
        logger.info(f"Deleted {nf.name}")
        return True

    # ------------------------------------------------------------------
    # Status transitions
    # ------------------------------------------------------------------

    def _begin_startup(self, nf: NetworkFunction):
        if self.settings.auto_attach_to_bus:
            buses = self.store.get_all_buses()
            if buses:
                self.connections.connect_nf_to_bus(nf.id, buses[0].id)

        self.tasks.schedule(nf.id, self.settings.stable_delay_ms,
                            lambda: self._mark_stable(nf.id))

    def _mark_stable(self, nf_id: str):
        nf = self.store.get_nf_by_id(nf_id)
        if nf is None or nf.status != NFStatus.STARTING:
            return

        self.store.update_nf(nf_id, status=NFStatus.STABLE, status_timestamp=self._now())
        logger.info(f"{nf.name} is now STABLE")
        self._log(nf_id, LogLevel.SUCCESS, f"{nf.name} is now STABLE and ready for connections",
                  previous_status=NFStatus.STARTING.value, new_status=NFStatus.STABLE.value)

        delay = self._rng.uniform(self.settings.auto_connect_min_ms,
                                  self.settings.auto_connect_max_ms)
        self.tasks.schedule(nf_id, delay, lambda: self.attempt_auto_connections(nf_id))

    def start_service(self, nf_id: str) -> bool:
        """Restart a stopped or failed NF. Returns False if not allowed."""
        nf = self.store.get_nf_by_id(nf_id)
        if nf is None or nf.status not in (NFStatus.STOPPED, NFStatus.ERROR):
            return False

        self.store.update_nf(nf_id, status=NFStatus.STARTING, status_timestamp=self._now())
        self._log(nf_id, LogLevel.INFO, f"Starting {nf.name}...")
        self._begin_startup(nf)
        return True

    def stop_service(self, nf_id: str) -> bool:
        """Stop a starting or stable NF. Returns False if not allowed."""
        nf = self.store.get_nf_by_id(nf_id)
        if nf is None or nf.status not in (NFStatus.STARTING, NFStatus.STABLE):
            return False

        self.tasks.cancel_all(nf_id)
        self.store.update_nf(nf_id, status=NFStatus.STOPPED, status_timestamp=self._now())
        logger.info(f"{nf.name} stopped")
        self._log(nf_id, LogLevel.WARNING, f"{nf.name} stopped")
        return True

    def fail_service(self, nf_id: str, reason: str = "Service failure") -> bool:
        nf = self.store.get_nf_by_id(nf_id)
        if nf is None:
            return False

        self.tasks.cancel_all(nf_id)
        self.store.update_nf(nf_id, status=NFStatus.ERROR, status_timestamp=self._now())
        logger.warning(f"{nf.name} entered error state: {reason}")
        self._log(nf_id, LogLevel.ERROR, f"{nf.name} failed: {reason}", reason=reason)
        return True

    # ------------------------------------------------------------------
    # Auto-connection
    # ------------------------------------------------------------------

    def attempt_auto_connections(self, nf_id: str) -> list[Connection]:
        """
        Connect a stable NF to the first stable NF of each rule target type
        in its subnet. Types the NF already reaches, directly or over a bus,
        are skipped, so repeated attempts never add a second connection to
        a type. Returns the connections created.
        """
        nf = self.store.get_nf_by_id(nf_id)
        if nf is None or nf.status != NFStatus.STABLE:
            return []

        subnet = nf.subnet
        cidr = f"{subnet}.0/24"
        stable_peers = [
            other for other in self.store.get_all_nfs()
            if other.id != nf_id and other.is_stable and other.subnet == subnet
        ]

        if not stable_peers:
            logger.debug(f"No stable services in {cidr} for {nf.name}")
            self._log(nf_id, LogLevel.WARNING,
                      "No stable services in same subnet for auto-connection",
                      source_subnet=cidr, source_ip=nf.config.ip_address)
            return []

        created = []
        blocked = 0
        for target_type in AUTO_CONNECTION_RULES.get(nf.nf_type, []):
            if self.resolver.has_connection_to_type(nf, target_type):
                continue
            candidates = [p for p in stable_peers if p.nf_type == target_type]
            if not candidates:
                if any(other.id != nf_id and other.is_stable and other.nf_type == target_type
                       for other in self.store.get_all_nfs()):
                    blocked += 1
                    logger.debug(
                        f"Auto-connection blocked: {target_type.value} exists outside {cidr}"
                    )
                continue

            target = candidates[0]
            conn = self.connections.create_auto_connection(nf_id, target.id)
            if conn is None:
                continue
            created.append(conn)
            self._log(nf_id, LogLevel.INFO,
                      f"Auto-connected to {target.name} (logical connection - no visual line)",
                      target_type=target.nf_type.value, interface=conn.interface_name,
                      subnet=cidr, target_ip=target.config.ip_address)

        if created:
            self._log(nf_id, LogLevel.SUCCESS,
                      f"Auto-connection completed: {len(created)} connections created in subnet {cidr}",
                      connections_created=len(created), connections_blocked=blocked)
        elif blocked:
            self._log(nf_id, LogLevel.WARNING,
                      "Auto-connections blocked due to subnet restrictions",
                      connections_blocked=blocked, source_subnet=cidr)
        return created

    # ------------------------------------------------------------------
    # Edits
    # ------------------------------------------------------------------

    def move_nf(self, nf_id: str, position: Union[Position, tuple]) -> Optional[NetworkFunction]:
        if isinstance(position, tuple):
            position = Position(*position)
        return self.store.update_nf(nf_id, position=position)

    def rename_nf(self, nf_id: str, name: str) -> Optional[NetworkFunction]:
        """Rename an NF. Blank names are ignored and return None."""
        if not name or not name.strip():
            logger.debug(f"Ignoring blank name for {nf_id}")
            return None
        return self.store.update_nf(nf_id, name=name.strip())

    def update_nf_config(self, nf_id: str, ip_address: Optional[str] = None,
                         port: Optional[int] = None,
                         http_protocol: Union[HttpProtocol, str, None] = None,
                         capacity: Optional[int] = None,
                         load: Optional[int] = None) -> ConfigUpdateResult:
        """Apply a manual config edit, rejecting invalid or conflicting addresses."""
        nf = self.store.get_nf_by_id(nf_id)
        if nf is None:
            return ConfigUpdateResult.rejected(ConfigError.NOT_FOUND,
                                               f"Network function {nf_id} not found")

        if ip_address is not None and not self.allocator.is_valid_ip(ip_address):
            return ConfigUpdateResult.rejected(ConfigError.INVALID_ADDRESS,
                                               f"Invalid IP address: {ip_address}")
        if port is not None and not self.allocator.is_valid_port(port):
            return ConfigUpdateResult.rejected(ConfigError.INVALID_PORT,
                                               f"Invalid port: {port}")
        if http_protocol is not None:
            try:
                http_protocol = HttpProtocol(http_protocol)
            except ValueError:
                return ConfigUpdateResult.rejected(ConfigError.INVALID_PROTOCOL,
                                                   f"Unknown HTTP protocol: {http_protocol}")
        if ip_address is not None and not self.is_ip_available(ip_address, exclude_id=nf_id):
            return ConfigUpdateResult.rejected(ConfigError.IP_CONFLICT,
                                               f"IP address {ip_address} is already in use")
        if port is not None and not self.is_port_available(port, exclude_id=nf_id):
            return ConfigUpdateResult.rejected(ConfigError.PORT_CONFLICT,
                                               f"Port {port} is already in use")

        changes = {}
        if ip_address is not None:
            changes["ip_address"] = ip_address
        if port is not None:
            changes["port"] = port
        if http_protocol is not None:
            changes["http_protocol"] = http_protocol
        if capacity is not None:
            changes["capacity"] = capacity
        if load is not None:
            changes["load"] = load

        nf = self.store.update_nf(nf_id, config=replace(nf.config, **changes))
        logger.info(f"Updated config of {nf.name}: {sorted(changes)}")
        return ConfigUpdateResult(success=True, nf=nf)

    def update_global_protocol(self, new_protocol: Union[HttpProtocol, str]) -> int:
        """
        Switch every NF, connection and bus attachment to new_protocol.

        Returns the number of NFs whose protocol actually changed. NFs
        created afterwards inherit the new protocol.
        """
        new_protocol = HttpProtocol(new_protocol)
        self.global_protocol = new_protocol
        self.connections.protocol = new_protocol

        changed = 0
        for nf in self.store.get_all_nfs():
            if nf.config.http_protocol == new_protocol:
                continue
            previous = nf.config.http_protocol
            self.store.update_nf(nf.id, config=replace(nf.config, http_protocol=new_protocol))
            changed += 1
            self._log(nf.id, LogLevel.INFO, f"HTTP protocol updated to {new_protocol.value}",
                      previous_protocol=previous.value, new_protocol=new_protocol.value)

        for conn in self.store.get_all_connections():
            if conn.protocol != new_protocol:
                self.store.update_connection(conn.id, protocol=new_protocol)
        for bc in self.store.get_all_bus_connections():
            if bc.protocol != new_protocol:
                self.store.update_bus_connection(bc.id, protocol=new_protocol)

        logger.info(f"Updated {changed} NFs to {new_protocol.value}")
        return changed

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def is_ip_available(self, ip_address: str, exclude_id: Optional[str] = None) -> bool:
        return all(
            nf.config.ip_address != ip_address
            for nf in self.store.get_all_nfs() if nf.id != exclude_id
        )

    def is_port_available(self, port: int, exclude_id: Optional[str] = None) -> bool:
        return all(
            nf.config.port != port
            for nf in self.store.get_all_nfs() if nf.id != exclude_id
        )

    def get_nfs_in_subnet(self, ip_address: str) -> list[NetworkFunction]:
        subnet = subnet_of(ip_address)
        return [nf for nf in self.store.get_all_nfs() if nf.subnet == subnet]

    def get_nf_count_by_type(self, nf_type: NFType) -> int:
        return sum(1 for nf in self.store.get_all_nfs() if nf.nf_type == nf_type)

    def get_existing_nf_types(self) -> list[NFType]:
        """Distinct types present, in first-seen order."""
        seen = []
        for nf in self.store.get_all_nfs():
            if nf.nf_type not in seen:
                seen.append(nf.nf_type)
        return seen

    def get_stable_services(self) -> list[NetworkFunction]:
        return [nf for nf in self.store.get_all_nfs() if nf.is_stable]

    def get_service_uptime(self, nf: NetworkFunction) -> str:
        """Time since the last status change, e.g. "42 seconds" or "1h 5m"."""
        seconds = int(max(0.0, self._now() - nf.status_timestamp) // 1000)
        if seconds < 60:
            return f"{seconds} seconds"
        if seconds < 3600:
            return f"{seconds // 60} minutes"
        return f"{seconds // 3600}h {(seconds % 3600) // 60}m"

    @staticmethod
    def status_color(status: Union[NFStatus, str]) -> str:
        if isinstance(status, str):
            try:
                status = NFStatus(status)
            except ValueError:
                return "#3498db"
        return STATUS_COLORS.get(status, "#3498db")

    def reset(self):
        """Reset naming counters and the global protocol."""
        self._counters = {t: 0 for t in NFType}
        self.global_protocol = HttpProtocol(self.settings.default_protocol)
        self.connections.protocol = self.global_protocol
