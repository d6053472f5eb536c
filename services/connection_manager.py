"""
Connection Manager.

Creates and removes direct connections, service buses and bus
attachments on top of the topology store.
"""

import logging
from typing import Callable, Optional

from models.network import (
    Bus,
    BusConnection,
    Connection,
    ConnectionOptions,
    ConnectionType,
    HttpProtocol,
    Position,
    service_interface_name,
)
from .topology_store import TopologyStore

logger = logging.getLogger(__name__)


class ConnectionManager:
    """
    Validated connection and bus CRUD.

    ``protocol`` is the label stamped on new connections; the lifecycle
    engine keeps it in step with the global HTTP protocol.
    """

    def __init__(self, store: TopologyStore, clock: Callable[[], float],
                 protocol: HttpProtocol = HttpProtocol.HTTP2):
        self.store = store
        self._clock = clock
        self.protocol = protocol
        self._bus_counter = 0

    # ------------------------------------------------------------------
    # Direct connections
    # ------------------------------------------------------------------

    def create_connection(self, source_id: str, target_id: str,
                          options: Optional[ConnectionOptions] = None) -> Optional[Connection]:
        """Create a visible manual connection. Returns None if rejected."""
        return self._create(source_id, target_id, ConnectionType.MANUAL, options)

    def create_auto_connection(self, source_id: str, target_id: str) -> Optional[Connection]:
        """Create a logical connection that is never rendered."""
        return self._create(
            source_id, target_id, ConnectionType.AUTO,
            ConnectionOptions(style="dashed"),
        )

    def _create(self, source_id: str, target_id: str, connection_type: ConnectionType,
                options: Optional[ConnectionOptions]) -> Optional[Connection]:
        source = self.store.get_nf_by_id(source_id)
        target = self.store.get_nf_by_id(target_id)
        if source is None or target is None:
            logger.warning(f"Cannot connect {source_id} -> {target_id}: unknown network function")
            return None
        if source_id == target_id:
            logger.warning(f"Cannot connect {source.name} to itself")
            return None
        if self.store.has_edge(source_id, target_id):
            logger.debug(f"{source.name} and {target.name} are already connected")
            return None

        interface = service_interface_name(source.nf_type, target.nf_type)
        options = options or ConnectionOptions()
        if not options.label:
            options.label = interface

        conn = Connection(
            source_id=source_id,
            target_id=target_id,
            connection_type=connection_type,
            options=options,
            interface_name=interface,
            protocol=self.protocol,
            created_at=self._clock(),
        )
        self.store.add_connection(conn)
        logger.info(
            f"Created {connection_type.value} connection {source.name} -> {target.name} ({interface})"
        )
        return conn

    def remove_connection(self, conn_id: str) -> Optional[Connection]:
        return self.store.remove_connection(conn_id)

    # ------------------------------------------------------------------
    # Buses
    # ------------------------------------------------------------------

    def create_bus(self, name: Optional[str] = None, orientation: str = "horizontal",
                   position: Optional[Position] = None, length: float = 400) -> Bus:
        if orientation not in ("horizontal", "vertical"):
            raise ValueError(f"Invalid bus orientation: {orientation}")

        self._bus_counter += 1
        bus = Bus(
            name=name or f"Service Bus {self._bus_counter}",
            orientation=orientation,
            position=position or Position(),
            length=float(length),
        )
        self.store.add_bus(bus)
        logger.info(f"Created bus {bus.name}")
        return bus

    def remove_bus(self, bus_id: str) -> Optional[Bus]:
        return self.store.remove_bus(bus_id)

    def connect_nf_to_bus(self, nf_id: str, bus_id: str,
                          interface_name: Optional[str] = None) -> Optional[BusConnection]:
        """Attach an NF to a bus. Returns None if either is unknown or already attached."""
        nf = self.store.get_nf_by_id(nf_id)
        bus = self.store.get_bus_by_id(bus_id)
        if nf is None or bus is None:
            logger.warning(f"Cannot attach {nf_id} to bus {bus_id}: not found")
            return None
        if any(bc.bus_id == bus_id for bc in self.store.get_bus_connections_for_nf(nf_id)):
            return None

        bc = BusConnection(
            nf_id=nf_id,
            bus_id=bus_id,
            interface_name=interface_name or f"N{nf.nf_type.value.lower()}",
            protocol=self.protocol,
            created_at=self._clock(),
        )
        self.store.add_bus_connection(bc)
        logger.info(f"Attached {nf.name} to {bus.name}")
        return bc

    def disconnect_nf_from_bus(self, nf_id: str, bus_id: str) -> bool:
        """Detach an NF from a bus. Returns False if it was not attached."""
        removed = False
        for bc in self.store.get_bus_connections_for_nf(nf_id):
            if bc.bus_id == bus_id:
                self.store.remove_bus_connection(bc.id)
                removed = True
        return removed

    def reset(self):
        self._bus_counter = 0
