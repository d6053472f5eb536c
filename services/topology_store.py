"""
Topology Store.

Single source of truth for network functions, direct connections, buses
and bus attachments. Pure data plus queries; every mutation notifies
subscribers synchronously once the store is consistent again.
"""

import logging
from dataclasses import fields
from enum import Enum
from typing import Callable, Optional

from models.network import (
    NetworkFunction,
    Connection,
    Bus,
    BusConnection,
)

logger = logging.getLogger(__name__)


class TopologyEvent(str, Enum):
    """Change notification tags passed to subscribers."""
    NF_ADDED = "nf-added"
    NF_UPDATED = "nf-updated"
    NF_REMOVED = "nf-removed"
    CONNECTION_ADDED = "connection-added"
    CONNECTION_UPDATED = "connection-updated"
    CONNECTION_REMOVED = "connection-removed"
    BUS_ADDED = "bus-added"
    BUS_REMOVED = "bus-removed"
    BUS_CONNECTION_ADDED = "bus-connection-added"
    BUS_CONNECTION_UPDATED = "bus-connection-updated"
    BUS_CONNECTION_REMOVED = "bus-connection-removed"
    CLEARED = "cleared"


Subscriber = Callable[[TopologyEvent, object], None]

_NF_FIELDS = {f.name for f in fields(NetworkFunction)}
_CONNECTION_FIELDS = {f.name for f in fields(Connection)}
_BUS_CONNECTION_FIELDS = {f.name for f in fields(BusConnection)}


class TopologyStore:
    """
    In-memory topology graph.

    Direct connections are indexed in an undirected adjacency map
    (nf id -> neighbour id -> connection ids) so "is A connected to B"
    never has to inspect source/target order. Deleting an id that does
    not exist is a silent no-op.
    """

    def __init__(self):
        self._nfs: dict[str, NetworkFunction] = {}
        self._connections: dict[str, Connection] = {}
        self._adjacency: dict[str, dict[str, set[str]]] = {}
        self._buses: dict[str, Bus] = {}
        self._bus_connections: dict[str, BusConnection] = {}
        self._subscribers: list[Subscriber] = []

    # ------------------------------------------------------------------
    # Subscriptions
    # ------------------------------------------------------------------

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        """Register a change callback. Returns a function that unsubscribes it."""
        self._subscribers.append(callback)

        def unsubscribe():
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    def _notify(self, event: TopologyEvent, payload: object = None):
        for callback in list(self._subscribers):
            try:
                callback(event, payload)
            except Exception:
                logger.exception(f"Topology subscriber failed handling {event.value}")

    # ------------------------------------------------------------------
    # Network functions
    # ------------------------------------------------------------------

    def add_nf(self, nf: NetworkFunction) -> NetworkFunction:
        self._nfs[nf.id] = nf
        self._adjacency.setdefault(nf.id, {})
        self._notify(TopologyEvent.NF_ADDED, nf)
        return nf

    def get_nf_by_id(self, nf_id: str) -> Optional[NetworkFunction]:
        return self._nfs.get(nf_id)

    def get_all_nfs(self) -> list[NetworkFunction]:
        return list(self._nfs.values())

    def find_nf_by_ip(self, ip_address: str) -> Optional[NetworkFunction]:
        for nf in self._nfs.values():
            if nf.config.ip_address == ip_address:
                return nf
        return None

    def used_ips(self) -> set[str]:
        return {nf.config.ip_address for nf in self._nfs.values()}

    def used_ports(self) -> set[int]:
        return {nf.config.port for nf in self._nfs.values()}

    def update_nf(self, nf_id: str, **changes) -> Optional[NetworkFunction]:
        """
        Shallow-merge named fields into a stored NF.

        Returns the updated NF, or None if it does not exist. Unknown
        field names raise ValueError and nothing is applied.
        """
        nf = self._nfs.get(nf_id)
        if nf is None:
            return None

        blocked = set(changes) - (_NF_FIELDS - {"id"})
        if blocked:
            raise ValueError(f"Cannot update NF fields: {sorted(blocked)}")

        for name, value in changes.items():
            setattr(nf, name, value)
        self._notify(TopologyEvent.NF_UPDATED, nf)
        return nf

    def remove_nf(self, nf_id: str) -> Optional[NetworkFunction]:
        """Remove an NF together with every connection and bus attachment touching it."""
        nf = self._nfs.pop(nf_id, None)
        if nf is None:
            return None

        for conn_id in [c.id for c in self._connections.values() if c.involves(nf_id)]:
            self._drop_connection(conn_id)
        self._adjacency.pop(nf_id, None)

        for bc_id in [bc.id for bc in self._bus_connections.values() if bc.nf_id == nf_id]:
            self._bus_connections.pop(bc_id)
        for bus in self._buses.values():
            if nf_id in bus.connections:
                bus.connections = [i for i in bus.connections if i != nf_id]

        self._notify(TopologyEvent.NF_REMOVED, nf)
        return nf

    # ------------------------------------------------------------------
    # Direct connections
    # ------------------------------------------------------------------

    def add_connection(self, conn: Connection) -> Connection:
        if conn.id in self._connections:
            self._drop_connection(conn.id)
        self._connections[conn.id] = conn
        self._link(conn.source_id, conn.target_id, conn.id)
        self._notify(TopologyEvent.CONNECTION_ADDED, conn)
        return conn

    def get_connection(self, conn_id: str) -> Optional[Connection]:
        return self._connections.get(conn_id)

    def get_all_connections(self) -> list[Connection]:
        return list(self._connections.values())

    def get_connections_for_nf(self, nf_id: str) -> list[Connection]:
        """Connections with nf_id at either end."""
        conn_ids = set()
        for ids in self._adjacency.get(nf_id, {}).values():
            conn_ids |= ids
        return [c for c in self._connections.values() if c.id in conn_ids]

    def get_connection_between(self, nf_a: str, nf_b: str) -> Optional[Connection]:
        conn_ids = self._adjacency.get(nf_a, {}).get(nf_b)
        if not conn_ids:
            return None
        return self._connections[min(conn_ids)]

    def has_edge(self, nf_a: str, nf_b: str) -> bool:
        return bool(self._adjacency.get(nf_a, {}).get(nf_b))

    def neighbors(self, nf_id: str) -> set[str]:
        """Ids directly connected to nf_id."""
        return set(self._adjacency.get(nf_id, {}))

    def update_connection(self, conn_id: str, **changes) -> Optional[Connection]:
        conn = self._connections.get(conn_id)
        if conn is None:
            return None
        blocked = set(changes) - (_CONNECTION_FIELDS - {"id", "source_id", "target_id"})
        if blocked:
            raise ValueError(f"Cannot update connection fields: {sorted(blocked)}")
        for name, value in changes.items():
            setattr(conn, name, value)
        self._notify(TopologyEvent.CONNECTION_UPDATED, conn)
        return conn

    def remove_connection(self, conn_id: str) -> Optional[Connection]:
        conn = self._drop_connection(conn_id)
        if conn is not None:
            self._notify(TopologyEvent.CONNECTION_REMOVED, conn)
        return conn

    def _link(self, nf_a: str, nf_b: str, conn_id: str):
        self._adjacency.setdefault(nf_a, {}).setdefault(nf_b, set()).add(conn_id)
        self._adjacency.setdefault(nf_b, {}).setdefault(nf_a, set()).add(conn_id)

    def _unlink(self, nf_a: str, nf_b: str, conn_id: str):
        for here, there in ((nf_a, nf_b), (nf_b, nf_a)):
            ids = self._adjacency.get(here, {}).get(there)
            if ids is None:
                continue
            ids.discard(conn_id)
            if not ids:
                del self._adjacency[here][there]

    def _drop_connection(self, conn_id: str) -> Optional[Connection]:
        conn = self._connections.pop(conn_id, None)
        if conn is not None:
            self._unlink(conn.source_id, conn.target_id, conn.id)
        return conn

    # ------------------------------------------------------------------
    # Buses
    # ------------------------------------------------------------------

    def add_bus(self, bus: Bus) -> Bus:
        self._buses[bus.id] = bus
        self._notify(TopologyEvent.BUS_ADDED, bus)
        return bus

    def get_bus_by_id(self, bus_id: str) -> Optional[Bus]:
        return self._buses.get(bus_id)

    def get_all_buses(self) -> list[Bus]:
        return list(self._buses.values())

    def remove_bus(self, bus_id: str) -> Optional[Bus]:
        """Remove a bus and every attachment to it."""
        bus = self._buses.pop(bus_id, None)
        if bus is None:
            return None
        for bc_id in [bc.id for bc in self._bus_connections.values() if bc.bus_id == bus_id]:
            self._bus_connections.pop(bc_id)
        bus.connections = []
        self._notify(TopologyEvent.BUS_REMOVED, bus)
        return bus

    # ------------------------------------------------------------------
    # Bus connections
    # ------------------------------------------------------------------

    def add_bus_connection(self, bc: BusConnection) -> BusConnection:
        """Store an attachment and record the NF on the bus's ordered member list."""
        self._bus_connections[bc.id] = bc
        bus = self._buses.get(bc.bus_id)
        if bus is not None and bc.nf_id not in bus.connections:
            bus.connections.append(bc.nf_id)
        self._notify(TopologyEvent.BUS_CONNECTION_ADDED, bc)
        return bc

    def get_all_bus_connections(self) -> list[BusConnection]:
        return list(self._bus_connections.values())

    def get_bus_connections_for_nf(self, nf_id: str) -> list[BusConnection]:
        return [bc for bc in self._bus_connections.values() if bc.nf_id == nf_id]

    def get_bus_connections_for_bus(self, bus_id: str) -> list[BusConnection]:
        return [bc for bc in self._bus_connections.values() if bc.bus_id == bus_id]

    def update_bus_connection(self, bc_id: str, **changes) -> Optional[BusConnection]:
        bc = self._bus_connections.get(bc_id)
        if bc is None:
            return None
        blocked = set(changes) - (_BUS_CONNECTION_FIELDS - {"id", "nf_id", "bus_id"})
        if blocked:
            raise ValueError(f"Cannot update bus connection fields: {sorted(blocked)}")
        for name, value in changes.items():
            setattr(bc, name, value)
        self._notify(TopologyEvent.BUS_CONNECTION_UPDATED, bc)
        return bc

    def remove_bus_connection(self, bc_id: str) -> Optional[BusConnection]:
        bc = self._bus_connections.pop(bc_id, None)
        if bc is None:
            return None
        bus = self._buses.get(bc.bus_id)
        still_attached = any(
            other.nf_id == bc.nf_id and other.bus_id == bc.bus_id
            for other in self._bus_connections.values()
        )
        if bus is not None and not still_attached:
            bus.connections = [i for i in bus.connections if i != bc.nf_id]
        self._notify(TopologyEvent.BUS_CONNECTION_REMOVED, bc)
        return bc

    # ------------------------------------------------------------------
    # Whole-store operations
    # ------------------------------------------------------------------

    def clear_all(self):
        """Empty every collection and notify subscribers once."""
        self._nfs.clear()
        self._connections.clear()
        self._adjacency.clear()
        self._buses.clear()
        self._bus_connections.clear()
        self._notify(TopologyEvent.CLEARED, None)

    def to_dict(self) -> dict:
        """Snapshot for renderers and exporters."""
        return {
            "nfs": [nf.to_dict() for nf in self._nfs.values()],
            "connections": [c.to_dict() for c in self._connections.values()],
            "buses": [b.to_dict() for b in self._buses.values()],
            "bus_connections": [bc.to_dict() for bc in self._bus_connections.values()],
        }
