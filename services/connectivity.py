"""
Connectivity Resolver.

Read-only queries over the topology store: whether two NFs share a
subnet, whether they are connected (direct edge or common bus), and
which dependency types an NF can already reach.
"""

from typing import Optional

from models.network import (
    NFType,
    NetworkFunction,
    DEPENDENCY_RULES,
    subnet_of,
)
from .topology_store import TopologyStore


class ConnectivityResolver:
    """Pure queries; never mutates the store."""

    DIRECT = "direct"
    BUS = "bus"
    NONE = "none"

    def __init__(self, store: TopologyStore):
        self.store = store

    @staticmethod
    def same_subnet(ip_a: str, ip_b: str) -> bool:
        return subnet_of(ip_a) == subnet_of(ip_b)

    def bus_peers(self, nf_id: str) -> set[str]:
        """Ids of NFs attached to any bus that nf_id is attached to."""
        peers = set()
        for bc in self.store.get_bus_connections_for_nf(nf_id):
            for other in self.store.get_bus_connections_for_bus(bc.bus_id):
                if other.nf_id != nf_id:
                    peers.add(other.nf_id)
        return peers

    def share_bus(self, nf_a: str, nf_b: str) -> bool:
        buses_a = {bc.bus_id for bc in self.store.get_bus_connections_for_nf(nf_a)}
        if not buses_a:
            return False
        return any(bc.bus_id in buses_a for bc in self.store.get_bus_connections_for_nf(nf_b))

    def connection_method(self, nf_a: NetworkFunction, nf_b: NetworkFunction) -> str:
        """'direct' if an edge exists either way, else 'bus' if they share a bus, else 'none'."""
        if self.store.has_edge(nf_a.id, nf_b.id):
            return self.DIRECT
        if self.share_bus(nf_a.id, nf_b.id):
            return self.BUS
        return self.NONE

    def connected(self, nf_a: NetworkFunction, nf_b: NetworkFunction) -> bool:
        return self.connection_method(nf_a, nf_b) != self.NONE

    def neighbors(self, nf_id: str) -> set[str]:
        """Direct neighbours plus bus peers."""
        return self.store.neighbors(nf_id) | self.bus_peers(nf_id)

    def connection_method_to_type(self, nf: NetworkFunction, target_type: NFType) -> str:
        """How nf reaches any NF of target_type; direct wins over bus."""
        for other_id in self.store.neighbors(nf.id):
            other = self.store.get_nf_by_id(other_id)
            if other is not None and other.nf_type == target_type:
                return self.DIRECT
        for other_id in self.bus_peers(nf.id):
            other = self.store.get_nf_by_id(other_id)
            if other is not None and other.nf_type == target_type:
                return self.BUS
        return self.NONE

    def has_connection_to_type(self, nf: NetworkFunction, target_type: NFType) -> bool:
        return self.connection_method_to_type(nf, target_type) != self.NONE

    def missing_dependencies(self, nf: NetworkFunction) -> list[NFType]:
        """Required dependency types nf has no connection to."""
        rules = DEPENDENCY_RULES.get(nf.nf_type, {"required": []})
        return [t for t in rules["required"] if not self.has_connection_to_type(nf, t)]

    def nfs_in_subnet(self, ip_address: str,
                      exclude_id: Optional[str] = None) -> list[NetworkFunction]:
        subnet = subnet_of(ip_address)
        return [
            nf for nf in self.store.get_all_nfs()
            if nf.subnet == subnet and nf.id != exclude_id
        ]
