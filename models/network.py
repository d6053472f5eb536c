"""
Service-based architecture topology data models.

These models represent the simulated 5G core: network functions, the
direct connections between them, and the shared service buses they can
attach to. They carry no behaviour beyond derived properties; the
services package owns every mutation.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional
import uuid


class NFType(Enum):
    """
    Network function types that can be placed in the topology.

    Values are the display names used for naming (``AMF-1``) and in the
    rule tables below.
    """
    NRF = "NRF"
    AMF = "AMF"
    SMF = "SMF"
    UPF = "UPF"
    AUSF = "AUSF"
    UDM = "UDM"
    UDR = "UDR"
    PCF = "PCF"
    NSSF = "NSSF"
    GNB = "gNB"
    UE = "UE"
    MYSQL = "MySQL"
    AF = "AF"
    DATA_NETWORK = "DataNetwork"
    EXT_DN = "ext-dn"

    @classmethod
    def from_name(cls, name: str) -> "NFType":
        """Resolve a display value ("gNB") or member name ("GNB")."""
        for member in cls:
            if member.value == name or member.name == name:
                return member
        raise ValueError(f"Unknown network function type: {name}")


class NFStatus(Enum):
    """Lifecycle state of a network function."""
    STARTING = "starting"
    STABLE = "stable"
    STOPPED = "stopped"
    ERROR = "error"


class HttpProtocol(Enum):
    """SBI transport protocol advertised by an NF."""
    HTTP1 = "HTTP/1"
    HTTP2 = "HTTP/2"


class ConnectionType(Enum):
    """How a direct connection came to exist."""
    MANUAL = "manual"   # Drawn by the user, rendered on the canvas
    AUTO = "auto"       # Created by the lifecycle engine, logical only


# Display metadata per NF type. Opaque to the core, passed through to the renderer.
NF_DEFINITIONS = {
    NFType.NRF: {"color": "#9b59b6", "name": "Network Repository Function"},
    NFType.AMF: {"color": "#3498db", "name": "Access and Mobility Management"},
    NFType.SMF: {"color": "#00bcd4", "name": "Session Management Function"},
    NFType.UPF: {"color": "#4caf50", "name": "User Plane Function"},
    NFType.AUSF: {"color": "#ff9800", "name": "Authentication Server Function"},
    NFType.UDM: {"color": "#ff5722", "name": "Unified Data Management"},
    NFType.PCF: {"color": "#e91e63", "name": "Policy Control Function"},
    NFType.NSSF: {"color": "#ffc107", "name": "Network Slice Selection"},
    NFType.UDR: {"color": "#009688", "name": "Unified Data Repository"},
    NFType.GNB: {"color": "#8e44ad", "name": "gNodeB (5G Base Station)"},
    NFType.UE: {"color": "#16a085", "name": "User Equipment"},
    NFType.MYSQL: {"color": "#d35400", "name": "MySQL Database"},
    NFType.AF: {"color": "#9c27b0", "name": "Application Function"},
}

DEFAULT_NF_DEFINITION = {"color": "#95a5a6", "name": ""}

# Targets the lifecycle engine tries to reach once an NF becomes stable
AUTO_CONNECTION_RULES = {
    NFType.AMF: [NFType.NRF, NFType.AUSF, NFType.UDM],
    NFType.SMF: [NFType.NRF, NFType.UPF, NFType.PCF],
    NFType.UPF: [NFType.SMF],
    NFType.AUSF: [NFType.NRF, NFType.UDM],
    NFType.UDM: [NFType.NRF],
    NFType.PCF: [NFType.NRF],
    NFType.NSSF: [NFType.NRF],
    NFType.UDR: [NFType.NRF],
    NFType.GNB: [NFType.AMF, NFType.UPF],
    NFType.UE: [NFType.GNB],
    NFType.MYSQL: [NFType.UDM],
}

# Dependency table consumed by the log scripting layer
DEPENDENCY_RULES = {
    NFType.NRF: {"required": [], "optional": []},
    NFType.AMF: {"required": [NFType.NRF], "optional": [NFType.AUSF, NFType.UDM]},
    NFType.SMF: {"required": [NFType.NRF], "optional": [NFType.UPF, NFType.PCF]},
    NFType.UPF: {"required": [NFType.NRF], "optional": []},
    NFType.AUSF: {"required": [NFType.NRF, NFType.UDM], "optional": []},
    NFType.UDM: {"required": [NFType.NRF], "optional": [NFType.MYSQL]},
    NFType.PCF: {"required": [NFType.NRF], "optional": []},
    NFType.NSSF: {"required": [NFType.NRF], "optional": []},
    NFType.UDR: {"required": [NFType.NRF], "optional": []},
    NFType.GNB: {"required": [NFType.AMF, NFType.UPF], "optional": []},
    NFType.UE: {"required": [NFType.GNB], "optional": []},
    NFType.MYSQL: {"required": [], "optional": [NFType.UDM]},
}

STATUS_COLORS = {
    NFStatus.STARTING: "#e74c3c",  # Red
    NFStatus.STABLE: "#2ecc71",    # Green
    NFStatus.ERROR: "#e67e22",     # Orange
    NFStatus.STOPPED: "#95a5a6",   # Gray
}

# 3GPP reference points for pairs that do not talk over the SBI
REFERENCE_POINTS = {
    frozenset({NFType.GNB, NFType.AMF}): "N2",
    frozenset({NFType.GNB, NFType.UPF}): "N3",
    frozenset({NFType.SMF, NFType.UPF}): "N4",
    frozenset({NFType.UPF, NFType.DATA_NETWORK}): "N6",
    frozenset({NFType.UPF, NFType.EXT_DN}): "N6",
    frozenset({NFType.UE, NFType.GNB}): "Uu",
}


def subnet_of(ip_address: str) -> str:
    """Return the first three dotted octets ("192.168.1" for "192.168.1.20")."""
    return ".".join(ip_address.split(".")[:3])


def service_interface_name(source_type: NFType, target_type: NFType) -> str:
    """
    Label for an edge between two NF types.

    Reference points win for RAN and user-plane pairs; everything else is
    named after the service-based interface exposed by the target
    (e.g. AMF -> NRF is "Nnrf").
    """
    reference_point = REFERENCE_POINTS.get(frozenset({source_type, target_type}))
    if reference_point:
        return reference_point
    return f"N{target_type.value.lower()}"


def _short_id() -> str:
    return str(uuid.uuid4())[:8]


@dataclass
class Position:
    """2D position on the canvas."""
    x: float = 0.0
    y: float = 0.0

    def to_tuple(self) -> tuple[float, float]:
        return (self.x, self.y)


@dataclass
class NFConfig:
    """Addressing and capacity configuration of a network function."""
    ip_address: str = ""
    port: int = 0
    http_protocol: HttpProtocol = HttpProtocol.HTTP2
    capacity: int = 1000
    load: int = 0

    @property
    def subnet(self) -> str:
        return subnet_of(self.ip_address)

    @property
    def endpoint(self) -> str:
        return f"{self.ip_address}:{self.port}"


@dataclass
class NetworkFunction:
    """
    A simulated 5G core element.

    Attributes:
        id: Immutable unique identifier
        nf_type: Type of network function
        name: Display name, usually ``{type}-{counter}``
        position: Canvas position
        status: Lifecycle state
        status_timestamp: Scheduler time (ms) of the last status change
        created_at: Scheduler time (ms) of creation
        config: Address, port, protocol and capacity settings
        color/icon: Cosmetic pass-through fields for the renderer
    """
    id: str = field(default_factory=_short_id)
    nf_type: NFType = NFType.NRF
    name: str = ""
    position: Position = field(default_factory=Position)
    status: NFStatus = NFStatus.STARTING
    status_timestamp: float = 0.0
    created_at: float = 0.0
    config: NFConfig = field(default_factory=NFConfig)
    color: str = ""
    icon: Optional[str] = None

    def __post_init__(self):
        if not self.name:
            self.name = f"{self.nf_type.value}-{self.id[:4]}"
        if not self.color:
            self.color = NF_DEFINITIONS.get(self.nf_type, DEFAULT_NF_DEFINITION)["color"]

    @property
    def is_stable(self) -> bool:
        return self.status == NFStatus.STABLE

    @property
    def subnet(self) -> str:
        return self.config.subnet

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "type": self.nf_type.value,
            "name": self.name,
            "position": {"x": self.position.x, "y": self.position.y},
            "status": self.status.value,
            "status_timestamp": self.status_timestamp,
            "created_at": self.created_at,
            "color": self.color,
            "icon": self.icon,
            "config": {
                "ip_address": self.config.ip_address,
                "port": self.config.port,
                "http_protocol": self.config.http_protocol.value,
                "capacity": self.config.capacity,
                "load": self.config.load,
            },
        }


@dataclass
class ConnectionOptions:
    """Display metadata for a connection line."""
    label: str = ""
    color: str = "#7f8c8d"
    style: str = "solid"  # solid, dashed, dotted


@dataclass
class Connection:
    """
    A direct edge between two network functions.

    The edge is undirected for connectivity purposes; source/target only
    record who initiated it.
    """
    id: str = field(default_factory=_short_id)
    source_id: str = ""
    target_id: str = ""
    connection_type: ConnectionType = ConnectionType.MANUAL
    options: ConnectionOptions = field(default_factory=ConnectionOptions)
    interface_name: str = ""
    protocol: HttpProtocol = HttpProtocol.HTTP2
    show_visual: bool = True
    created_at: float = 0.0

    def __post_init__(self):
        # Auto connections are logical only and never rendered
        if self.connection_type == ConnectionType.AUTO:
            self.show_visual = False

    def involves(self, nf_id: str) -> bool:
        return nf_id in (self.source_id, self.target_id)

    def other_end(self, nf_id: str) -> Optional[str]:
        """Return the opposite endpoint, or None if nf_id is not an endpoint."""
        if nf_id == self.source_id:
            return self.target_id
        if nf_id == self.target_id:
            return self.source_id
        return None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "source_id": self.source_id,
            "target_id": self.target_id,
            "type": self.connection_type.value,
            "interface_name": self.interface_name,
            "protocol": self.protocol.value,
            "show_visual": self.show_visual,
            "created_at": self.created_at,
            "options": {
                "label": self.options.label,
                "color": self.options.color,
                "style": self.options.style,
            },
        }


@dataclass
class Bus:
    """A shared service bus line; every attached pair is mutually connected."""
    id: str = field(default_factory=_short_id)
    name: str = ""
    orientation: str = "horizontal"  # horizontal, vertical
    position: Position = field(default_factory=Position)
    length: float = 400.0
    connections: list[str] = field(default_factory=list)  # Attached NF ids, in order

    def __post_init__(self):
        if not self.name:
            self.name = f"bus_{self.id[:4]}"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "orientation": self.orientation,
            "position": {"x": self.position.x, "y": self.position.y},
            "length": self.length,
            "connections": list(self.connections),
        }


@dataclass
class BusConnection:
    """Attachment of one network function to a bus."""
    id: str = field(default_factory=_short_id)
    nf_id: str = ""
    bus_id: str = ""
    interface_name: str = ""
    protocol: HttpProtocol = HttpProtocol.HTTP2
    status: str = "connected"
    created_at: float = 0.0

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "nf_id": self.nf_id,
            "bus_id": self.bus_id,
            "interface_name": self.interface_name,
            "protocol": self.protocol.value,
            "status": self.status,
            "created_at": self.created_at,
        }
