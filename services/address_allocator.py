"""
Address Allocator.

Hands out IP addresses and ports for new network functions by searching
a fixed pool in order. When the pool is exhausted a random candidate from
the same ranges is returned; it may collide with an address in use and
no retry is attempted.
"""

import logging
import random
from typing import Iterable, Optional

from .settings_manager import AddressSettings

logger = logging.getLogger(__name__)


class AddressAllocator:
    """
    First-free search over subnets/hosts and ports.

    The allocator is stateless: callers pass the set of addresses in use,
    computed fresh from the topology store before every call.
    """

    def __init__(self, settings: Optional[AddressSettings] = None,
                 rng: Optional[random.Random] = None):
        self.settings = settings or AddressSettings()
        self._rng = rng or random.Random()

    def allocate_ip(self, existing: Iterable[str]) -> str:
        """Return the first address not in ``existing``, searching subnets in order."""
        used = set(existing)
        for subnet in self.settings.subnets:
            for host in range(self.settings.host_min, self.settings.host_max + 1):
                ip = f"{subnet}.{host}"
                if ip not in used:
                    logger.debug(f"Allocated IP {ip} (subnet {subnet}.0/24)")
                    return ip

        subnet = self._rng.choice(self.settings.subnets)
        host = self._rng.randint(self.settings.host_min, self.settings.host_max)
        fallback = f"{subnet}.{host}"
        logger.warning(f"Address pool exhausted, using fallback IP {fallback}")
        return fallback

    def allocate_port(self, existing: Iterable[int]) -> int:
        """Return the first port not in ``existing``."""
        used = set(existing)
        for port in range(self.settings.port_min, self.settings.port_max + 1):
            if port not in used:
                logger.debug(f"Allocated port {port}")
                return port

        fallback = self._rng.randint(self.settings.port_min, self.settings.port_max)
        logger.warning(f"Port range exhausted, using fallback port {fallback}")
        return fallback

    @property
    def ip_capacity(self) -> int:
        """Number of distinct addresses in the pool."""
        hosts = self.settings.host_max - self.settings.host_min + 1
        return hosts * len(self.settings.subnets)

    @property
    def port_capacity(self) -> int:
        return self.settings.port_max - self.settings.port_min + 1

    @staticmethod
    def is_valid_ip(ip_address: str) -> bool:
        """Check for a dotted quad with every octet in 0-255."""
        if not isinstance(ip_address, str):
            return False
        parts = ip_address.split(".")
        if len(parts) != 4:
            return False
        for part in parts:
            if not (part.isascii() and part.isdigit()) or len(part) > 3:
                return False
            if int(part) > 255:
                return False
        return True

    @staticmethod
    def is_valid_port(port) -> bool:
        return isinstance(port, int) and not isinstance(port, bool) and 1 <= port <= 65535
