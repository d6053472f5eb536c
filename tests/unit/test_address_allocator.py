"""
Unit tests for the address allocator.

Tests:
- First-free search order for IPs and ports
- Exhaustion fallback stays inside the configured ranges
- Address validation helpers
"""

import random

import pytest
from services.address_allocator import AddressAllocator
from services.settings_manager import AddressSettings


@pytest.fixture
def allocator() -> AddressAllocator:
    return AddressAllocator(rng=random.Random(7))


class TestAllocateIP:
    """Tests for IP allocation."""

    def test_first_address(self, allocator):
        assert allocator.allocate_ip(set()) == "192.168.1.10"

    def test_skips_used(self, allocator):
        used = {"192.168.1.10", "192.168.1.11"}
        assert allocator.allocate_ip(used) == "192.168.1.12"

    def test_gap_is_reused(self, allocator):
        used = {"192.168.1.10", "192.168.1.12"}
        assert allocator.allocate_ip(used) == "192.168.1.11"

    def test_rolls_over_to_next_subnet(self, allocator):
        used = {f"192.168.1.{h}" for h in range(10, 255)}
        assert allocator.allocate_ip(used) == "192.168.2.10"

    def test_exhaustion_fallback(self, allocator):
        used = {f"192.168.{s}.{h}" for s in range(1, 5) for h in range(10, 255)}
        assert len(used) == allocator.ip_capacity

        ip = allocator.allocate_ip(used)

        subnet, host = ip.rsplit(".", 1)
        assert subnet in allocator.settings.subnets
        assert 10 <= int(host) <= 254

    def test_exhaustion_logs_warning(self, allocator, caplog):
        used = {f"192.168.{s}.{h}" for s in range(1, 5) for h in range(10, 255)}
        with caplog.at_level("WARNING"):
            allocator.allocate_ip(used)
        assert "exhausted" in caplog.text

    def test_custom_pool(self):
        settings = AddressSettings(subnets=["10.0.0"], host_min=1, host_max=2)
        allocator = AddressAllocator(settings)
        assert allocator.allocate_ip({"10.0.0.1"}) == "10.0.0.2"
        assert allocator.ip_capacity == 2


class TestAllocatePort:
    """Tests for port allocation."""

    def test_first_port(self, allocator):
        assert allocator.allocate_port(set()) == 8080

    def test_skips_used(self, allocator):
        assert allocator.allocate_port({8080, 8081}) == 8082

    def test_exhaustion_fallback(self, allocator):
        used = set(range(8080, 10000))
        assert len(used) == allocator.port_capacity
        port = allocator.allocate_port(used)
        assert 8080 <= port <= 9999


class TestValidation:
    """Tests for address validators."""

    @pytest.mark.parametrize("ip", ["192.168.1.10", "0.0.0.0", "255.255.255.255"])
    def test_valid_ip(self, ip):
        assert AddressAllocator.is_valid_ip(ip)

    @pytest.mark.parametrize("ip", [
        "192.168.1", "192.168.1.256", "a.b.c.d", "1.2.3.4.5", "", None,
        "192.168.1.\N{SUPERSCRIPT TWO}", "192.168.1.\u0661\u0660",
    ])
    def test_invalid_ip(self, ip):
        assert not AddressAllocator.is_valid_ip(ip)

    def test_ports(self):
        assert AddressAllocator.is_valid_port(1)
        assert AddressAllocator.is_valid_port(65535)
        assert not AddressAllocator.is_valid_port(0)
        assert not AddressAllocator.is_valid_port(70000)
        assert not AddressAllocator.is_valid_port("8080")
        assert not AddressAllocator.is_valid_port(True)
