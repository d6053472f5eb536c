"""
Unit tests for reachability simulation and paced pings.

Tests:
- Rule order of success_probability
- Statistical success rates over seeded trials
- Ping pacing, output and statistics on the virtual clock
- Subnet scans, cancellation and history
"""

import random

import pytest
from models.network import (
    NetworkFunction, NFConfig, NFStatus, NFType, Connection, Bus, BusConnection,
)
from models.logs import LogLevel
from services.connectivity import ConnectivityResolver
from services.diagnostics import ReachabilitySimulator
from services.scheduler import ManualScheduler
from services.settings_manager import SimulatorSettings
from services.simulator import SBASimulator
from services.topology_store import TopologyStore
from tests.conftest import make_stable, messages

TRIALS = 1000


def add(store, nf_id, ip, status=NFStatus.STABLE, nf_type=NFType.AMF):
    return store.add_nf(NetworkFunction(id=nf_id, nf_type=nf_type, status=status,
                                        config=NFConfig(ip_address=ip, port=0)))


@pytest.fixture
def reach(store: TopologyStore) -> ReachabilitySimulator:
    """src 1.10 stable; peer 1.11 stable and connected; lone 1.12 stable; boot 1.13 starting; far 2.10."""
    add(store, "src", "192.168.1.10")
    add(store, "peer", "192.168.1.11")
    add(store, "lone", "192.168.1.12")
    add(store, "boot", "192.168.1.13", status=NFStatus.STARTING)
    add(store, "far", "192.168.2.10")
    store.add_connection(Connection(source_id="src", target_id="peer"))
    store.add_connection(Connection(source_id="src", target_id="far"))
    return ReachabilitySimulator(store, ConnectivityResolver(store), rng=random.Random(42))


def success_rate(reach: ReachabilitySimulator, target_ip: str) -> float:
    source = reach.store.get_nf_by_id("src")
    return sum(reach.is_reachable(source, target_ip) for _ in range(TRIALS)) / TRIALS


def certain_settings(probability: float) -> SimulatorSettings:
    """Every same-subnet rule set to probability; cross-subnet stays 0."""
    settings = SimulatorSettings()
    r = settings.reachability
    r.unknown_host = r.not_stable = r.connected = r.unconnected = probability
    return settings


@pytest.fixture
def always_up() -> SBASimulator:
    return SBASimulator(settings=certain_settings(1.0), scheduler=ManualScheduler(), seed=5)


@pytest.fixture
def always_down() -> SBASimulator:
    return SBASimulator(settings=certain_settings(0.0), scheduler=ManualScheduler(), seed=5)


def stable_pair(sim: SBASimulator):
    a = sim.create_nf(NFType.AMF)
    b = sim.create_nf(NFType.NRF)
    make_stable(sim, a.id, b.id)
    return a, b


class TestSuccessProbability:
    """Tests for rule ordering."""

    def test_rules(self, reach):
        src = reach.store.get_nf_by_id("src")
        s = reach.settings
        assert reach.success_probability(src, "192.168.2.10") == s.cross_subnet
        assert reach.success_probability(src, "192.168.1.99") == s.unknown_host
        assert reach.success_probability(src, "192.168.1.13") == s.not_stable
        assert reach.success_probability(src, "192.168.1.11") == s.connected
        assert reach.success_probability(src, "192.168.1.12") == s.unconnected

    def test_unknown_ip_in_other_subnet(self, reach):
        src = reach.store.get_nf_by_id("src")
        assert reach.success_probability(src, "10.0.0.1") == 0.0

    def test_source_not_stable(self, reach):
        reach.store.update_nf("src", status=NFStatus.STOPPED)
        src = reach.store.get_nf_by_id("src")
        assert reach.success_probability(src, "192.168.1.11") == reach.settings.not_stable

    def test_bus_counts_as_connected(self, reach):
        reach.store.add_bus(Bus(id="bus"))
        reach.store.add_bus_connection(BusConnection(nf_id="src", bus_id="bus"))
        reach.store.add_bus_connection(BusConnection(nf_id="lone", bus_id="bus"))
        src = reach.store.get_nf_by_id("src")
        assert reach.success_probability(src, "192.168.1.12") == reach.settings.connected


class TestSuccessRates:
    """Bernoulli rates over seeded trials."""

    def test_cross_subnet_never_answers(self, reach):
        # Target is a known, stable, directly connected NF in another subnet
        rate = success_rate(reach, "192.168.2.10")
        assert rate == 0.0
        assert abs(rate - 0.95) > 0.5

    def test_connected(self, reach):
        assert success_rate(reach, "192.168.1.11") == pytest.approx(0.95, abs=0.03)

    def test_unconnected(self, reach):
        assert success_rate(reach, "192.168.1.12") == pytest.approx(0.7, abs=0.05)

    def test_not_stable(self, reach):
        assert success_rate(reach, "192.168.1.13") == pytest.approx(0.3, abs=0.05)

    def test_unknown_host(self, reach):
        assert success_rate(reach, "192.168.1.200") == pytest.approx(0.2, abs=0.05)

    def test_same_seed_same_draws(self, store):
        add(store, "src", "192.168.1.10")
        resolver = ConnectivityResolver(store)
        src = store.get_nf_by_id("src")
        draws = []
        for _ in range(2):
            sim = ReachabilitySimulator(store, resolver, rng=random.Random(99))
            draws.append([sim.is_reachable(src, "192.168.1.50") for _ in range(50)])
        assert draws[0] == draws[1]

    @pytest.mark.slow
    def test_connected_large_sample(self, reach):
        source = reach.store.get_nf_by_id("src")
        hits = sum(reach.is_reachable(source, "192.168.1.11") for _ in range(100_000))
        assert hits / 100_000 == pytest.approx(0.95, abs=0.005)


class TestProbe:
    """Tests for single-packet probes."""

    def test_latency_bounds(self, reach):
        values = [reach.latency_ms() for _ in range(TRIALS)]
        assert min(values) >= 1
        assert max(values) <= 56
        assert all(isinstance(v, int) for v in values)

    def test_probe_reply(self, reach):
        src = reach.store.get_nf_by_id("src")
        reply = reach.probe(src, "192.168.2.10", sequence=3)
        assert reply.sequence == 3
        assert not reply.success
        assert reply.timed_out
        assert reply.time_ms is None


class TestPingOnce:
    """Tests for paced multi-packet pings."""

    def test_successful_ping_timing(self, always_up):
        sim = always_up
        a, b = stable_pair(sim)
        completed = []

        session = sim.ping_once(a.id, b.config.ip_address, 4, on_complete=completed.append)

        assert messages(sim, a.id)[-1] == f"Pinging {b.config.ip_address} with 32 bytes of data:"
        assert sim.pings.is_ping_active(a.id)

        sim.scheduler.advance(499)
        assert session.replies == []
        sim.scheduler.advance(1)
        assert len(session.replies) == 1

        sim.scheduler.advance(1500)
        assert len(session.replies) == 4
        assert not session.completed

        sim.scheduler.advance(500)
        assert session.completed
        assert completed == [session]
        assert not sim.pings.is_ping_active(a.id)

        stats = session.statistics
        assert stats.sent == 4
        assert stats.received == 4
        assert stats.loss_percent == 0
        assert stats.min_ms <= stats.avg_ms <= stats.max_ms

    def test_reply_lines(self, always_up):
        sim = always_up
        a, b = stable_pair(sim)
        session = sim.ping_once(a.id, b.config.ip_address, 2)
        sim.scheduler.run_until_idle()

        lines = messages(sim, a.id)
        replies = [line for line in lines if line.startswith("Reply from")]
        assert len(replies) == 2
        t = session.replies[0].time_ms
        assert replies[0] == f"Reply from {b.config.ip_address}: bytes=32 time={t}ms TTL=255"
        assert lines[-1].startswith(f"Ping statistics for {b.config.ip_address}:")
        assert "Packets: Sent = 2, Received = 2, Lost = 0 (0% loss)," in lines[-1]
        assert "Minimum = " in lines[-1]

    def test_timeouts_take_longer(self, always_down):
        sim = always_down
        a, b = stable_pair(sim)
        session = sim.ping_once(a.id, b.config.ip_address, 4)

        sim.scheduler.advance(999)
        assert session.replies == []
        sim.scheduler.advance(1)
        assert session.replies[0].timed_out

        sim.scheduler.advance(3000)
        assert len(session.replies) == 4
        sim.scheduler.advance(500)
        assert session.completed

        logs = sim.get_logs(a.id)
        timeouts = [e for e in logs if e.message == "Request timed out."]
        assert len(timeouts) == 4
        assert all(e.level == LogLevel.ERROR for e in timeouts)
        assert "Packets: Sent = 4, Received = 0, Lost = 4 (100% loss)," in logs[-1].message
        assert "Minimum" not in logs[-1].message

    def test_cross_subnet_ping_fails(self, always_up):
        sim = always_up
        a, b = stable_pair(sim)
        sim.update_nf_config(b.id, ip_address="192.168.2.10")
        session = sim.ping_once(a.id, "192.168.2.10", 3)
        sim.scheduler.run_until_idle()
        assert session.statistics.received == 0

    def test_unknown_source(self, simulator):
        assert simulator.ping_once("missing", "192.168.1.10") is None

    def test_invalid_count(self, simulator):
        nf = simulator.create_nf(NFType.NRF)
        with pytest.raises(ValueError):
            simulator.ping_once(nf.id, "192.168.1.10", 0)

    def test_default_count(self, always_up):
        sim = always_up
        a, b = stable_pair(sim)
        session = sim.ping_once(a.id, b.config.ip_address)
        sim.scheduler.run_until_idle()
        assert session.statistics.sent == 4


class TestCancellation:
    """Tests for cancel_ping and implicit cancellation on delete."""

    def test_cancel_keeps_collected_replies(self, always_up):
        sim = always_up
        a, b = stable_pair(sim)
        completed = []
        session = sim.ping_once(a.id, b.config.ip_address, 4, on_complete=completed.append)
        sim.scheduler.advance(1200)

        assert sim.cancel_ping(a.id)

        assert session.cancelled
        assert not sim.pings.is_ping_active(a.id)
        assert messages(sim, a.id)[-1] == "Ping operation cancelled by user"
        assert sim.get_logs(a.id)[-1].level == LogLevel.WARNING

        sim.scheduler.advance(10_000)
        assert len(session.replies) == 2
        assert not session.completed
        assert completed == []
        assert sim.get_ping_history(a.id) == []

    def test_cancel_when_idle(self, simulator):
        nf = simulator.create_nf(NFType.NRF)
        assert not simulator.cancel_ping(nf.id)
        assert "Ping operation cancelled by user" not in messages(simulator, nf.id)

    def test_delete_source_cancels_silently(self, always_up):
        sim = always_up
        a, b = stable_pair(sim)
        session = sim.ping_once(a.id, b.config.ip_address, 4)
        sim.scheduler.advance(600)

        sim.delete_nf(a.id)
        sim.scheduler.advance(10_000)

        assert session.cancelled
        assert len(session.replies) == 1
        assert not sim.pings.is_ping_active(a.id)
        assert not sim.tasks.has_pending(session.id)

    def test_cancel_scan(self, always_up):
        sim = always_up
        a, b = stable_pair(sim)
        sim.create_nf(NFType.UDM)
        result = sim.ping_subnet(a.id)
        # First target finishes at 1200, second starts at 1400
        sim.scheduler.advance(1300)

        assert sim.cancel_ping(a.id)
        sim.scheduler.advance(10_000)

        assert not result.completed
        assert result.targets[0].reply is not None
        assert result.targets[1].reply is None


class TestPingSubnet:
    """Tests for subnet scans."""

    def test_scan(self, always_up):
        sim = always_up
        src = sim.create_nf(NFType.AMF)
        peer = sim.create_nf(NFType.NRF)
        booting = sim.create_nf(NFType.UDM)
        far = sim.create_nf(NFType.SMF)
        sim.update_nf_config(far.id, ip_address="192.168.2.10")
        make_stable(sim, src.id, peer.id, far.id)
        sim.tasks.cancel_all(booting.id)

        done = []
        result = sim.ping_subnet(src.id, on_complete=done.append)

        assert [t.nf_id for t in result.targets] == [peer.id, booting.id]
        assert result.stable_count == 1
        assert result.unstable_count == 1
        assert messages(sim, src.id)[-1] == "Subnet Scan: Scanning 192.168.1.0/24 network..."

        sim.scheduler.run_until_idle()

        assert result.completed
        assert done == [result]
        assert result.reachable_count == 2
        lines = messages(sim, src.id)
        assert f"Testing {booting.name} ({booting.config.ip_address}) [STARTING]..." in lines
        assert f"Testing {peer.name} ({peer.config.ip_address}) [STABLE]..." in lines
        assert lines[-1] == "Subnet scan completed for 2 services in 192.168.1.0/24"
        assert len(sim.get_ping_history(src.id)) == 2

    def test_scan_timing(self, always_up):
        sim = always_up
        a, b = stable_pair(sim)
        result = sim.ping_subnet(a.id)
        # 200 step + 500 packet + 500 statistics + 500 summary
        sim.scheduler.advance(1699)
        assert not result.completed
        sim.scheduler.advance(1)
        assert result.completed

    def test_empty_subnet(self, simulator):
        nf = simulator.create_nf(NFType.NRF)
        done = []
        result = simulator.ping_subnet(nf.id, on_complete=done.append)
        assert result.completed
        assert result.targets == []
        assert done == [result]
        assert messages(simulator, nf.id)[-1] == "No other services found in subnet 192.168.1.0/24"

    def test_unknown_source(self, simulator):
        assert simulator.ping_subnet("missing") is None


class TestHistory:
    """Tests for ping history."""

    def test_bounded(self):
        settings = certain_settings(1.0)
        settings.ping.history_limit = 3
        sim = SBASimulator(settings=settings, scheduler=ManualScheduler(), seed=1)
        a, b = stable_pair(sim)
        for _ in range(5):
            sim.ping_once(a.id, b.config.ip_address, 1)
            sim.scheduler.run_until_idle()

        history = sim.get_ping_history(a.id)
        assert len(history) == 3
        assert history[-1].target_ip == b.config.ip_address
        assert history[-1].statistics.received == 1

    def test_clear(self, always_up):
        sim = always_up
        a, b = stable_pair(sim)
        sim.ping_once(a.id, b.config.ip_address, 1)
        sim.scheduler.run_until_idle()
        sim.pings.clear_ping_history(a.id)
        assert sim.get_ping_history(a.id) == []

    def test_store_clear_resets(self, always_up):
        sim = always_up
        a, b = stable_pair(sim)
        session = sim.ping_once(a.id, b.config.ip_address, 4)
        sim.store.clear_all()
        assert session.cancelled
        assert not sim.pings.is_ping_active(a.id)
