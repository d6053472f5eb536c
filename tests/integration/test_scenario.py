"""
Integration tests for full simulator scenarios.

Tests:
- Core deployment and auto-connection
- Deleting a connected NF
- Global protocol changes
- Cascading removal of connections, attachments and timers
- Subscriber notifications
- Simulator reset
"""

import pytest

from models.logs import LogLevel
from models.network import ConnectionType, HttpProtocol, NFStatus, NFType
from services.topology_store import TopologyEvent
from tests.conftest import settle, messages


CORE_TYPES = [NFType.NRF, NFType.AMF, NFType.AUSF, NFType.UDM, NFType.SMF, NFType.UPF]


def edge_names(simulator):
    names = set()
    for conn in simulator.store.get_all_connections():
        a = simulator.get_nf(conn.source_id).name
        b = simulator.get_nf(conn.target_id).name
        names.add(frozenset({a, b}))
    return names


class TestCoreDeployment:
    """Deploy a small core and let it settle."""

    def test_addresses_assigned_in_order(self, simulator):
        nrf = simulator.create_nf(NFType.NRF)
        amf = simulator.create_nf(NFType.AMF)
        assert nrf.config.endpoint == "192.168.1.10:8080"
        assert amf.config.endpoint == "192.168.1.11:8081"

    def test_core_auto_connects(self, simulator):
        for nf_type in CORE_TYPES:
            simulator.create_nf(nf_type)
        settle(simulator)

        assert all(nf.status == NFStatus.STABLE for nf in simulator.get_all_nfs())
        assert edge_names(simulator) == {
            frozenset({"AMF-1", "NRF-1"}),
            frozenset({"AMF-1", "AUSF-1"}),
            frozenset({"AMF-1", "UDM-1"}),
            frozenset({"AUSF-1", "NRF-1"}),
            frozenset({"AUSF-1", "UDM-1"}),
            frozenset({"UDM-1", "NRF-1"}),
            frozenset({"SMF-1", "NRF-1"}),
            frozenset({"SMF-1", "UPF-1"}),
        }
        conns = simulator.store.get_all_connections()
        assert all(c.connection_type == ConnectionType.AUTO for c in conns)
        assert not any(c.show_visual for c in conns)

    def test_repeated_attempts_do_not_duplicate(self, simulator, core_pair):
        _, amf = core_pair
        before = len(simulator.store.get_all_connections())
        assert simulator.lifecycle.attempt_auto_connections(amf.id) == []
        assert len(simulator.store.get_all_connections()) == before

    def test_ping_after_settling(self, simulator, scheduler, core_pair):
        nrf, amf = core_pair
        session = simulator.ping_once(amf.id, nrf.config.ip_address)
        scheduler.run_until_idle()

        assert session.completed
        assert len(session.replies) == 4
        history = simulator.get_ping_history(amf.id)
        assert len(history) == 1
        assert history[0].target_ip == "192.168.1.10"
        assert messages(simulator, amf.id)[-1].startswith("Ping statistics for 192.168.1.10:")

    def test_subnet_scan_after_settling(self, simulator, scheduler, core_pair):
        nrf, amf = core_pair
        results = []
        simulator.ping_subnet(nrf.id, on_complete=results.append)
        scheduler.run_until_idle()

        assert len(results) == 1
        assert [t.name for t in results[0].targets] == [amf.name]
        assert results[0].stable_count == 1
        assert messages(simulator, nrf.id)[-1] == \
            "Subnet scan completed for 1 services in 192.168.1.0/24"


class TestDeletion:

    def test_delete_connected_nf(self, simulator, core_pair):
        nrf, amf = core_pair
        assert simulator.store.has_edge(amf.id, nrf.id)

        assert simulator.delete_nf(nrf.id)
        assert simulator.get_nf(nrf.id) is None
        assert simulator.store.get_all_connections() == []
        assert simulator.store.get_connections_for_nf(amf.id) == []
        assert messages(simulator, amf.id)[-1] == "Lost connection to NRF-1"

    def test_delete_cascades(self, simulator):
        nrf = simulator.create_nf(NFType.NRF)
        amf = simulator.create_nf(NFType.AMF)
        smf = simulator.create_nf(NFType.SMF)
        bus = simulator.create_bus()
        simulator.connect(amf.id, nrf.id)
        simulator.connect(smf.id, nrf.id)
        simulator.attach_to_bus(nrf.id, bus.id)
        simulator.attach_to_bus(amf.id, bus.id)

        simulator.delete_nf(nrf.id)

        assert not simulator.tasks.has_pending(nrf.id)
        assert simulator.store.get_all_connections() == []
        assert bus.connections == [amf.id]
        assert [bc.nf_id for bc in simulator.store.get_all_bus_connections()] == [amf.id]
        assert simulator.get_logs(nrf.id) == []

    def test_delete_before_stable_cancels_startup(self, simulator, scheduler):
        nrf = simulator.create_nf(NFType.NRF)
        simulator.delete_nf(nrf.id)
        settle(simulator)
        assert scheduler.pending_count == 0
        assert simulator.get_all_nfs() == []

    def test_delete_during_ping(self, simulator, scheduler, core_pair):
        nrf, amf = core_pair
        session = simulator.ping_once(amf.id, nrf.config.ip_address)
        scheduler.advance(600)
        simulator.delete_nf(amf.id)
        scheduler.run_until_idle()

        assert session.cancelled
        assert not session.completed
        assert simulator.get_ping_history(amf.id) == []
        assert simulator.get_logs(amf.id) == []


class TestGlobalProtocol:

    def test_protocol_change_counts_changed_nfs(self, simulator, core_pair):
        simulator.create_nf(NFType.UDM)

        assert simulator.update_global_protocol(HttpProtocol.HTTP1) == 3
        assert simulator.update_global_protocol("HTTP/1") == 0
        assert all(nf.config.http_protocol == HttpProtocol.HTTP1 for nf in simulator.get_all_nfs())
        assert all(c.protocol == HttpProtocol.HTTP1 for c in simulator.store.get_all_connections())

    def test_new_nfs_inherit_protocol(self, simulator):
        simulator.update_global_protocol(HttpProtocol.HTTP1)
        nf = simulator.create_nf(NFType.PCF)
        assert nf.config.http_protocol == HttpProtocol.HTTP1

    def test_protocol_change_logged(self, simulator):
        nrf = simulator.create_nf(NFType.NRF)
        simulator.update_global_protocol(HttpProtocol.HTTP1)
        last = simulator.get_logs(nrf.id)[-1]
        assert last.level == LogLevel.INFO
        assert last.message == "HTTP protocol updated to HTTP/1"

    def test_invalid_protocol(self, simulator):
        with pytest.raises(ValueError):
            simulator.update_global_protocol("HTTP/3")


class TestSubscribers:

    def test_events_in_order(self, simulator):
        events = []
        unsubscribe = simulator.subscribe(lambda event, payload: events.append(event))

        nrf = simulator.create_nf(NFType.NRF)
        amf = simulator.create_nf(NFType.AMF)
        conn = simulator.connect(amf.id, nrf.id)
        simulator.disconnect(conn.id)
        simulator.delete_nf(amf.id)

        assert events == [
            TopologyEvent.NF_ADDED,
            TopologyEvent.NF_ADDED,
            TopologyEvent.CONNECTION_ADDED,
            TopologyEvent.CONNECTION_REMOVED,
            TopologyEvent.NF_REMOVED,
        ]

        unsubscribe()
        simulator.create_nf(NFType.SMF)
        assert len(events) == 5

    def test_stable_transition_notifies(self, simulator):
        updates = []
        simulator.subscribe(
            lambda event, payload: updates.append(payload.status)
            if event == TopologyEvent.NF_UPDATED else None
        )
        simulator.create_nf(NFType.NRF)
        settle(simulator)
        assert updates == [NFStatus.STABLE]

    def test_failing_subscriber_does_not_break_store(self, simulator, caplog):
        def broken(event, payload):
            raise RuntimeError("boom")

        simulator.subscribe(broken)
        nrf = simulator.create_nf(NFType.NRF)
        assert simulator.get_nf(nrf.id) is nrf
        assert "Topology subscriber failed" in caplog.text


class TestReset:

    def test_reset_clears_everything(self, simulator, scheduler, core_pair):
        nrf, amf = core_pair
        simulator.create_bus()
        simulator.ping_once(amf.id, nrf.config.ip_address)
        simulator.create_nf(NFType.SMF)

        simulator.reset()

        assert simulator.get_all_nfs() == []
        assert simulator.store.get_all_connections() == []
        assert simulator.store.get_all_buses() == []
        assert simulator.log_book.get_all_logs() == []
        assert not simulator.pings.is_ping_active(amf.id)
        assert scheduler.pending_count == 0

    def test_reset_restarts_naming_and_addresses(self, simulator, core_pair):
        simulator.reset()
        nrf = simulator.create_nf(NFType.NRF)
        assert nrf.name == "NRF-1"
        assert nrf.config.endpoint == "192.168.1.10:8080"
        assert simulator.create_bus().name == "Service Bus 1"
