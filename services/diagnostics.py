"""
Reachability and Ping Diagnostics.

ReachabilitySimulator decides, per simulated packet, whether a target
address answers, using a fixed rule order (subnet, known host, status,
connectivity). PingManager paces multi-packet pings and subnet scans on
the scheduler and writes Windows-style output to the NF log book.

All randomness comes from the injected ``random.Random``.
"""

import logging
import random
import uuid
from dataclasses import dataclass
from typing import Callable, Generator, Optional

from models.diagnostics import (
    PingHistoryEntry,
    PingReply,
    PingSession,
    ScanTarget,
    SubnetScanResult,
)
from models.logs import LogLevel
from models.network import NetworkFunction
from .connectivity import ConnectivityResolver
from .log_book import LogBook
from .scheduler import TaskRegistry, TimedSequence
from .settings_manager import PingSettings, ReachabilitySettings
from .topology_store import TopologyEvent, TopologyStore

logger = logging.getLogger(__name__)


class ReachabilitySimulator:
    """
    Probabilistic reachability between a source NF and a target IP.

    Rules, first match wins:
        1. Different subnet -> ``cross_subnet`` (0 by default)
        2. Target IP unknown -> ``unknown_host``
        3. Either end not stable -> ``not_stable``
        4. Connected directly or by bus -> ``connected``
        5. Otherwise -> ``unconnected``
    """

    def __init__(self, store: TopologyStore, resolver: ConnectivityResolver,
                 settings: Optional[ReachabilitySettings] = None,
                 rng: Optional[random.Random] = None):
        self.store = store
        self.resolver = resolver
        self.settings = settings or ReachabilitySettings()
        self._rng = rng or random.Random()

    def success_probability(self, source: NetworkFunction, target_ip: str) -> float:
        s = self.settings
        if not self.resolver.same_subnet(source.config.ip_address, target_ip):
            return s.cross_subnet

        target = self.store.find_nf_by_ip(target_ip)
        if target is None:
            return s.unknown_host
        if not (source.is_stable and target.is_stable):
            return s.not_stable
        if self.resolver.connected(source, target):
            return s.connected
        return s.unconnected

    def is_reachable(self, source: NetworkFunction, target_ip: str) -> bool:
        """One Bernoulli draw against success_probability()."""
        return self._rng.random() < self.success_probability(source, target_ip)

    def latency_ms(self) -> int:
        s = self.settings
        base = self._rng.uniform(s.latency_base_min_ms, s.latency_base_max_ms)
        jitter = self._rng.uniform(-s.latency_jitter_ms, s.latency_jitter_ms)
        return max(1, round(base + jitter))

    def probe(self, source: NetworkFunction, target_ip: str,
              sequence: int = 1, ttl: int = 255) -> PingReply:
        if self.is_reachable(source, target_ip):
            return PingReply(sequence=sequence, success=True, time_ms=self.latency_ms(), ttl=ttl)
        return PingReply(sequence=sequence, success=False, timed_out=True)


@dataclass
class _ActiveProbe:
    """In-flight ping or scan for a source NF."""
    id: str
    sequence: Optional[TimedSequence] = None
    session: Optional[PingSession] = None


class PingManager:
    """
    Paced pings and subnet scans.

    In-flight probes are tracked per source NF. Cancelling them stops
    further packets but leaves replies already collected on the
    session. Deleting the source NF cancels its probes silently.
    """

    def __init__(self, store: TopologyStore, reachability: ReachabilitySimulator,
                 tasks: TaskRegistry, log_book: LogBook,
                 settings: Optional[PingSettings] = None):
        self.store = store
        self.reachability = reachability
        self.tasks = tasks
        self.log_book = log_book
        self.settings = settings or PingSettings()

        self._active: dict[str, dict[str, _ActiveProbe]] = {}
        self._history: dict[str, list[PingHistoryEntry]] = {}
        self._unsubscribe = store.subscribe(self._on_topology_event)

    def _now(self) -> float:
        return self.tasks.scheduler.now()

    # ------------------------------------------------------------------
    # Ping
    # ------------------------------------------------------------------

    def ping_once(self, source_id: str, target_ip: str, count: Optional[int] = None,
                  on_complete: Optional[Callable[[PingSession], None]] = None) -> Optional[PingSession]:
        """
        Start a paced ping from source_id to target_ip.

        Returns the session immediately; replies are appended as the
        scheduler runs. Returns None if the source NF does not exist.
        """
        if count is None:
            count = self.settings.default_count
        if count < 1:
            raise ValueError(f"Ping count must be at least 1, got {count}")

        if self.store.get_nf_by_id(source_id) is None:
            logger.warning(f"Ping source {source_id} not found")
            return None

        session = PingSession(source_id=source_id, target_ip=target_ip,
                              count=count, started_at=self._now())
        probe = _ActiveProbe(id=session.id, session=session)

        def done(finished: PingSession):
            self._deactivate(source_id, probe.id)
            if on_complete is not None:
                on_complete(finished)

        self._launch(source_id, probe, self._ping_steps(session), done)
        return session

    def _ping_steps(self, session: PingSession) -> Generator[float, None, PingSession]:
        s = self.settings
        ip = session.target_ip
        self._log(session.source_id, LogLevel.INFO,
                  f"Pinging {ip} with {s.packet_bytes} bytes of data:",
                  command=f"ping {ip}", packets=session.count)

        for sequence in range(1, session.count + 1):
            yield s.packet_interval_ms

            source = self.store.get_nf_by_id(session.source_id)
            if source is None:
                return session
            reply = self.reachability.probe(source, ip, sequence=sequence, ttl=s.ttl)

            if reply.success:
                session.replies.append(reply)
                self._log(session.source_id, LogLevel.SUCCESS,
                          f"Reply from {ip}: bytes={s.packet_bytes} time={reply.time_ms}ms TTL={reply.ttl}",
                          sequence=sequence, response_time_ms=reply.time_ms)
            else:
                yield s.timeout_extra_ms
                session.replies.append(reply)
                self._log(session.source_id, LogLevel.ERROR, "Request timed out.",
                          sequence=sequence)

        yield s.summary_delay_ms
        self._log_statistics(session)
        self._store_history(session)
        session.completed = True
        return session

    def _log_statistics(self, session: PingSession):
        stats = session.statistics
        lines = [
            f"Ping statistics for {session.target_ip}:",
            f"    Packets: Sent = {stats.sent}, Received = {stats.received}, "
            f"Lost = {stats.lost} ({stats.loss_percent}% loss),",
        ]
        if stats.received:
            lines.append("Approximate round trip times in milli-seconds:")
            lines.append(
                f"    Minimum = {stats.min_ms}ms, Maximum = {stats.max_ms}ms, "
                f"Average = {stats.avg_ms}ms"
            )
        self._log(session.source_id, LogLevel.INFO, "\n".join(lines),
                  sent=stats.sent, received=stats.received, lost=stats.lost,
                  loss_percent=stats.loss_percent)

    # ------------------------------------------------------------------
    # Subnet scan
    # ------------------------------------------------------------------

    def ping_subnet(self, source_id: str,
                    on_complete: Optional[Callable[[SubnetScanResult], None]] = None
                    ) -> Optional[SubnetScanResult]:
        """
        Send one packet to every other NF in the source's subnet, whatever
        its status. Returns None if the source NF does not exist.
        """
        source = self.store.get_nf_by_id(source_id)
        if source is None:
            logger.warning(f"Scan source {source_id} not found")
            return None

        subnet = source.subnet
        result = SubnetScanResult(source_id=source_id, subnet=subnet)
        for nf in self.store.get_all_nfs():
            if nf.id != source_id and nf.subnet == subnet:
                result.targets.append(ScanTarget(
                    nf_id=nf.id,
                    name=nf.name,
                    ip_address=nf.config.ip_address,
                    nf_type=nf.nf_type.value,
                    status=nf.status.value,
                ))

        if not result.targets:
            self._log(source_id, LogLevel.WARNING,
                      f"No other services found in subnet {result.cidr}",
                      source_ip=source.config.ip_address)
            result.completed = True
            if on_complete is not None:
                on_complete(result)
            return result

        probe = _ActiveProbe(id=f"scan-{str(uuid.uuid4())[:8]}")

        def done(finished: SubnetScanResult):
            self._deactivate(source_id, probe.id)
            if on_complete is not None:
                on_complete(finished)

        self._launch(source_id, probe, self._scan_steps(result, probe), done)
        return result

    def _scan_steps(self, result: SubnetScanResult,
                    probe: _ActiveProbe) -> Generator[float, None, SubnetScanResult]:
        self._log(result.source_id, LogLevel.INFO,
                  f"Subnet Scan: Scanning {result.cidr} network...",
                  total_services=len(result.targets),
                  stable_services=result.stable_count,
                  unstable_services=result.unstable_count)

        for target in result.targets:
            yield self.settings.scan_step_ms

            status_info = "STABLE" if target.was_stable else target.status.upper()
            self._log(result.source_id, LogLevel.INFO,
                      f"Testing {target.name} ({target.ip_address}) [{status_info}]...")

            session = PingSession(source_id=result.source_id, target_ip=target.ip_address,
                                  count=1, started_at=self._now())
            probe.session = session
            yield from self._ping_steps(session)
            if session.replies:
                target.reply = session.replies[0]

        yield self.settings.summary_delay_ms
        self._log(result.source_id, LogLevel.SUCCESS,
                  f"Subnet scan completed for {len(result.targets)} services in {result.cidr}",
                  total_tested=len(result.targets),
                  stable_services=result.stable_count,
                  unstable_services=result.unstable_count,
                  reachable=result.reachable_count)
        result.completed = True
        return result

    # ------------------------------------------------------------------
    # In-flight tracking and cancellation
    # ------------------------------------------------------------------

    def _launch(self, source_id: str, probe: _ActiveProbe,
                steps: Generator, done: Callable):
        self._active.setdefault(source_id, {})[probe.id] = probe
        probe.sequence = TimedSequence(self.tasks, probe.id, steps, on_done=done)
        probe.sequence.start()

    def _deactivate(self, source_id: str, probe_id: str):
        probes = self._active.get(source_id)
        if probes is None:
            return
        probes.pop(probe_id, None)
        if not probes:
            del self._active[source_id]

    def is_ping_active(self, nf_id: str) -> bool:
        return bool(self._active.get(nf_id))

    def cancel_ping(self, nf_id: str) -> bool:
        """Cancel every in-flight probe of nf_id. Returns False if none was active."""
        if not self._cancel_probes(nf_id):
            return False
        self._log(nf_id, LogLevel.WARNING, "Ping operation cancelled by user")
        return True

    def _cancel_probes(self, nf_id: str) -> bool:
        probes = self._active.pop(nf_id, {})
        for probe in probes.values():
            if probe.sequence is not None:
                probe.sequence.cancel()
            if probe.session is not None and not probe.session.completed:
                probe.session.cancelled = True
        if probes:
            logger.debug(f"Cancelled {len(probes)} probe(s) for {nf_id}")
        return bool(probes)

    def _on_topology_event(self, event: TopologyEvent, payload):
        if event == TopologyEvent.NF_REMOVED:
            self._cancel_probes(payload.id)
            self._history.pop(payload.id, None)
        elif event == TopologyEvent.CLEARED:
            self.reset()

    # ------------------------------------------------------------------
    # History
    # ------------------------------------------------------------------

    def _store_history(self, session: PingSession):
        history = self._history.setdefault(session.source_id, [])
        history.append(PingHistoryEntry(
            timestamp=self._now(),
            target_ip=session.target_ip,
            replies=list(session.replies),
        ))
        if len(history) > self.settings.history_limit:
            del history[:len(history) - self.settings.history_limit]

    def get_ping_history(self, nf_id: str) -> list[PingHistoryEntry]:
        return list(self._history.get(nf_id, []))

    def clear_ping_history(self, nf_id: str):
        self._history.pop(nf_id, None)

    def reset(self):
        """Cancel all probes silently and drop all history."""
        for nf_id in list(self._active):
            self._cancel_probes(nf_id)
        self._history.clear()

    def _log(self, nf_id: str, level: LogLevel, message: str, **details):
        self.log_book.add_log(nf_id, level, message, details)
