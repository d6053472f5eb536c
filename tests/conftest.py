"""
Pytest configuration and shared fixtures for SBA simulator tests.
"""

import pytest
import random
import tempfile
import shutil
from pathlib import Path
from typing import Generator

# Add parent directory to path for imports
import sys
sys.path.insert(0, str(Path(__file__).parent.parent))

from models.network import NFStatus, NFType
from services.settings_manager import SimulatorSettings
from services.scheduler import ManualScheduler, TaskRegistry
from services.topology_store import TopologyStore
from services.simulator import SBASimulator


# ============== Command Line Options ==============

def pytest_addoption(parser):
    parser.addoption(
        "--run-slow", action="store_true", default=False,
        help="Run tests marked as slow",
    )


def pytest_collection_modifyitems(config, items):
    if config.getoption("--run-slow"):
        return
    skip_slow = pytest.mark.skip(reason="needs --run-slow")
    for item in items:
        if "slow" in item.keywords:
            item.add_marker(skip_slow)


# ============== Temporary Directory Fixtures ==============

@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for test files."""
    tmp = tempfile.mkdtemp(prefix="sba_sim_test_")
    yield Path(tmp)
    shutil.rmtree(tmp, ignore_errors=True)


# ============== Core Fixtures ==============

@pytest.fixture
def settings() -> SimulatorSettings:
    return SimulatorSettings()


@pytest.fixture
def scheduler() -> ManualScheduler:
    return ManualScheduler()


@pytest.fixture
def tasks(scheduler: ManualScheduler) -> TaskRegistry:
    return TaskRegistry(scheduler)


@pytest.fixture
def rng() -> random.Random:
    """Seeded random source for repeatable draws."""
    return random.Random(1234)


@pytest.fixture
def store() -> TopologyStore:
    return TopologyStore()


@pytest.fixture
def simulator(settings: SimulatorSettings, scheduler: ManualScheduler,
              rng: random.Random) -> SBASimulator:
    return SBASimulator(settings=settings, scheduler=scheduler, rng=rng)


@pytest.fixture
def core_pair(simulator: SBASimulator):
    """A stable NRF and AMF in 192.168.1.0/24, auto-connected."""
    nrf = simulator.create_nf(NFType.NRF)
    amf = simulator.create_nf(NFType.AMF)
    settle(simulator)
    return nrf, amf


# ============== Helper Functions ==============

def settle(simulator: SBASimulator):
    """Advance past startup and the auto-connection window."""
    lc = simulator.settings.lifecycle
    simulator.scheduler.advance(lc.stable_delay_ms + lc.auto_connect_max_ms + 1)


def make_stable(simulator: SBASimulator, *nf_ids: str):
    """Force NFs to stable without running their timers."""
    for nf_id in nf_ids:
        simulator.tasks.cancel_all(nf_id)
        simulator.store.update_nf(nf_id, status=NFStatus.STABLE)


def messages(simulator: SBASimulator, nf_id: str) -> list[str]:
    return [entry.message for entry in simulator.get_logs(nf_id)]
