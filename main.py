#!/usr/bin/env python3
"""
5G SBA Topology Simulator - Main Entry Point

Runs the topology/state engine headless on the Qt event loop and plays a
short scenario: core NFs are deployed, become stable, auto-connect, and
are probed with a ping and a subnet scan.

Usage:
    python main.py
    python main.py --debug              # Enable debug logging
    python main.py --config path.json   # Use a specific settings file
    python main.py --duration 30        # Seconds to run before quitting
"""

import sys
import logging
import argparse
from PyQt6.QtCore import QCoreApplication, QTimer

from models import LogEntry, NFType
from services import QtScheduler, SBASimulator, get_settings

logger = logging.getLogger(__name__)

SCENARIO_TYPES = [NFType.NRF, NFType.AMF, NFType.AUSF, NFType.UDM, NFType.SMF, NFType.UPF]


def setup_logging(debug: bool = False):
    """Configure logging for the application."""
    level = logging.DEBUG if debug else logging.INFO

    # Create formatter
    formatter = logging.Formatter(
        '%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        datefmt='%H:%M:%S'
    )

    # Console handler
    console_handler = logging.StreamHandler()
    console_handler.setLevel(level)
    console_handler.setFormatter(formatter)

    # Configure root logger
    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.addHandler(console_handler)

    logger.info(f"Logging initialized at {'DEBUG' if debug else 'INFO'} level")


def setup_application() -> QCoreApplication:
    """Configure the headless Qt application."""
    app = QCoreApplication(sys.argv)
    app.setApplicationName("SBA Simulator")
    app.setApplicationVersion("0.1.0")
    app.setOrganizationName("sba-sim")
    return app


def run_scenario(simulator: SBASimulator):
    """Deploy a small core and schedule probes once it has settled."""
    nfs = [simulator.create_nf(nf_type) for nf_type in SCENARIO_TYPES]
    amf = nfs[1]
    nrf = nfs[0]

    def probe():
        simulator.ping_once(amf.id, nrf.config.ip_address)
        simulator.ping_subnet(nrf.id)

    # Stable after stable_delay_ms, auto-connected at most auto_connect_max_ms later
    lifecycle = simulator.settings.lifecycle
    QTimer.singleShot(lifecycle.stable_delay_ms + lifecycle.auto_connect_max_ms + 500, probe)


def main():
    """Main entry point."""
    parser = argparse.ArgumentParser(description='5G SBA Topology Simulator')
    parser.add_argument('--debug', action='store_true', help='Enable debug logging')
    parser.add_argument('--config', help='Path to settings JSON file')
    parser.add_argument('--duration', type=float, default=20.0,
                        help='Seconds to run before quitting')
    args = parser.parse_args()

    setup_logging(debug=args.debug)

    app = setup_application()
    settings = get_settings(args.config)

    simulator = SBASimulator(settings=settings.settings, scheduler=QtScheduler(app))

    def echo(entry: LogEntry):
        nf = simulator.get_nf(entry.nf_id)
        name = nf.name if nf else entry.nf_id
        print(f"{name:>8} | {entry.format()}")

    simulator.log_book.add_listener(echo)
    run_scenario(simulator)

    QTimer.singleShot(int(args.duration * 1000), app.quit)
    sys.exit(app.exec())


if __name__ == "__main__":
    main()
