"""
Settings Manager.

Handles simulator settings with JSON file storage. Every timing and
probability constant of the simulation lives here so it can be tuned
without touching the engines.
"""

import json
import logging
import os
from dataclasses import dataclass, field, asdict
from typing import Optional
from pathlib import Path

logger = logging.getLogger(__name__)


@dataclass
class AddressSettings:
    """Address pool searched by the allocator."""
    subnets: list = field(default_factory=lambda: [
        "192.168.1",  # Core network functions
        "192.168.2",  # User plane functions
        "192.168.3",  # Edge services
        "192.168.4",  # Additional services
    ])
    host_min: int = 10
    host_max: int = 254
    port_min: int = 8080
    port_max: int = 9999


@dataclass
class LifecycleSettings:
    """NF lifecycle timing."""
    stable_delay_ms: int = 5000
    auto_connect_min_ms: int = 3000
    auto_connect_max_ms: int = 5000
    default_protocol: str = "HTTP/2"
    auto_attach_to_bus: bool = False


@dataclass
class ReachabilitySettings:
    """
    Success probabilities for simulated probes.

    Presentation-tuning constants. Only the order in which the rules
    are checked is fixed.
    """
    cross_subnet: float = 0.0
    unknown_host: float = 0.2
    not_stable: float = 0.3
    connected: float = 0.95
    unconnected: float = 0.7
    latency_base_min_ms: float = 1.0
    latency_base_max_ms: float = 51.0
    latency_jitter_ms: float = 5.0


@dataclass
class PingSettings:
    """Pacing and formatting of simulated pings."""
    packet_interval_ms: int = 500
    timeout_extra_ms: int = 500
    summary_delay_ms: int = 500
    scan_step_ms: int = 200
    default_count: int = 4
    packet_bytes: int = 32
    ttl: int = 255
    history_limit: int = 50


@dataclass
class LogSettings:
    """NF log book settings."""
    max_logs_per_nf: int = 100
    level: str = "INFO"


@dataclass
class SimulatorSettings:
    """Complete simulator settings."""
    addresses: AddressSettings = field(default_factory=AddressSettings)
    lifecycle: LifecycleSettings = field(default_factory=LifecycleSettings)
    reachability: ReachabilitySettings = field(default_factory=ReachabilitySettings)
    ping: PingSettings = field(default_factory=PingSettings)
    logs: LogSettings = field(default_factory=LogSettings)

    def __post_init__(self):
        self.validate()

    def validate(self):
        """Reject settings the engines cannot work with."""
        lc = self.lifecycle
        if lc.auto_connect_min_ms > lc.auto_connect_max_ms:
            raise ValueError(
                f"auto_connect_min_ms ({lc.auto_connect_min_ms}) exceeds "
                f"auto_connect_max_ms ({lc.auto_connect_max_ms})"
            )
        addr = self.addresses
        if addr.host_min > addr.host_max or addr.port_min > addr.port_max:
            raise ValueError("Address ranges must have min <= max")
        if not addr.subnets:
            raise ValueError("At least one subnet is required")

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            "addresses": asdict(self.addresses),
            "lifecycle": asdict(self.lifecycle),
            "reachability": asdict(self.reachability),
            "ping": asdict(self.ping),
            "logs": asdict(self.logs),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "SimulatorSettings":
        """Create from dictionary. Missing sections keep their defaults."""
        settings = cls()

        if "addresses" in data:
            settings.addresses = AddressSettings(**data["addresses"])
        if "lifecycle" in data:
            settings.lifecycle = LifecycleSettings(**data["lifecycle"])
        if "reachability" in data:
            settings.reachability = ReachabilitySettings(**data["reachability"])
        if "ping" in data:
            settings.ping = PingSettings(**data["ping"])
        if "logs" in data:
            settings.logs = LogSettings(**data["logs"])

        settings.validate()
        return settings


class SettingsManager:
    """
    Manages simulator settings with JSON file storage.

    Settings file location:
    - Windows: %APPDATA%/SBASim/settings.json
    - Linux: ~/.config/SBASim/settings.json
    - macOS: ~/Library/Application Support/SBASim/settings.json
    """

    APP_NAME = "SBASim"
    SETTINGS_FILE = "settings.json"

    def __init__(self, config_override: Optional[str] = None):
        """
        Initialize settings manager.

        Args:
            config_override: Optional path to override config file location.
                            Useful for testing.
        """
        self._settings = SimulatorSettings()
        self._config_override = config_override
        self._settings_path = self._get_settings_path()
        self.load()

    @property
    def settings(self) -> SimulatorSettings:
        """Get current settings."""
        return self._settings

    @property
    def settings_path(self) -> str:
        """Get the settings file path."""
        return str(self._settings_path)

    # Convenience properties for common settings
    @property
    def stable_delay_ms(self) -> int:
        return self._settings.lifecycle.stable_delay_ms

    @stable_delay_ms.setter
    def stable_delay_ms(self, value: int):
        self._settings.lifecycle.stable_delay_ms = value
        self.save()

    @property
    def default_protocol(self) -> str:
        return self._settings.lifecycle.default_protocol

    @default_protocol.setter
    def default_protocol(self, value: str):
        self._settings.lifecycle.default_protocol = value
        self.save()

    def _get_settings_path(self) -> Path:
        """Get platform-specific settings directory."""
        if self._config_override:
            return Path(self._config_override)

        import platform
        system = platform.system()

        if system == "Windows":
            base = os.environ.get("APPDATA", os.path.expanduser("~"))
            config_dir = Path(base) / self.APP_NAME
        elif system == "Darwin":  # macOS
            config_dir = Path.home() / "Library" / "Application Support" / self.APP_NAME
        else:  # Linux and others
            xdg_config = os.environ.get("XDG_CONFIG_HOME", os.path.expanduser("~/.config"))
            config_dir = Path(xdg_config) / self.APP_NAME

        return config_dir / self.SETTINGS_FILE

    def _ensure_settings_dir(self):
        """Create settings directory if it doesn't exist."""
        self._settings_path.parent.mkdir(parents=True, exist_ok=True)

    def load(self) -> bool:
        """Load settings from file."""
        if not self._settings_path.exists():
            return False

        try:
            with open(self._settings_path, "r", encoding="utf-8") as f:
                data = json.load(f)
            self._settings = SimulatorSettings.from_dict(data)
            return True
        except (OSError, ValueError, TypeError) as e:
            logger.warning(f"Error loading settings from {self._settings_path}: {e}")
            return False

    def save(self) -> bool:
        """Save settings to file."""
        try:
            self._ensure_settings_dir()
            with open(self._settings_path, "w", encoding="utf-8") as f:
                json.dump(self._settings.to_dict(), f, indent=2)
            return True
        except OSError as e:
            logger.warning(f"Error saving settings to {self._settings_path}: {e}")
            return False

    def reset(self):
        """Reset settings to defaults."""
        self._settings = SimulatorSettings()
        self.save()


# Global settings instance, used by the entry point only
_settings_manager: Optional[SettingsManager] = None


def get_settings(config_override: Optional[str] = None) -> SettingsManager:
    """
    Get the global settings manager instance.

    Args:
        config_override: Optional path to override config location.
                        Only used on first call to initialize.
    """
    global _settings_manager
    if _settings_manager is None:
        _settings_manager = SettingsManager(config_override)
    return _settings_manager


def reset_settings_manager():
    """Reset the global settings manager (useful for testing)."""
    global _settings_manager
    _settings_manager = None
