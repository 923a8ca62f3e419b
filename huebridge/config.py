"""
Configuration management for huebridge.

Handles:
- Data directory location
- Hub client settings (timeouts, retries)
- Event stream reconnection and periodic refresh
- Logging level
"""

import json
import logging
import os
import socket
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from .registry.devices import REGISTRY_FILENAME

logger = logging.getLogger(__name__)

# Default paths
DEFAULT_DATA_DIR = Path.home() / ".huebridge"

DATA_DIR_ENV = "HUEBRIDGE_DATA_DIR"
LOG_LEVEL_ENV = "HUEBRIDGE_LOG_LEVEL"


def default_data_dir() -> Path:
    env = os.environ.get(DATA_DIR_ENV)
    return Path(env).expanduser() if env else DEFAULT_DATA_DIR


def default_app_name() -> str:
    return f"huebridge#{socket.gethostname()}"


@dataclass
class Config:
    """
    Main huebridge configuration.

    Stored at ~/.huebridge/config.json
    """
    # Paths
    data_dir: Path = field(default_factory=default_data_dir)

    # Discovery
    discovery_timeout: float = 4.0

    # Hub client
    request_timeout: float = 10.0
    max_retries: int = 3
    retry_delay: float = 0.25

    # Sync
    reconnect_delay: float = 2.0
    refresh_interval: float = 0.0  # seconds, 0 disables

    app_name: str = field(default_factory=default_app_name)
    log_level: str = "INFO"

    @property
    def config_path(self) -> Path:
        return self.data_dir / "config.json"

    @property
    def registry_path(self) -> Path:
        return self.data_dir / REGISTRY_FILENAME

    def ensure_data_dir(self) -> None:
        """Create data directory if it doesn't exist."""
        self.data_dir.mkdir(parents=True, exist_ok=True)

    def to_dict(self) -> dict:
        return {
            "discovery_timeout": self.discovery_timeout,
            "request_timeout": self.request_timeout,
            "max_retries": self.max_retries,
            "retry_delay": self.retry_delay,
            "reconnect_delay": self.reconnect_delay,
            "refresh_interval": self.refresh_interval,
            "app_name": self.app_name,
            "log_level": self.log_level,
        }

    def save(self) -> None:
        """Save configuration to disk."""
        self.ensure_data_dir()

        with open(self.config_path, 'w') as f:
            json.dump(self.to_dict(), f, indent=2)

        logger.debug(f"Configuration saved to {self.config_path}")

    @classmethod
    def load(cls, data_dir: Optional[Path] = None) -> "Config":
        """Load configuration from disk, then apply environment overrides."""
        data_dir = Path(data_dir) if data_dir else default_data_dir()
        config_path = data_dir / "config.json"

        config = cls(data_dir=data_dir)
        if config_path.exists():
            with open(config_path, 'r') as f:
                data = json.load(f)

            # Only known fields, so older or newer files still load
            for key, value in data.items():
                if key in config.to_dict():
                    setattr(config, key, value)

        env_level = os.environ.get(LOG_LEVEL_ENV)
        if env_level:
            config.log_level = env_level.upper()

        return config

    @classmethod
    def exists(cls, data_dir: Optional[Path] = None) -> bool:
        """Check if configuration exists."""
        data_dir = Path(data_dir) if data_dir else default_data_dir()
        return (data_dir / "config.json").exists()


# Global config instance
_config: Optional[Config] = None


def get_config(data_dir: Optional[Path] = None) -> Config:
    """Get the global configuration instance."""
    global _config
    if _config is None:
        _config = Config.load(data_dir)
    return _config


def set_config(config: Config) -> None:
    """Set the global configuration instance."""
    global _config
    _config = config


def reset_config() -> None:
    """Reset the global configuration instance."""
    global _config
    _config = None
