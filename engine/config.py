"""
User configuration file support.

Reads/writes ``~/.speedcheck/config.json``.

Supported keys::

    ping_count = 8
    ping_timeout = 3.0          # seconds per latency probe
    download_duration = 10.0
    upload_duration = 10.0
    download_url = "..."
    upload_url = "..."
    ping_endpoints = [...]      # [{"url": ..., "kind": "http", "weight": 1.0}]
    csv_file = ""               # auto-append CSV path
    log_level = "WARNING"
    log_file = ""
"""
from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List

from .constants import (
    DEFAULT_DURATION,
    DEFAULT_PING_COUNT,
    DEFAULT_PING_TIMEOUT,
    DOWNLOAD_URL,
    MAX_DURATION,
    MAX_PING_COUNT,
    MAX_PING_TIMEOUT,
    MIN_DURATION,
    MIN_PING_COUNT,
    MIN_PING_TIMEOUT,
    PING_ENDPOINTS,
    UPLOAD_URL,
)
from .errors import ConfigError
from .probes import PingEndpoint

logger = logging.getLogger(__name__)

_CONFIG_DIR = os.path.join(Path.home(), ".speedcheck")
_CONFIG_FILE = "config.json"


def _config_path() -> str:
    return os.path.join(_CONFIG_DIR, _CONFIG_FILE)


# ---------------------------------------------------------------------------
# Defaults
# ---------------------------------------------------------------------------

DEFAULTS: Dict[str, Any] = {
    "ping_count": DEFAULT_PING_COUNT,
    "ping_timeout": DEFAULT_PING_TIMEOUT,
    "download_duration": DEFAULT_DURATION,
    "upload_duration": DEFAULT_DURATION,
    "download_url": DOWNLOAD_URL,
    "upload_url": UPLOAD_URL,
    "ping_endpoints": PING_ENDPOINTS,
    "csv_file": "",
    "log_level": "WARNING",
    "log_file": "",
}


# ---------------------------------------------------------------------------
# Read / Write
# ---------------------------------------------------------------------------

def load_config() -> Dict[str, Any]:
    """Load config from disk, returning defaults for missing keys."""
    path = _config_path()
    config = dict(DEFAULTS)

    if not os.path.isfile(path):
        return config

    try:
        with open(path, encoding="utf-8") as fh:
            user = json.load(fh)
        if isinstance(user, dict):
            config.update(user)
    except (json.JSONDecodeError, OSError) as exc:
        logger.warning("Ignoring unreadable config %s: %s", path, exc)

    return config


def save_config(config: Dict[str, Any]) -> str:
    """Write *config* to disk.  Returns the file path."""
    path = _config_path()
    os.makedirs(os.path.dirname(path), exist_ok=True)

    with open(path, "w", encoding="utf-8") as fh:
        json.dump(config, fh, indent=2, ensure_ascii=False)

    return path


def get_config_value(key: str) -> Any:
    """Get a single config value."""
    return load_config().get(key, DEFAULTS.get(key))


def set_config_value(key: str, value: Any) -> str:
    """Set a single config value and persist.  Returns file path."""
    config = load_config()
    config[key] = value
    return save_config(config)


def config_path() -> str:
    """Return the config file path (for display purposes)."""
    return _config_path()


# ---------------------------------------------------------------------------
# Typed view
# ---------------------------------------------------------------------------

@dataclass
class EngineConfig:
    """Validated settings for one :class:`~engine.orchestrator.SpeedTestEngine`."""

    ping_count: int = DEFAULT_PING_COUNT
    ping_timeout: float = DEFAULT_PING_TIMEOUT
    download_duration: float = DEFAULT_DURATION
    upload_duration: float = DEFAULT_DURATION
    download_url: str = DOWNLOAD_URL
    upload_url: str = UPLOAD_URL
    ping_endpoints: List[PingEndpoint] = field(
        default_factory=lambda: [PingEndpoint.from_dict(e) for e in PING_ENDPOINTS]
    )

    def __post_init__(self) -> None:
        validate(
            ping_count=self.ping_count,
            ping_timeout=self.ping_timeout,
            download_duration=self.download_duration,
            upload_duration=self.upload_duration,
        )
        if not self.ping_endpoints:
            raise ConfigError("At least one ping endpoint is required")

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> EngineConfig:
        merged = {**DEFAULTS, **data}
        try:
            endpoints = [PingEndpoint.from_dict(e) for e in merged["ping_endpoints"]]
            return cls(
                ping_count=int(merged["ping_count"]),
                ping_timeout=float(merged["ping_timeout"]),
                download_duration=float(merged["download_duration"]),
                upload_duration=float(merged["upload_duration"]),
                download_url=str(merged["download_url"]),
                upload_url=str(merged["upload_url"]),
                ping_endpoints=endpoints,
            )
        except ConfigError:
            raise
        except (TypeError, ValueError, KeyError) as exc:
            raise ConfigError(f"Invalid configuration: {exc}") from exc


def validate(
    ping_count: int,
    ping_timeout: float,
    download_duration: float,
    upload_duration: float,
) -> None:
    """Raise ``ConfigError`` if any parameter is out of range."""
    if not MIN_PING_COUNT <= ping_count <= MAX_PING_COUNT:
        raise ConfigError(f"Ping count must be between {MIN_PING_COUNT} and {MAX_PING_COUNT}")
    if not MIN_PING_TIMEOUT <= ping_timeout <= MAX_PING_TIMEOUT:
        raise ConfigError(
            f"Ping timeout must be between {MIN_PING_TIMEOUT} and {MAX_PING_TIMEOUT} s"
        )
    if not MIN_DURATION <= download_duration <= MAX_DURATION:
        raise ConfigError(f"Download duration must be between {MIN_DURATION} and {MAX_DURATION} s")
    if not MIN_DURATION <= upload_duration <= MAX_DURATION:
        raise ConfigError(f"Upload duration must be between {MIN_DURATION} and {MAX_DURATION} s")
