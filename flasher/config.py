"""Flasher configuration and user overrides."""

from __future__ import annotations

import json
import logging
import platform
from dataclasses import dataclass, field, fields
from pathlib import Path


logger = logging.getLogger("device-flasher.config")

CONFIG_DIR = Path.home() / ".device-flasher"
USER_CONFIG_FILE = CONFIG_DIR / "config.json"

DEFAULT_LOCK_UNLOCK_VALIDATION_PAUSE = 5.0
DEFAULT_LOCK_UNLOCK_RETRIES = 2
DEFAULT_LOCK_UNLOCK_RETRY_INTERVAL = 30.0

PLATFORM_TOOLS_BASE_URI = "https://dl.google.com/android/repository"
PLATFORM_TOOLS_DEFAULT_VERSION = "30.0.4"
PLATFORM_TOOLS_JASMINE_VERSION = "29.0.6"


def host_os() -> str:
    """Return 'linux', 'darwin' or 'windows'."""
    return platform.system().lower()


@dataclass
class FlasherConfig:
    """Settings for one flashing run."""

    host_os: str = field(default_factory=host_os)
    lock_unlock_validation_pause: float = DEFAULT_LOCK_UNLOCK_VALIDATION_PAUSE
    lock_unlock_retries: int = DEFAULT_LOCK_UNLOCK_RETRIES
    lock_unlock_retry_interval: float = DEFAULT_LOCK_UNLOCK_RETRY_INTERVAL
    platform_tools_version: str = PLATFORM_TOOLS_DEFAULT_VERSION
    platform_tools_base_uri: str = PLATFORM_TOOLS_BASE_URI
    cache_dir: Path = CONFIG_DIR / "platform-tools"
    download_timeout: float = 300.0

    def __post_init__(self) -> None:
        if self.lock_unlock_retries < 0:
            raise ValueError("lock_unlock_retries must be >= 0")
        self.cache_dir = Path(self.cache_dir)

    @classmethod
    def from_user_config(cls, **overrides) -> FlasherConfig:
        """Build a config from ~/.device-flasher/config.json plus explicit overrides.

        Unknown keys in the file are ignored; explicit overrides win.
        """
        known = {f.name for f in fields(cls)}
        values = {k: v for k, v in read_user_config().items() if k in known}
        values.update(overrides)
        return cls(**values)


def read_user_config() -> dict:
    """Read user config from ~/.device-flasher/config.json. Returns {} if missing or invalid."""
    if not USER_CONFIG_FILE.exists():
        return {}
    try:
        data = json.loads(USER_CONFIG_FILE.read_text())
    except Exception as e:
        logger.warning("Failed to read config file %s: %s", USER_CONFIG_FILE, e)
        return {}
    if not isinstance(data, dict):
        logger.warning("Ignoring config file %s: expected a JSON object", USER_CONFIG_FILE)
        return {}
    return data
