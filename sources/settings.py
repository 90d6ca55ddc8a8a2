# settings.py
"""
Configuration for the history sync.

Defaults live as module-level constants (change them here if your
deployment differs). ``SyncSettings.from_env()`` applies ``ARANET_*``
environment overrides on top of them.
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Mapping, Optional, Tuple

from aranet_errors import InvalidConfig

# ----------------------------------------------------------------------
# Defaults
# ----------------------------------------------------------------------
DEFAULT_DB_PATH = Path.home() / ".local" / "share" / "aranet" / "data.db"
DEFAULT_LOG_FILE = "aranet_sync.log"
DEFAULT_READ_DELAY = 0.05       # seconds between command write and read
DEFAULT_SYNC_TIMEOUT = 30.0     # connect + download bound
DEFAULT_SCAN_TIMEOUT = 10.0     # device discovery bound

ENV_PREFIX = "ARANET_"

# Log file name is needed before any SyncSettings object exists.
LOG_FILE = os.environ.get(ENV_PREFIX + "LOG_FILE", DEFAULT_LOG_FILE)


def _positive_float(env: Mapping[str, str], key: str, default: float) -> float:
    raw = env.get(ENV_PREFIX + key)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = float(raw)
    except ValueError as exc:
        raise InvalidConfig(f"{ENV_PREFIX}{key} must be a number, got {raw!r}") from exc
    if value < 0:
        raise InvalidConfig(f"{ENV_PREFIX}{key} must not be negative, got {value}")
    return value


@dataclass(frozen=True)
class SyncSettings:
    db_path: Path = DEFAULT_DB_PATH
    log_file: str = DEFAULT_LOG_FILE
    read_delay: float = DEFAULT_READ_DELAY
    sync_timeout: float = DEFAULT_SYNC_TIMEOUT
    scan_timeout: float = DEFAULT_SCAN_TIMEOUT
    devices: Tuple[str, ...] = field(default_factory=tuple)   # addresses or names

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None) -> "SyncSettings":
        """
        Build settings from ``env`` (``os.environ`` when omitted).

        Raises
        ------
        InvalidConfig
            If a numeric override cannot be parsed or is negative.
        """
        env = os.environ if env is None else env
        devices = tuple(
            d.strip() for d in env.get(ENV_PREFIX + "DEVICES", "").split(",") if d.strip()
        )
        db_path = env.get(ENV_PREFIX + "DB_PATH")
        return cls(
            db_path=Path(db_path).expanduser() if db_path else DEFAULT_DB_PATH,
            log_file=env.get(ENV_PREFIX + "LOG_FILE", DEFAULT_LOG_FILE),
            read_delay=_positive_float(env, "READ_DELAY", DEFAULT_READ_DELAY),
            sync_timeout=_positive_float(env, "SYNC_TIMEOUT", DEFAULT_SYNC_TIMEOUT),
            scan_timeout=_positive_float(env, "SCAN_TIMEOUT", DEFAULT_SCAN_TIMEOUT),
            devices=devices,
        )
