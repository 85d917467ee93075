"""Configuration management for ZK Attendance Sync."""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Mapping, Optional

from platformdirs import user_data_dir, user_log_dir

__all__ = [
    "Config",
    "DeviceSettings",
    "SyncSettings",
    "setup_logging",
    "PAYLOAD_FORMAT_LIST",
    "PAYLOAD_FORMAT_WRAPPED",
]

logger = logging.getLogger(__name__)

APP_NAME = "ZK Attendance Sync"
APP_AUTHOR = "AttendanceSync"

# Device defaults
DEFAULT_DEVICE_TIMEOUT = 10  # seconds
DEFAULT_DEVICE_TIMEZONE = "UTC"
DEFAULT_CONNECT_RETRIES = 1
DEFAULT_FETCH_TIMEOUT = 120  # seconds, whole connect+download per device

# Sync settings
DEFAULT_SYNC_INTERVAL = 5  # minutes
DEFAULT_UPLOAD_TIMEOUT = 45  # seconds, large batches take a while

PAYLOAD_FORMAT_LIST = "list"
PAYLOAD_FORMAT_WRAPPED = "wrapped"
PAYLOAD_FORMATS = (PAYLOAD_FORMAT_LIST, PAYLOAD_FORMAT_WRAPPED)

_TRUTHY = {"1", "true", "yes", "on"}
_FALSY = {"0", "false", "no", "off"}


@dataclass
class DeviceSettings:
    """Attendance device connection settings."""

    addresses: str = ""  # comma-separated host:port list
    timeout: int = DEFAULT_DEVICE_TIMEOUT
    timezone: str = DEFAULT_DEVICE_TIMEZONE
    password: int = 0
    force_udp: bool = False
    ommit_ping: bool = True
    connect_retries: int = DEFAULT_CONNECT_RETRIES
    fetch_timeout: int = DEFAULT_FETCH_TIMEOUT

    @property
    def entries(self) -> list[str]:
        """Non-empty, stripped entries of the address list."""
        return [entry.strip() for entry in self.addresses.split(",") if entry.strip()]


@dataclass
class SyncSettings:
    """Sync configuration."""

    interval_minutes: int = DEFAULT_SYNC_INTERVAL
    upload_timeout: int = DEFAULT_UPLOAD_TIMEOUT
    compress: bool = False
    payload_format: str = PAYLOAD_FORMAT_LIST

    @property
    def interval_seconds(self) -> int:
        return self.interval_minutes * 60


@dataclass
class Config:
    """Main configuration object.

    Built once at startup from the environment and passed explicitly to
    every component; nothing below the entry point reads ``os.environ``.
    """

    api_url: str = ""
    org_id: str = ""
    api_key: Optional[str] = None
    devices: DeviceSettings = field(default_factory=DeviceSettings)
    sync: SyncSettings = field(default_factory=SyncSettings)
    data_dir: Optional[Path] = None
    debug_mode: bool = False

    @classmethod
    def get_data_dir(cls) -> Path:
        """Get the default data directory (watermark, last batch)."""
        return Path(user_data_dir(APP_NAME, APP_AUTHOR))

    @classmethod
    def get_log_dir(cls) -> Path:
        """Get the log directory path."""
        return Path(user_log_dir(APP_NAME, APP_AUTHOR))

    @property
    def state_dir(self) -> Path:
        return self.data_dir or self.get_data_dir()

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "Config":
        """Create Config from environment variables.

        Invalid optional values are logged and replaced by their defaults;
        missing required values are reported by :meth:`validate` instead.
        """
        env = os.environ if environ is None else environ

        interval = _int_setting(env, "SYNC_INTERVAL", DEFAULT_SYNC_INTERVAL)
        if interval <= 0:
            logger.warning(
                f"Invalid or missing SYNC_INTERVAL, defaulting to {DEFAULT_SYNC_INTERVAL}m"
            )
            interval = DEFAULT_SYNC_INTERVAL

        payload_format = env.get("PAYLOAD_FORMAT", "").strip().lower() or PAYLOAD_FORMAT_LIST
        if payload_format not in PAYLOAD_FORMATS:
            logger.warning(
                f"Unknown PAYLOAD_FORMAT {payload_format!r}, using {PAYLOAD_FORMAT_LIST!r}"
            )
            payload_format = PAYLOAD_FORMAT_LIST

        devices = DeviceSettings(
            addresses=env.get("DEVICE_IPS", "").strip(),
            timeout=_positive(env, "DEVICE_TIMEOUT", DEFAULT_DEVICE_TIMEOUT),
            timezone=env.get("DEVICE_TIMEZONE", "").strip() or DEFAULT_DEVICE_TIMEZONE,
            password=_int_setting(env, "DEVICE_PASSWORD", 0),
            force_udp=_bool_setting(env, "DEVICE_FORCE_UDP", False),
            ommit_ping=_bool_setting(env, "DEVICE_OMMIT_PING", True),
            connect_retries=max(0, _int_setting(env, "DEVICE_CONNECT_RETRIES", DEFAULT_CONNECT_RETRIES)),
            fetch_timeout=_positive(env, "DEVICE_FETCH_TIMEOUT", DEFAULT_FETCH_TIMEOUT),
        )
        sync = SyncSettings(
            interval_minutes=interval,
            upload_timeout=_positive(env, "UPLOAD_TIMEOUT", DEFAULT_UPLOAD_TIMEOUT),
            compress=_bool_setting(env, "UPLOAD_COMPRESS", False),
            payload_format=payload_format,
        )

        data_dir = env.get("DATA_DIR", "").strip()
        return cls(
            api_url=env.get("API_URL", "").strip(),
            org_id=env.get("ORG_ID", "").strip(),
            api_key=env.get("API_KEY", "").strip() or None,
            devices=devices,
            sync=sync,
            data_dir=Path(data_dir) if data_dir else None,
            debug_mode=_bool_setting(env, "DEBUG", False),
        )

    def validate(self) -> list[str]:
        """Return a list of problems that prevent a sync cycle from running."""
        missing = []
        if not self.devices.entries:
            missing.append("DEVICE_IPS")
        if not self.api_url:
            missing.append("API_URL")
        if not self.org_id:
            missing.append("ORG_ID")
        if missing:
            return [f"Missing required environment variables ({', '.join(missing)})"]
        return []


def _int_setting(env: Mapping[str, str], name: str, default: int) -> int:
    raw = env.get(name, "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        logger.warning(f"Invalid {name}={raw!r}, defaulting to {default}")
        return default


def _positive(env: Mapping[str, str], name: str, default: int) -> int:
    value = _int_setting(env, name, default)
    if value <= 0:
        logger.warning(f"{name} must be positive, defaulting to {default}")
        return default
    return value


def _bool_setting(env: Mapping[str, str], name: str, default: bool) -> bool:
    raw = env.get(name, "").strip().lower()
    if not raw:
        return default
    if raw in _TRUTHY:
        return True
    if raw in _FALSY:
        return False
    logger.warning(f"Invalid {name}={raw!r}, defaulting to {default}")
    return default


def setup_logging(debug: bool = False) -> None:
    """Configure logging."""
    log_dir = Config.get_log_dir()
    log_dir.mkdir(parents=True, exist_ok=True)
    log_file = log_dir / "attendance-sync.log"

    level = logging.DEBUG if debug else logging.INFO
    format_str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

    logging.basicConfig(
        level=level,
        format=format_str,
        handlers=[
            logging.FileHandler(log_file),
            logging.StreamHandler(),
        ],
    )

    # Reduce noise from libraries
    logging.getLogger("urllib3").setLevel(logging.WARNING)
    logging.getLogger("requests").setLevel(logging.WARNING)
