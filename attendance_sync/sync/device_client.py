"""Attendance device client - reads punch logs from ZKTeco terminals."""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from zk import ZK
from zk.exception import ZKError

from ..config import DeviceSettings
from .retry import RetryConfig, RetryExhausted, retry_with_backoff
from .timestamps import from_rfc3339, to_rfc3339

__all__ = [
    "AttendanceEvent",
    "DeviceTarget",
    "DeviceClient",
    "DeviceClientError",
]

logger = logging.getLogger(__name__)

MAX_PORT = 65535


@dataclass(frozen=True)
class AttendanceEvent:
    """A single punch recorded by a device."""

    user_id: int
    timestamp: datetime

    def to_dict(self) -> dict:
        """Wire representation expected by the collection API."""
        return {"UserID": self.user_id, "Timestamp": to_rfc3339(self.timestamp)}

    @classmethod
    def from_dict(cls, data: dict) -> "AttendanceEvent":
        return cls(user_id=int(data["UserID"]), timestamp=from_rfc3339(data["Timestamp"]))


@dataclass(frozen=True)
class DeviceTarget:
    """Network location of one attendance device."""

    host: str
    port: int

    @classmethod
    def parse(cls, entry: str) -> "DeviceTarget":
        """Parse a ``host:port`` entry.

        Raises:
            ValueError: If the entry is not exactly ``host:port`` with a valid port
        """
        parts = entry.strip().split(":")
        if len(parts) != 2 or not parts[0].strip():
            raise ValueError(f"invalid device format: {entry}")
        host, raw_port = parts[0].strip(), parts[1].strip()
        try:
            port = int(raw_port)
        except ValueError:
            raise ValueError(f"invalid port in device entry: {entry}") from None
        if not 0 < port <= MAX_PORT:
            raise ValueError(f"port out of range in device entry: {entry}")
        return cls(host=host, port=port)

    @property
    def address(self) -> str:
        return f"{self.host}:{self.port}"


class DeviceClientError(Exception):
    """Attendance device error."""

    pass


class DeviceClient:
    """Client for a single ZKTeco attendance device.

    The device is disabled while its log is read so that no punches are
    recorded mid-transfer, and re-enabled afterwards.
    """

    def __init__(
        self,
        host: str,
        port: int,
        timeout: int = 10,
        password: int = 0,
        force_udp: bool = False,
        ommit_ping: bool = True,
        device_timezone: str = "UTC",
        retry_config: Optional[RetryConfig] = None,
        zk_factory: Callable[..., Any] = ZK,
    ):
        """Initialize device client.

        Args:
            host: Device IP address or hostname
            port: Device port (usually 4370)
            timeout: Socket timeout in seconds
            password: Device communication password
            force_udp: Talk UDP instead of TCP
            ommit_ping: Skip the ICMP reachability probe before connecting
            device_timezone: IANA zone the device clock is set to
            retry_config: Reconnect policy for connection failures
            zk_factory: Callable building the pyzk driver (injected by tests)
        """
        self.host = host
        self.port = port
        self.timeout = timeout
        self.retry_config = retry_config or RetryConfig()
        try:
            self._tz = ZoneInfo(device_timezone)
        except (ZoneInfoNotFoundError, ValueError) as e:
            raise DeviceClientError(f"Unknown device timezone {device_timezone!r}") from e
        self._zk = zk_factory(
            host,
            port=port,
            timeout=timeout,
            password=password,
            force_udp=force_udp,
            ommit_ping=ommit_ping,
        )
        self._conn = None

    @classmethod
    def for_target(cls, target: DeviceTarget, settings: DeviceSettings) -> "DeviceClient":
        """Build a client for ``target`` using the shared device settings."""
        return cls(
            target.host,
            target.port,
            timeout=settings.timeout,
            password=settings.password,
            force_udp=settings.force_udp,
            ommit_ping=settings.ommit_ping,
            device_timezone=settings.timezone,
            retry_config=RetryConfig(max_retries=settings.connect_retries),
        )

    @property
    def address(self) -> str:
        return f"{self.host}:{self.port}"

    @property
    def is_connected(self) -> bool:
        return self._conn is not None

    def connect(self) -> None:
        """Open a session with the device, retrying transient failures."""
        if self._conn is not None:
            return
        try:
            self._conn = retry_with_backoff(
                self._zk.connect,
                config=self.retry_config,
                retryable_exceptions=(ZKError, OSError),
                description=f"Connecting to {self.address}",
            )
        except RetryExhausted as e:
            raise DeviceClientError(
                f"connection error for {self.address}: {e.last_error}"
            ) from e.last_error
        logger.debug(f"Connected to device {self.address}")

    def disconnect(self) -> None:
        """Close the device session."""
        if self._conn is None:
            return
        conn, self._conn = self._conn, None
        try:
            conn.disconnect()
        except (ZKError, OSError) as e:
            logger.warning(f"Error disconnecting from {self.address}: {e}")

    def get_events(self, since: Optional[datetime] = None) -> list[AttendanceEvent]:
        """Read the attendance log.

        Args:
            since: If given, drop events at or before this instant

        Returns:
            Events in the order the device reports them

        Raises:
            DeviceClientError: On protocol failure or when the log is empty
        """
        if self._conn is None:
            raise DeviceClientError(f"Not connected to {self.address}")

        conn = self._conn
        try:
            conn.disable_device()
            records = conn.get_attendance()
        except (ZKError, OSError) as e:
            raise DeviceClientError(f"failed to get attendance from {self.address}: {e}") from e
        except Exception as e:
            raise DeviceClientError(f"Unexpected error from {self.address}: {e}") from e
        finally:
            try:
                conn.enable_device()
            except (ZKError, OSError) as e:
                logger.warning(f"Could not re-enable device {self.address}: {e}")

        if not records:
            raise DeviceClientError("no attendance records found")

        events = [self._to_event(record) for record in records]
        if since is not None:
            events = [event for event in events if event.timestamp > since]
        return events

    def _to_event(self, record: Any) -> AttendanceEvent:
        """Convert a pyzk ``Attendance`` record, localizing its naive clock time."""
        try:
            user_id = int(record.user_id)
        except (TypeError, ValueError):
            # Non-numeric enrolment IDs fall back to the device's internal uid
            user_id = int(record.uid)

        timestamp = record.timestamp
        if timestamp.tzinfo is None:
            timestamp = timestamp.replace(tzinfo=self._tz)
        return AttendanceEvent(user_id=user_id, timestamp=timestamp.astimezone(timezone.utc))

    def __enter__(self) -> "DeviceClient":
        self.connect()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.disconnect()
