"""Protocol types for SyncEngine dependencies.

Defines the interfaces that SyncEngine requires from its collaborators,
enabling easier testing and looser coupling.
"""

from datetime import datetime
from typing import TYPE_CHECKING, Optional, Protocol, Sequence, runtime_checkable

from .device_client import AttendanceEvent

if TYPE_CHECKING:
    from .aggregator import AggregateResult
    from .uploader import UploadResult


@runtime_checkable
class DeviceClientProtocol(Protocol):
    """Interface for reading the log of one attendance device."""

    def connect(self) -> None: ...

    def disconnect(self) -> None: ...

    def get_events(self, since: Optional[datetime] = None) -> list[AttendanceEvent]: ...

    def __enter__(self) -> "DeviceClientProtocol": ...

    def __exit__(self, exc_type, exc_val, exc_tb) -> None: ...


@runtime_checkable
class AggregatorProtocol(Protocol):
    """Interface for fetching the whole fleet."""

    def fetch_all(self, addresses: Sequence[str], since: datetime) -> "AggregateResult": ...


@runtime_checkable
class UploaderProtocol(Protocol):
    """Interface for delivering a batch to the collection API."""

    def upload(self, events: list[AttendanceEvent]) -> "UploadResult": ...


@runtime_checkable
class WatermarkStoreProtocol(Protocol):
    """Interface for the fleet-wide sync watermark."""

    def read(self) -> datetime: ...

    def write(self, timestamp: datetime) -> bool: ...


@runtime_checkable
class BatchArchiveProtocol(Protocol):
    """Interface for keeping a copy of the last delivered batch."""

    def save(self, events: list[AttendanceEvent]) -> bool: ...
