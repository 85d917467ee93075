"""Sync module - handles device reading and API uploading."""

from .aggregator import AggregateResult, Aggregator, DeviceError
from .device_client import AttendanceEvent, DeviceClient, DeviceClientError, DeviceTarget
from .protocols import (
    AggregatorProtocol,
    BatchArchiveProtocol,
    DeviceClientProtocol,
    UploaderProtocol,
    WatermarkStoreProtocol,
)
from .retry import RetryConfig, retry_with_backoff
from .sync_engine import CycleReport, SyncEngine
from .uploader import Uploader, UploaderError, UploadResult
from .watermark import BatchArchive, WatermarkStore

__all__ = [
    "AggregateResult",
    "Aggregator",
    "DeviceError",
    "AttendanceEvent",
    "DeviceClient",
    "DeviceClientError",
    "DeviceTarget",
    "AggregatorProtocol",
    "BatchArchiveProtocol",
    "DeviceClientProtocol",
    "UploaderProtocol",
    "WatermarkStoreProtocol",
    "RetryConfig",
    "retry_with_backoff",
    "CycleReport",
    "SyncEngine",
    "Uploader",
    "UploaderError",
    "UploadResult",
    "BatchArchive",
    "WatermarkStore",
]
