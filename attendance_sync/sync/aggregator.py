"""Aggregator - fans out to every device and merges their new events."""

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Optional, Sequence

from .device_client import AttendanceEvent, DeviceClientError, DeviceTarget
from .protocols import DeviceClientProtocol

__all__ = ["Aggregator", "AggregateResult", "DeviceError"]

logger = logging.getLogger(__name__)


@dataclass
class DeviceError:
    """A device that contributed nothing to the cycle, and why."""

    address: str
    error: str

    def __str__(self) -> str:
        return f"{self.address}: {self.error}"


@dataclass
class AggregateResult:
    """Merged outcome of one fan-out."""

    events: list[AttendanceEvent] = field(default_factory=list)
    errors: list[DeviceError] = field(default_factory=list)


class _Accumulator:
    """Per-target bins guarded by a single lock.

    Each target index settles exactly once, with either events or an
    error. After :meth:`close` every write is refused, so a fetch that
    outlives the deadline cannot change a result already handed out.
    """

    def __init__(self, size: int):
        self._lock = threading.Lock()
        self._events: list[Optional[list[AttendanceEvent]]] = [None] * size
        self._errors: list[Optional[DeviceError]] = [None] * size
        self._closed = False

    def _settled(self, index: int) -> bool:
        return self._events[index] is not None or self._errors[index] is not None

    def add_events(self, index: int, events: list[AttendanceEvent]) -> bool:
        with self._lock:
            if self._closed or self._settled(index):
                return False
            self._events[index] = events
            return True

    def add_error(self, index: int, error: DeviceError) -> bool:
        with self._lock:
            if self._closed or self._settled(index):
                return False
            self._errors[index] = error
            return True

    def close(self) -> AggregateResult:
        with self._lock:
            self._closed = True
            result = AggregateResult()
            for events in self._events:
                if events:
                    result.events.extend(events)
            result.errors = [error for error in self._errors if error is not None]
            return result


class Aggregator:
    """Fetches every configured device concurrently, isolating failures."""

    def __init__(
        self,
        client_factory: Callable[[DeviceTarget], DeviceClientProtocol],
        fetch_timeout: Optional[float] = None,
    ):
        """Initialize aggregator.

        Args:
            client_factory: Builds an unconnected client for a device target
            fetch_timeout: Seconds to wait for all devices before marking
                the stragglers as timed out (None waits forever)
        """
        self._client_factory = client_factory
        self.fetch_timeout = fetch_timeout

    def fetch_all(self, addresses: Sequence[str], since: datetime) -> AggregateResult:
        """Fetch events newer than ``since`` from every address.

        Events are concatenated in configuration order, each device's
        events in the order the device reported them.
        """
        if not addresses:
            return AggregateResult()

        acc = _Accumulator(len(addresses))
        executor = ThreadPoolExecutor(
            max_workers=len(addresses), thread_name_prefix="device-fetch"
        )
        try:
            futures: dict[Future, int] = {
                executor.submit(self._fetch_one, index, entry, since, acc): index
                for index, entry in enumerate(addresses)
            }
            done, not_done = wait(futures, timeout=self.fetch_timeout)

            for future in done:
                exc = future.exception()
                if exc is not None:
                    index = futures[future]
                    logger.error(f"Unexpected error fetching {addresses[index]}: {exc}")
                    acc.add_error(index, DeviceError(addresses[index], f"unexpected error: {exc}"))

            for future in not_done:
                index = futures[future]
                future.cancel()
                if acc.add_error(
                    index,
                    DeviceError(addresses[index], f"timed out after {self.fetch_timeout}s"),
                ):
                    logger.warning(f"Device {addresses[index]} timed out")
        finally:
            executor.shutdown(wait=False, cancel_futures=True)

        return acc.close()

    def _fetch_one(
        self, index: int, entry: str, since: datetime, acc: _Accumulator
    ) -> None:
        """Fetch a single device and settle its bin."""
        try:
            target = DeviceTarget.parse(entry)
        except ValueError as e:
            acc.add_error(index, DeviceError(entry, str(e)))
            return

        logger.info(f"Connecting to device {target.address}")
        try:
            with self._client_factory(target) as client:
                events = client.get_events(since)
        except DeviceClientError as e:
            acc.add_error(index, DeviceError(target.address, str(e)))
            return

        # Devices hand back their whole log; keep only what is past the watermark
        fresh = [event for event in events if event.timestamp > since]
        if fresh:
            logger.info(f"Found {len(fresh)} logs from {target.address}")
        else:
            logger.info(f"No new logs found from {target.address}")
        if not acc.add_events(index, fresh):
            logger.warning(f"Discarding late result from {target.address}")
