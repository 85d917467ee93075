"""Sync engine - orchestrates data flow from attendance devices to the API."""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from functools import partial
from typing import Callable, Optional

from ..config import Config
from .aggregator import Aggregator, DeviceError
from .device_client import AttendanceEvent, DeviceClient
from .protocols import (
    AggregatorProtocol,
    BatchArchiveProtocol,
    UploaderProtocol,
    WatermarkStoreProtocol,
)
from .timestamps import to_rfc3339
from .uploader import Uploader
from .watermark import BatchArchive, WatermarkStore

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class CycleReport:
    """Outcome of a single sync cycle."""

    started_at: datetime
    watermark_before: Optional[datetime] = None
    watermark_after: Optional[datetime] = None
    events: list[AttendanceEvent] = field(default_factory=list)
    device_errors: list[DeviceError] = field(default_factory=list)
    config_errors: list[str] = field(default_factory=list)
    upload_attempted: bool = False
    upload_succeeded: bool = False
    upload_error: Optional[str] = None
    watermark_saved: Optional[bool] = None

    @property
    def success(self) -> bool:
        """True unless the cycle was aborted or its batch was not delivered."""
        if self.config_errors:
            return False
        return not self.upload_attempted or self.upload_succeeded

    def summary(self) -> str:
        watermark = self.watermark_after or self.watermark_before
        return (
            f"events={len(self.events)} "
            f"device_errors={len(self.device_errors)} "
            f"uploaded={self.upload_succeeded if self.upload_attempted else 'skipped'} "
            f"watermark={to_rfc3339(watermark) if watermark else 'n/a'}"
        )


class SyncEngine:
    """Runs sync cycles: read watermark, aggregate, upload, advance watermark.

    Every collaborator reports failure through its return value, so a
    cycle always runs to completion and returns a :class:`CycleReport`.
    """

    def __init__(
        self,
        config: Config,
        aggregator: AggregatorProtocol,
        uploader: UploaderProtocol,
        watermark: WatermarkStoreProtocol,
        archive: Optional[BatchArchiveProtocol] = None,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.config = config
        self.aggregator = aggregator
        self.uploader = uploader
        self.watermark = watermark
        self.archive = archive
        self._clock = clock
        self._last_report: Optional[CycleReport] = None

    @classmethod
    def from_config(cls, config: Config) -> "SyncEngine":
        """Wire up the production collaborators for ``config``."""
        state_dir = config.state_dir
        aggregator = Aggregator(
            client_factory=partial(DeviceClient.for_target, settings=config.devices),
            fetch_timeout=config.devices.fetch_timeout,
        )
        return cls(
            config=config,
            aggregator=aggregator,
            uploader=Uploader.from_config(config),
            watermark=WatermarkStore(state_dir),
            archive=BatchArchive(state_dir),
        )

    @property
    def last_report(self) -> Optional[CycleReport]:
        return self._last_report

    def run_cycle(self) -> CycleReport:
        """Perform a sync cycle.

        1. Validate configuration (abort the cycle if incomplete)
        2. Read the watermark (epoch if none)
        3. Fetch every device concurrently, keeping events past the watermark
        4. Upload the merged batch, if any
        5. On confirmed delivery, advance the watermark to the cycle start
        """
        report = CycleReport(started_at=self._clock())
        self._last_report = report
        logger.info("Sync process started.")

        report.config_errors = self.config.validate()
        if report.config_errors:
            for error in report.config_errors:
                logger.error(f"Error: {error}. Sync aborted.")
            return report

        since = self.watermark.read()
        report.watermark_before = since
        logger.debug(f"Fetching logs newer than {to_rfc3339(since)}")

        result = self.aggregator.fetch_all(self.config.devices.entries, since)
        report.events = result.events
        report.device_errors = result.errors

        if report.device_errors:
            logger.warning(
                f"Encountered {len(report.device_errors)} error(s) during device communication:"
            )
            for error in report.device_errors:
                logger.warning(f"- {error}")

        if not report.events:
            logger.info("No logs collected from any device in this cycle.")
            self._finish(report)
            return report

        logger.info(
            f"Total logs collected: {len(report.events)}. Sending to API: {self.config.api_url}"
        )
        report.upload_attempted = True
        upload = self.uploader.upload(report.events)
        report.upload_succeeded = upload.success
        if not upload.success:
            report.upload_error = upload.error
            logger.error(f"Error sending logs to API: {upload.error}")
            self._finish(report)
            return report

        logger.info("Successfully sent logs to API.")
        self._advance_watermark(report)
        if self.archive is not None:
            self.archive.save(report.events)

        self._finish(report)
        return report

    def _advance_watermark(self, report: CycleReport) -> None:
        """Move the watermark to the cycle start, never backwards."""
        new_mark = report.started_at
        if report.watermark_before is not None and report.watermark_before > new_mark:
            logger.warning(
                f"Stored watermark {to_rfc3339(report.watermark_before)} is ahead of "
                f"cycle start {to_rfc3339(new_mark)}; keeping it"
            )
            new_mark = report.watermark_before

        report.watermark_saved = self.watermark.write(new_mark)
        if report.watermark_saved:
            report.watermark_after = new_mark
        else:
            logger.error("Watermark not advanced; delivered logs will be sent again next cycle")

    def _finish(self, report: CycleReport) -> None:
        level = logging.INFO if report.success else logging.WARNING
        logger.log(level, f"Sync process finished: {report.summary()}")

    def get_status(self) -> dict:
        """Get current sync status."""
        report = self._last_report
        watermark = self.watermark.read()
        return {
            "devices_configured": len(self.config.devices.entries),
            "watermark": to_rfc3339(watermark),
            "last_cycle": report.started_at.isoformat() if report else None,
            "last_cycle_success": report.success if report else None,
            "last_cycle_events": len(report.events) if report else 0,
            "last_cycle_device_errors": len(report.device_errors) if report else 0,
        }
