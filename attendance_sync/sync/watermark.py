"""Durable sync state: the fleet-wide watermark and the last delivered batch."""

import json
import logging
import os
import tempfile
from datetime import datetime
from pathlib import Path

from .device_client import AttendanceEvent
from .timestamps import EPOCH, from_rfc3339, to_rfc3339

__all__ = ["WatermarkStore", "BatchArchive", "LAST_CHECK_FILE", "LOGS_FILE"]

logger = logging.getLogger(__name__)

LAST_CHECK_FILE = "last_check.txt"
LOGS_FILE = "latest_logs.json"


def _atomic_write(path: Path, data: str) -> None:
    """Replace ``path`` with ``data`` so readers see the old or new file, never half."""
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", dir=path.parent)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(data)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_name, path)
    except BaseException:
        try:
            os.unlink(tmp_name)
        except FileNotFoundError:
            pass
        raise


class WatermarkStore:
    """Timestamp below which every event has already been delivered.

    Stored as a single RFC3339 line. Reads never fail: a missing or
    corrupt file means "start from the epoch", i.e. a full resync.
    """

    def __init__(self, directory: Path):
        self.path = Path(directory) / LAST_CHECK_FILE

    def read(self) -> datetime:
        """Get the last confirmed watermark, or the epoch."""
        try:
            raw = self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            logger.info(f"No previous check time found at {self.path}")
            return EPOCH
        except OSError as e:
            logger.warning(f"Could not read {self.path}: {e}")
            return EPOCH

        try:
            return from_rfc3339(raw)
        except ValueError as e:
            logger.warning(f"Invalid time in {self.path}: {e}")
            return EPOCH

    def write(self, timestamp: datetime) -> bool:
        """Persist a new watermark.

        Returns:
            True if the value is durably on disk
        """
        try:
            _atomic_write(self.path, to_rfc3339(timestamp))
        except (OSError, ValueError) as e:
            logger.error(f"Error saving last check time: {e}")
            return False
        return True


class BatchArchive:
    """Keeps the most recently delivered batch on disk for auditing."""

    def __init__(self, directory: Path):
        self.path = Path(directory) / LOGS_FILE

    def save(self, events: list[AttendanceEvent]) -> bool:
        try:
            data = json.dumps([event.to_dict() for event in events], indent=2)
            _atomic_write(self.path, data)
        except (OSError, ValueError) as e:
            logger.error(f"Error saving logs to file: {e}")
            return False
        return True

    def load(self) -> list[AttendanceEvent]:
        """Read back the archived batch (empty if none or unreadable)."""
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
            return [AttendanceEvent.from_dict(item) for item in data]
        except FileNotFoundError:
            return []
        except (OSError, ValueError, KeyError, TypeError) as e:
            logger.warning(f"Could not load {self.path}: {e}")
            return []
