"""Tests for the attendance device client."""

import pytest
from datetime import datetime, timedelta, timezone
from types import SimpleNamespace
from unittest.mock import Mock

from zk.exception import ZKErrorConnection, ZKErrorResponse

from attendance_sync.config import DeviceSettings
from attendance_sync.sync.device_client import (
    AttendanceEvent,
    DeviceClient,
    DeviceClientError,
    DeviceTarget,
)
from attendance_sync.sync.retry import RetryConfig


def record(user_id, timestamp, uid=1):
    """Shape of a pyzk Attendance record."""
    return SimpleNamespace(user_id=user_id, uid=uid, timestamp=timestamp)


class TestDeviceTarget:
    """Tests for DeviceTarget parsing."""

    def test_parse_host_and_port(self):
        target = DeviceTarget.parse(" 192.168.1.201:4370 ")

        assert target.host == "192.168.1.201"
        assert target.port == 4370
        assert target.address == "192.168.1.201:4370"

    @pytest.mark.parametrize(
        "entry",
        ["192.168.1.201", "192.168.1.201:4370:1", ":4370", "host:port", "host:0", "host:70000"],
    )
    def test_parse_rejects_invalid_entries(self, entry):
        with pytest.raises(ValueError):
            DeviceTarget.parse(entry)


class TestAttendanceEvent:
    """Tests for the wire representation."""

    def test_to_dict(self):
        event = AttendanceEvent(
            user_id=17, timestamp=datetime(2024, 3, 1, 8, 30, tzinfo=timezone.utc)
        )
        assert event.to_dict() == {"UserID": 17, "Timestamp": "2024-03-01T08:30:00Z"}

    def test_to_dict_keeps_offset(self):
        event = AttendanceEvent(
            user_id=1,
            timestamp=datetime(2024, 3, 1, 14, 30, tzinfo=timezone(timedelta(hours=6))),
        )
        assert event.to_dict()["Timestamp"] == "2024-03-01T14:30:00+06:00"

    def test_events_are_immutable(self):
        event = AttendanceEvent(user_id=1, timestamp=datetime.now(timezone.utc))
        with pytest.raises(AttributeError):
            event.user_id = 2


class TestDeviceClient:
    """Tests for DeviceClient."""

    def setup_method(self):
        """Set up a fake pyzk driver."""
        self.conn = Mock()
        self.zk = Mock()
        self.zk.connect.return_value = self.conn
        self.zk_factory = Mock(return_value=self.zk)
        self.client = DeviceClient(
            "10.0.0.5",
            4370,
            timeout=5,
            device_timezone="Asia/Dhaka",
            retry_config=RetryConfig(max_retries=0),
            zk_factory=self.zk_factory,
        )

    def test_driver_is_built_with_settings(self):
        """Test the pyzk driver receives the connection settings."""
        self.zk_factory.assert_called_once_with(
            "10.0.0.5",
            port=4370,
            timeout=5,
            password=0,
            force_udp=False,
            ommit_ping=True,
        )

    def test_for_target_uses_shared_settings(self):
        """Test building a client from DeviceSettings."""
        settings = DeviceSettings(timeout=7, timezone="Europe/Berlin", connect_retries=3)
        client = DeviceClient.for_target(DeviceTarget("10.0.0.9", 4371), settings)

        assert client.address == "10.0.0.9:4371"
        assert client.timeout == 7
        assert client.retry_config.max_retries == 3

    def test_unknown_timezone(self):
        """Test an invalid zone is reported as a device error."""
        with pytest.raises(DeviceClientError):
            DeviceClient("10.0.0.5", 4370, device_timezone="Mars/Olympus", zk_factory=Mock())

    def test_get_events_requires_connection(self):
        with pytest.raises(DeviceClientError):
            self.client.get_events()

    def test_get_events_localizes_device_time(self):
        """Test naive device clock times are read in the device timezone."""
        self.conn.get_attendance.return_value = [record("12", datetime(2024, 3, 1, 14, 0))]

        with self.client as client:
            events = client.get_events()

        # Asia/Dhaka is UTC+6
        assert events == [
            AttendanceEvent(user_id=12, timestamp=datetime(2024, 3, 1, 8, 0, tzinfo=timezone.utc))
        ]

    def test_get_events_locks_device_during_read(self):
        """Test the device is disabled for the read and re-enabled after."""
        self.conn.get_attendance.return_value = [record("1", datetime(2024, 3, 1, 9, 0))]

        with self.client as client:
            client.get_events()

        self.conn.disable_device.assert_called_once()
        self.conn.enable_device.assert_called_once()
        self.conn.disconnect.assert_called_once()

    def test_get_events_reenables_device_on_failure(self):
        """Test the device is re-enabled even when the read fails."""
        self.conn.get_attendance.side_effect = ZKErrorResponse("can't read attendance")

        with pytest.raises(DeviceClientError):
            with self.client as client:
                client.get_events()

        self.conn.enable_device.assert_called_once()
        self.conn.disconnect.assert_called_once()

    def test_get_events_filters_since(self):
        """Test the since hint drops events at or before it."""
        self.conn.get_attendance.return_value = [
            record("1", datetime(2024, 3, 1, 12, 0)),
            record("2", datetime(2024, 3, 1, 13, 0)),
            record("3", datetime(2024, 3, 1, 14, 0)),
        ]
        since = datetime(2024, 3, 1, 7, 0, tzinfo=timezone.utc)  # 13:00 in Dhaka

        with self.client as client:
            events = client.get_events(since)

        assert [e.user_id for e in events] == [3]

    def test_empty_log_is_an_error(self):
        """Test a device with no records reports an error."""
        self.conn.get_attendance.return_value = []

        with pytest.raises(DeviceClientError, match="no attendance records found"):
            with self.client as client:
                client.get_events()

    def test_non_numeric_user_id_falls_back_to_uid(self):
        self.conn.get_attendance.return_value = [
            record("EMP-7", datetime(2024, 3, 1, 9, 0), uid=44)
        ]

        with self.client as client:
            events = client.get_events()

        assert events[0].user_id == 44

    def test_connection_failure(self):
        """Test connection errors become DeviceClientError."""
        self.zk.connect.side_effect = ZKErrorConnection("can't reach device")

        with pytest.raises(DeviceClientError, match="connection error"):
            self.client.connect()
        assert self.client.is_connected is False

    def test_connection_is_retried(self):
        """Test a transient connection failure is retried."""
        self.zk.connect.side_effect = [OSError("timed out"), self.conn]
        client = DeviceClient(
            "10.0.0.5",
            4370,
            retry_config=RetryConfig(max_retries=1, base_delay=0, jitter=False),
            zk_factory=self.zk_factory,
        )

        client.connect()

        assert client.is_connected is True
        assert self.zk.connect.call_count == 2

    def test_disconnect_errors_are_not_raised(self):
        self.conn.disconnect.side_effect = OSError("broken pipe")

        self.client.connect()
        self.client.disconnect()

        assert self.client.is_connected is False
