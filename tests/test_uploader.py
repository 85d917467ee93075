"""Tests for the batch uploader."""

import gzip
import json
from datetime import datetime, timezone

import requests
import responses

from attendance_sync.config import Config, DeviceSettings, SyncSettings
from attendance_sync.sync.device_client import AttendanceEvent
from attendance_sync.sync.uploader import Uploader, UploadResult

API_URL = "https://hr.example.com/api/attendance"


def make_events():
    return [
        AttendanceEvent(user_id=1, timestamp=datetime(2024, 3, 1, 8, 0, tzinfo=timezone.utc)),
        AttendanceEvent(user_id=2, timestamp=datetime(2024, 3, 1, 8, 5, tzinfo=timezone.utc)),
    ]


class TestUploader:
    """Tests for Uploader."""

    def setup_method(self):
        """Set up test fixtures."""
        self.uploader = Uploader(api_url=API_URL, org_id="org-1", token="test-token")

    def teardown_method(self):
        """Clean up."""
        self.uploader.close()

    def test_from_config(self):
        config = Config(
            api_url=API_URL,
            org_id="org-9",
            api_key="k",
            devices=DeviceSettings(addresses="10.0.0.1:4370"),
            sync=SyncSettings(upload_timeout=30, payload_format="wrapped", compress=True),
        )
        uploader = Uploader.from_config(config)

        assert uploader.api_url == API_URL
        assert uploader.org_id == "org-9"
        assert uploader.token == "k"
        assert uploader.timeout == 30
        assert uploader.compress is True
        uploader.close()

    def test_headers_with_token(self):
        headers = self.uploader._get_headers()

        assert headers["Authorization"] == "Bearer test-token"
        assert headers["Content-Type"] == "application/json"
        assert headers["Accept"] == "application/json"

    def test_headers_without_token(self):
        uploader = Uploader(api_url=API_URL)
        assert "Authorization" not in uploader._get_headers()
        uploader.close()

    @responses.activate
    def test_empty_batch_makes_no_request(self):
        """Test an empty batch succeeds without touching the network."""
        result = self.uploader.upload([])

        assert result == UploadResult(success=True, events_sent=0)
        assert len(responses.calls) == 0

    @responses.activate
    def test_upload_success(self):
        """Test a 2xx response is a success and the body is a list of logs."""
        responses.add(responses.POST, API_URL, json={"status": "ok"}, status=201)

        result = self.uploader.upload(make_events())

        assert result.success is True
        assert result.events_sent == 2
        assert result.status_code == 201
        request = responses.calls[0].request
        assert request.headers["Authorization"] == "Bearer test-token"
        assert json.loads(request.body) == [
            {"UserID": 1, "Timestamp": "2024-03-01T08:00:00Z"},
            {"UserID": 2, "Timestamp": "2024-03-01T08:05:00Z"},
        ]

    @responses.activate
    def test_wrapped_payload_includes_org_id(self):
        responses.add(responses.POST, API_URL, status=200)
        uploader = Uploader(api_url=API_URL, org_id="org-1", payload_format="wrapped")

        uploader.upload(make_events())

        body = json.loads(responses.calls[0].request.body)
        assert body["org_id"] == "org-1"
        assert len(body["logs"]) == 2
        uploader.close()

    @responses.activate
    def test_compressed_payload(self):
        responses.add(responses.POST, API_URL, status=200)
        uploader = Uploader(api_url=API_URL, compress=True)

        uploader.upload(make_events())

        request = responses.calls[0].request
        assert request.headers["Content-Encoding"] == "gzip"
        assert len(json.loads(gzip.decompress(request.body))) == 2
        uploader.close()

    @responses.activate
    def test_server_error_is_failure_with_body(self):
        """Test a 500 is a failure carrying the response body."""
        responses.add(responses.POST, API_URL, body="database unavailable", status=500)

        result = self.uploader.upload(make_events())

        assert result.success is False
        assert result.status_code == 500
        assert "500" in result.error
        assert "database unavailable" in result.error
        assert len(responses.calls) == 1  # no retry

    @responses.activate
    def test_client_error_is_failure(self):
        responses.add(responses.POST, API_URL, json={"message": "bad org"}, status=422)

        result = self.uploader.upload(make_events())

        assert result.success is False
        assert result.status_code == 422

    @responses.activate
    def test_redirect_status_is_failure(self):
        """Test anything outside 2xx counts as failure."""
        responses.add(responses.POST, API_URL, status=304)

        result = self.uploader.upload(make_events())

        assert result.success is False

    @responses.activate
    def test_connection_error_is_failure(self):
        responses.add(
            responses.POST, API_URL, body=requests.exceptions.ConnectionError("refused")
        )

        result = self.uploader.upload(make_events())

        assert result.success is False
        assert result.status_code is None
        assert "Cannot connect" in result.error

    @responses.activate
    def test_timeout_is_failure(self):
        responses.add(responses.POST, API_URL, body=requests.exceptions.ReadTimeout("slow"))

        result = self.uploader.upload(make_events())

        assert result.success is False
        assert "timed out" in result.error

    def test_close_only_owned_session(self):
        """Test an injected session is left open."""
        session = requests.Session()
        uploader = Uploader(api_url=API_URL, session=session)

        uploader.close()

        assert uploader._session is session
        session.close()
