"""Uploader - delivers attendance batches to the collection API."""

import gzip
import json
import logging
from dataclasses import dataclass
from typing import Optional

import requests

from .. import __version__
from ..config import Config, PAYLOAD_FORMAT_WRAPPED
from .device_client import AttendanceEvent

__all__ = [
    "Uploader",
    "UploaderError",
    "UploadResult",
]

logger = logging.getLogger(__name__)

# Longest response body kept in an error message
MAX_ERROR_BODY = 1024


@dataclass
class UploadResult:
    """Result of a batch upload."""

    success: bool
    events_sent: int = 0
    status_code: Optional[int] = None
    error: Optional[str] = None


class UploaderError(Exception):
    """Delivery failed; the message carries the reason."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class Uploader:
    """Posts a whole cycle's events to the collection endpoint in one request.

    There is no retry here: a failed upload leaves the watermark where it
    was, so the next scheduled cycle picks the same events up again.
    """

    USER_AGENT = f"ZK-Attendance-Sync/{__version__}"

    def __init__(
        self,
        api_url: str,
        org_id: str = "",
        token: Optional[str] = None,
        payload_format: str = "list",
        compress: bool = False,
        timeout: int = 45,
        session: Optional[requests.Session] = None,
    ):
        """Initialize uploader.

        Args:
            api_url: Full URL the batch is POSTed to
            org_id: Organization identifier (sent in the wrapped format)
            token: Bearer token for the Authorization header
            payload_format: "list" for a bare JSON array, "wrapped" for
                ``{"org_id": ..., "logs": [...]}``
            compress: Gzip the request body
            timeout: Request timeout in seconds
            session: Optional requests session (for dependency injection/testing)
        """
        self.api_url = api_url
        self.org_id = org_id
        self.token = token
        self.payload_format = payload_format
        self.compress = compress
        self.timeout = timeout
        self._session = session or requests.Session()
        self._owns_session = session is None

    @classmethod
    def from_config(cls, config: Config) -> "Uploader":
        return cls(
            api_url=config.api_url,
            org_id=config.org_id,
            token=config.api_key,
            payload_format=config.sync.payload_format,
            compress=config.sync.compress,
            timeout=config.sync.upload_timeout,
        )

    def _get_headers(self) -> dict:
        """Get request headers with authentication."""
        headers = {
            "Content-Type": "application/json",
            "Accept": "application/json",
            "User-Agent": self.USER_AGENT,
        }
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    def build_payload(self, events: list[AttendanceEvent]):
        """Serialize the batch into the JSON document the API expects."""
        logs = [event.to_dict() for event in events]
        if self.payload_format == PAYLOAD_FORMAT_WRAPPED:
            return {"org_id": self.org_id, "logs": logs}
        return logs

    def upload(self, events: list[AttendanceEvent]) -> UploadResult:
        """Send a batch of events.

        Args:
            events: Events collected this cycle

        Returns:
            UploadResult; never raises
        """
        if not events:
            return UploadResult(success=True, events_sent=0)

        try:
            status_code = self._post(self.build_payload(events))
        except UploaderError as e:
            logger.warning(f"Upload of {len(events)} logs failed: {e}")
            return UploadResult(success=False, status_code=e.status_code, error=str(e))

        logger.info(f"API request successful (Status: {status_code})")
        return UploadResult(success=True, events_sent=len(events), status_code=status_code)

    def _post(self, payload) -> int:
        """POST the payload, returning the 2xx status code.

        Raises:
            UploaderError: For transport failures and non-2xx responses
        """
        headers = self._get_headers()
        body = json.dumps(payload).encode("utf-8")
        if self.compress:
            body = gzip.compress(body)
            headers["Content-Encoding"] = "gzip"

        try:
            response = self._session.post(
                self.api_url, data=body, headers=headers, timeout=self.timeout
            )
        except requests.exceptions.Timeout as e:
            raise UploaderError(f"API request timed out after {self.timeout}s") from e
        except requests.exceptions.ConnectionError as e:
            raise UploaderError(f"Cannot connect to API: {e}") from e
        except requests.exceptions.RequestException as e:
            raise UploaderError(f"failed to execute API request: {e}") from e

        if 200 <= response.status_code < 300:
            return response.status_code

        detail = response.text[:MAX_ERROR_BODY]
        raise UploaderError(
            f"API request failed with status {response.status_code}: {detail}",
            status_code=response.status_code,
        )

    def close(self) -> None:
        """Close the session if we own it."""
        if self._owns_session and self._session is not None:
            self._session.close()
            self._session = None

    def __enter__(self) -> "Uploader":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()
