"""RFC3339 helpers shared by the wire format and the watermark file."""

from datetime import datetime, timezone

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def to_rfc3339(value: datetime) -> str:
    """Format an aware datetime as RFC3339 with second precision."""
    if value.tzinfo is None:
        raise ValueError("naive datetime cannot be formatted as RFC3339")
    text = value.isoformat(timespec="seconds")
    if text.endswith("+00:00"):
        text = text[:-6] + "Z"
    return text


def from_rfc3339(text: str) -> datetime:
    """Parse an RFC3339 timestamp, rejecting values without an offset."""
    value = datetime.fromisoformat(text.strip().replace("Z", "+00:00"))
    if value.tzinfo is None:
        raise ValueError(f"timestamp {text!r} has no UTC offset")
    return value
