"""ZK Attendance Sync - forwards device attendance logs to a remote API."""

__version__ = "1.0.0"
