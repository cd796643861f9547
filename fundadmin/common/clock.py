"""Time helpers."""

from datetime import datetime, timezone


def utcnow() -> datetime:
    """Current UTC time as a naive datetime.

    Every timestamp in the engine, the stores and the audit log is naive UTC,
    so aware values are never mixed with stored ones.
    """
    return datetime.now(timezone.utc).replace(tzinfo=None)
