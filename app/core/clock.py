"""Time helpers.

Database columns are timezone-naive and hold UTC, so every timestamp the
merge engine writes goes through ``utcnow``.
"""

from datetime import datetime, timezone


def utcnow() -> datetime:
    """Return the current time as a naive UTC datetime."""
    return datetime.now(timezone.utc).replace(tzinfo=None)
