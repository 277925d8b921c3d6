from datetime import datetime, timezone


def to_iso(dt: datetime) -> str:
    """Canonical UTC form: ``2024-05-01T09:30:00.000Z``."""
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    dt = dt.astimezone(timezone.utc)
    return dt.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def utc_now() -> str:
    return to_iso(datetime.now(timezone.utc))
