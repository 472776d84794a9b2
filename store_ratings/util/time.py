from __future__ import annotations

from datetime import datetime, timedelta, timezone


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def to_iso(dt: datetime) -> str:
    """UTC ISO-8601 string with Z, second precision."""
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc).replace(microsecond=0).isoformat().replace("+00:00", "Z")


def utcnow_iso() -> str:
    """Current UTC time as ISO-8601 string with Z."""
    return to_iso(utcnow())


def days_ago_iso(days: int, *, now: datetime | None = None) -> str:
    return to_iso((now or utcnow()) - timedelta(days=int(days)))


def month_start_iso(*, now: datetime | None = None) -> str:
    """First instant of the current UTC month."""
    n = (now or utcnow()).astimezone(timezone.utc)
    return to_iso(n.replace(day=1, hour=0, minute=0, second=0, microsecond=0))
