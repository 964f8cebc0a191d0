from __future__ import annotations

from datetime import date, datetime, timedelta, timezone


def utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_utc_naive(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def parse_timestamp(value: object) -> datetime | None:
    """Coerce a datetime or ISO-8601 string into a naive UTC datetime."""
    if value is None:
        return None
    if isinstance(value, datetime):
        return to_utc_naive(value)
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            return to_utc_naive(datetime.fromisoformat(text))
        except ValueError:
            return None
    return None


def to_iso_z(value: datetime) -> str:
    return to_utc_naive(value).isoformat() + "Z"


def utc_day(value: datetime) -> date:
    # Day buckets are always UTC calendar days; naive values are already UTC.
    return to_utc_naive(value).date()


def day_range(start: date, end: date) -> list[date]:
    if end < start:
        return []
    return [start + timedelta(days=offset) for offset in range((end - start).days + 1)]
