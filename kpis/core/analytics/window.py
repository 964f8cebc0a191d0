from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import datetime, timedelta

from kpis.core.utils.time import to_iso_z

ALLOWED_WINDOWS: tuple[int, ...] = (1, 7, 30, 90)
DEFAULT_WINDOW_DAYS = 7


@dataclass(frozen=True, slots=True)
class ReportWindow:
    days: int
    since: datetime
    since_iso: str
    label: str
    options_days: tuple[int, ...] = ALLOWED_WINDOWS


def as_days(raw: object, fallback: int = DEFAULT_WINDOW_DAYS) -> int:
    """Normalize a raw ``days`` value onto the allow-list; never raises."""
    if raw is None or isinstance(raw, bool):
        return fallback
    try:
        number = float(raw.strip() if isinstance(raw, str) else raw)
    except (TypeError, ValueError, OverflowError):
        return fallback
    # Only exact allowed values pass; 6.5 or 29.6 are not snapped to a window.
    if not math.isfinite(number) or not number.is_integer():
        return fallback
    value = int(number)
    return value if value in ALLOWED_WINDOWS else fallback


def window_label(days: int) -> str:
    if days == 1:
        return "Today"
    return f"{days}d"


def resolve_window(raw: object, *, now: datetime, fallback: int = DEFAULT_WINDOW_DAYS) -> ReportWindow:
    days = as_days(raw, fallback)
    since = now - timedelta(days=days)
    return ReportWindow(
        days=days,
        since=since,
        since_iso=to_iso_z(since),
        label=window_label(days),
    )
