from __future__ import annotations

from collections import Counter, defaultdict
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from datetime import date, timedelta

from kpis.core.analytics.stats import rate_or_zero, safe_ratio
from kpis.core.analytics.types import ActivityRow, DailyActiveIndex
from kpis.core.utils.time import day_range, utc_day

ROLLING_WINDOW_DAYS = 30
TREND_DAYS = 30
ADOPTION_TREND_TOP_TOOLS = 5


@dataclass(frozen=True, slots=True)
class DailyValue:
    day: date
    value: int


@dataclass(frozen=True, slots=True)
class ToolAdoption:
    tool: str
    unique_users: int
    adoption_rate: float


@dataclass(frozen=True, slots=True)
class AdoptionTrendPoint:
    day: date
    active_users: int
    rates: dict[str, float]


@dataclass(frozen=True, slots=True)
class AdoptionTrend:
    tools: tuple[str, ...]
    points: tuple[AdoptionTrendPoint, ...]


def build_daily_active_index(rows: Iterable[ActivityRow]) -> DailyActiveIndex:
    index: DailyActiveIndex = defaultdict(set)
    for row in rows:
        index[utc_day(row.occurred_at)].add(row.user_id)
    return dict(index)


def stickiness(dau: int, mau: int) -> float | None:
    return safe_ratio(dau, mau)


def rolling_active_users(
    index: Mapping[date, set[str]],
    *,
    start: date,
    end: date,
    window_days: int = ROLLING_WINDOW_DAYS,
) -> list[DailyValue]:
    """Trailing ``window_days`` distinct-user count for every day in [start, end].

    Maintains per-identifier reference counts: the day entering the window
    adds its users, the day leaving it subtracts them, so each step costs the
    size of two daily sets instead of a full union.
    """
    if end < start:
        return []
    refcounts: Counter[str] = Counter()
    distinct = 0

    def _add(day: date) -> None:
        nonlocal distinct
        for user_id in index.get(day, ()):
            refcounts[user_id] += 1
            if refcounts[user_id] == 1:
                distinct += 1

    def _remove(day: date) -> None:
        nonlocal distinct
        for user_id in index.get(day, ()):
            refcounts[user_id] -= 1
            if refcounts[user_id] == 0:
                distinct -= 1
                del refcounts[user_id]

    for day in day_range(start - timedelta(days=window_days - 1), start - timedelta(days=1)):
        _add(day)

    points: list[DailyValue] = []
    for day in day_range(start, end):
        _add(day)
        points.append(DailyValue(day=day, value=distinct))
        _remove(day - timedelta(days=window_days - 1))
    return points


def rolling_active_users_bruteforce(
    index: Mapping[date, set[str]],
    *,
    start: date,
    end: date,
    window_days: int = ROLLING_WINDOW_DAYS,
) -> list[DailyValue]:
    points: list[DailyValue] = []
    for day in day_range(start, end):
        union: set[str] = set()
        for offset in range(window_days):
            union |= index.get(day - timedelta(days=offset), set())
        points.append(DailyValue(day=day, value=len(union)))
    return points


def returning_users_trend(
    index: Mapping[date, set[str]],
    *,
    start: date,
    end: date,
) -> list[DailyValue]:
    """Per day, active users that were already active on an earlier indexed day."""
    seen: set[str] = set()
    for day in sorted(d for d in index if d < start):
        seen |= index[day]

    points: list[DailyValue] = []
    for day in day_range(start, end):
        active = index.get(day, set())
        points.append(DailyValue(day=day, value=len(active & seen)))
        seen |= active
    return points


def tool_adoption(
    tool_users: Mapping[str, set[str]],
    active_users: int,
    *,
    limit: int = 10,
) -> list[ToolAdoption]:
    rows = [
        ToolAdoption(
            tool=tool,
            unique_users=len(users),
            adoption_rate=rate_or_zero(len(users), active_users),
        )
        for tool, users in tool_users.items()
    ]
    rows.sort(key=lambda row: (-row.adoption_rate, -row.unique_users, row.tool))
    return rows[:limit]


def tool_adoption_trend(
    rows: Iterable[ActivityRow],
    *,
    start: date,
    end: date,
    top_n: int = ADOPTION_TREND_TOP_TOOLS,
) -> AdoptionTrend:
    daily_tool_users: dict[date, dict[str, set[str]]] = defaultdict(lambda: defaultdict(set))
    index: DailyActiveIndex = defaultdict(set)
    range_tool_users: dict[str, set[str]] = defaultdict(set)
    for row in rows:
        day = utc_day(row.occurred_at)
        if day < start or day > end:
            continue
        index[day].add(row.user_id)
        daily_tool_users[day][row.tool].add(row.user_id)
        range_tool_users[row.tool].add(row.user_id)

    ranked = sorted(range_tool_users.items(), key=lambda item: (-len(item[1]), item[0]))
    tools = tuple(tool for tool, _ in ranked[:top_n])

    points: list[AdoptionTrendPoint] = []
    for day in day_range(start, end):
        active = len(index.get(day, ()))
        per_tool = daily_tool_users.get(day, {})
        points.append(
            AdoptionTrendPoint(
                day=day,
                active_users=active,
                rates={tool: rate_or_zero(len(per_tool.get(tool, ())), active) for tool in tools},
            )
        )
    return AdoptionTrend(tools=tools, points=tuple(points))
