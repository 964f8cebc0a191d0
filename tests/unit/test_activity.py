from __future__ import annotations

import random
from datetime import date, datetime, timedelta

import pytest

from kpis.core.analytics.activity import (
    build_daily_active_index,
    returning_users_trend,
    rolling_active_users,
    rolling_active_users_bruteforce,
    stickiness,
    tool_adoption,
    tool_adoption_trend,
)
from tests.support.records import activity

pytestmark = pytest.mark.unit


def _random_index(rng: random.Random, start: date, days: int) -> dict[date, set[str]]:
    users = [f"u{i}" for i in range(rng.randint(1, 60))]
    index: dict[date, set[str]] = {}
    for offset in range(days):
        if rng.random() < 0.2:
            continue
        index[start + timedelta(days=offset)] = set(rng.sample(users, rng.randint(0, len(users))))
    return index


def test_sliding_rolling_mau_matches_bruteforce():
    rng = random.Random(20260101)
    for _ in range(50):
        origin = date(2026, 1, 1)
        index = _random_index(rng, origin, 120)
        start = origin + timedelta(days=rng.randint(0, 60))
        end = start + timedelta(days=rng.randint(0, 59))
        window = rng.choice([1, 7, 30])

        assert rolling_active_users(index, start=start, end=end, window_days=window) == (
            rolling_active_users_bruteforce(index, start=start, end=end, window_days=window)
        )


def test_rolling_active_users_empty_range():
    assert rolling_active_users({}, start=date(2026, 1, 2), end=date(2026, 1, 1)) == []


def test_stickiness_is_null_exactly_when_mau_is_zero():
    assert stickiness(0, 0) is None
    assert stickiness(5, 0) is None
    assert stickiness(0, 10) == 0.0
    assert stickiness(3, 12) == 0.25


def test_daily_index_buckets_by_utc_day():
    rows = [
        activity("u1", datetime(2026, 1, 1, 23, 59)),
        activity("u2", datetime(2026, 1, 2, 0, 0)),
        activity("u1", datetime(2026, 1, 2, 8, 0)),
    ]
    index = build_daily_active_index(rows)
    assert index == {date(2026, 1, 1): {"u1"}, date(2026, 1, 2): {"u1", "u2"}}


def test_returning_users_counts_previously_seen_users():
    index = {
        date(2026, 1, 1): {"u1"},
        date(2026, 1, 3): {"u1", "u2"},
        date(2026, 1, 4): {"u2", "u3"},
    }
    points = returning_users_trend(index, start=date(2026, 1, 3), end=date(2026, 1, 4))
    assert [point.value for point in points] == [1, 1]


def test_tool_adoption_ranks_by_rate():
    rows = tool_adoption({"a": {"u1"}, "b": {"u1", "u2", "u3"}, "c": set()}, 4, limit=2)
    assert [row.tool for row in rows] == ["b", "a"]
    assert rows[0].adoption_rate == 0.75


def test_tool_adoption_with_no_active_users_is_zero():
    rows = tool_adoption({"a": set()}, 0)
    assert rows[0].adoption_rate == 0.0


def test_tool_adoption_trend_picks_top_tools_and_daily_rates():
    day1 = datetime(2026, 1, 1, 10)
    day2 = datetime(2026, 1, 2, 10)
    rows = [activity(f"u{i}", day1, "popular") for i in range(6)]
    rows += [activity("u0", day2, "popular"), activity("u1", day2, "niche")]
    rows += [activity(f"x{i}", day2, f"tool_{i}") for i in range(5)]

    trend = tool_adoption_trend(rows, start=date(2026, 1, 1), end=date(2026, 1, 2), top_n=5)

    assert trend.tools[0] == "popular"
    assert len(trend.tools) == 5
    assert len(trend.points) == 2
    assert trend.points[0].rates["popular"] == 1.0
    assert trend.points[1].active_users == 7
    assert trend.points[1].rates["popular"] == pytest.approx(1 / 7)
