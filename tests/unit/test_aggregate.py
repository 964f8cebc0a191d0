from __future__ import annotations

import random
from datetime import datetime, timedelta

import pytest

from kpis.core.analytics.aggregate import aggregate_events
from tests.support.records import event

pytestmark = pytest.mark.unit

NOW = datetime(2026, 3, 10, 12, 0, 0)
OUTCOMES = ["ALLOWED", "SUCCESS_CHARGED", "BLOCKED_QUOTA", "ERROR_UPSTREAM", "UNAUTHORIZED", "mystery"]


def test_success_plus_error_equals_total():
    rng = random.Random(7)
    events = [
        event(
            NOW - timedelta(minutes=i),
            outcome=rng.choice(OUTCOMES),
            user_id=rng.choice(["u1", "u2", None]),
            tool=rng.choice(["effect_engine", "magic_wire"]),
            http_status=rng.choice([200, 429, 500, None]),
        )
        for i in range(500)
    ]
    agg = aggregate_events(events)

    assert agg.total_events == 500
    assert agg.success_events + agg.error_events == agg.total_events
    for acc in agg.tools.values():
        assert acc.reliability.success + acc.reliability.error == acc.reliability.total
    for counter in agg.providers.values():
        assert counter.success + counter.error == counter.total


def test_all_allowed_events_are_fully_successful():
    events = [
        event(NOW - timedelta(minutes=i), outcome="ALLOWED", http_status=200, tool=f"tool_{i % 3}")
        for i in range(100)
    ]
    agg = aggregate_events(events)

    assert agg.success_events == 100
    assert agg.error_events == 0
    assert agg.recent_failures == []
    for acc in agg.tools.values():
        assert acc.reliability.success == acc.reliability.total


def test_rate_limited_upstream_error_counts_in_both_counters():
    agg = aggregate_events([event(NOW, outcome="ERROR_UPSTREAM", http_status=429)])

    assert agg.rate_limit_events == 1
    assert agg.error_events == 1
    assert agg.upstream_error_events == 1
    assert agg.providers["openai"].rate_limit == 1


def test_per_user_and_per_tool_accumulators():
    events = [
        event(NOW, user_id="u1", tool="effect_engine", cost_usd=0.5, latency_ms=100),
        event(NOW, user_id="u1", tool="magic_wire", cost_usd=0.25, outcome="BLOCKED_QUOTA", latency_ms=None),
        event(NOW, user_id="u2", tool="effect_engine", cost_usd=1.0, latency_ms=300),
        event(NOW, user_id=None, tool="effect_engine", cost_usd=2.0, latency_ms=200),
    ]
    agg = aggregate_events(events)

    assert agg.active_users == {"u1", "u2"}
    assert agg.cost_usd == pytest.approx(3.75)
    assert agg.latencies == [100, 300, 200]
    assert agg.tools["effect_engine"].events == 3
    assert agg.tools["effect_engine"].users == {"u1", "u2"}
    assert agg.users["u1"].events == 2
    assert agg.users["u1"].successes == 1
    assert agg.user_costs() == {"u1": pytest.approx(0.75), "u2": pytest.approx(1.0)}


def test_recent_failures_are_bounded_and_newest_first():
    events = [
        event(NOW - timedelta(minutes=i), outcome="ERROR_UPSTREAM", request_id=f"req-{i:04d}-" + "x" * 40)
        for i in range(40)
    ]
    agg = aggregate_events(events, recent_failures_limit=25)

    assert len(agg.recent_failures) == 25
    assert agg.recent_failures[0].occurred_at == NOW
    assert all(len(sample.request_id or "") <= 18 for sample in agg.recent_failures)


def test_latency_samples_are_capped():
    events = [event(NOW, latency_ms=float(i)) for i in range(20)]
    agg = aggregate_events(events, latency_sample_cap=5)

    assert len(agg.latencies) == 5
    assert len(agg.providers["openai"].latencies) == 5
