from __future__ import annotations

from datetime import datetime, timedelta

import pytest

from kpis.core.analytics.aggregate import aggregate_events
from kpis.core.analytics.economics import compute_unit_economics, gross_margin, monthly_cost, recurring_revenue
from tests.support.records import event

pytestmark = pytest.mark.unit

NOW = datetime(2026, 3, 20, 12, 0, 0)
PRICES = {"amateur": 9.95, "professional": 29.95}


def test_monthly_cost_scales_window_to_thirty_days():
    assert monthly_cost(7.0, 7) == pytest.approx(30.0)
    assert monthly_cost(3.0, 90) == pytest.approx(1.0)
    assert monthly_cost(0.0, 1) == 0.0


def test_recurring_revenue_counts_priced_plans_only():
    paying, mrr = recurring_revenue({"amateur": 2, "professional": 1, "trial": 5, "unknown": 1}, PRICES)

    assert paying == 3
    assert mrr == pytest.approx(2 * 9.95 + 29.95)
    assert recurring_revenue({}, PRICES) == (0, 0)


def test_gross_margin_is_null_without_revenue():
    assert gross_margin(None, 10.0, 125.0) is None
    assert gross_margin(0.0, 10.0, 125.0) is None
    assert gross_margin(200.0, 10.0, 90.0) == pytest.approx(0.5)


def test_unit_economics_from_aggregate():
    events = [
        event(NOW - timedelta(hours=1), user_id="a", cost_usd=3.0),
        event(NOW - timedelta(hours=2), user_id="b", cost_usd=1.0),
        event(NOW - timedelta(hours=3), user_id="b", cost_usd=0.5, outcome="ERROR_UPSTREAM", http_status=502),
    ]
    agg = aggregate_events(events)

    economics = compute_unit_economics(
        agg,
        window_days=30,
        by_plan={"professional": 1, "trial": 1},
        plan_prices_usd=PRICES,
        infra_estimate_usd=10.0,
    )

    assert economics.window_cost_usd == pytest.approx(4.5)
    assert economics.monthly_ai_cost_usd == pytest.approx(4.5)
    assert economics.cost_per_active_user_usd == pytest.approx(2.25)
    assert economics.cost_per_success_usd == pytest.approx(2.25)
    assert economics.user_cost_median_usd == pytest.approx(2.25)
    assert economics.paying_users == 1
    assert economics.mrr_usd == pytest.approx(29.95)
    assert economics.arr_usd == pytest.approx(29.95 * 12)
    assert economics.gross_margin == pytest.approx((29.95 - 4.5 - 10.0) / 29.95)


def test_unit_economics_without_plan_breakdown_keeps_revenue_null():
    economics = compute_unit_economics(
        aggregate_events([]),
        window_days=7,
        by_plan=None,
        plan_prices_usd=PRICES,
        infra_estimate_usd=125.0,
    )

    assert economics.paying_users is None
    assert economics.mrr_usd is None
    assert economics.arr_usd is None
    assert economics.gross_margin is None
    assert economics.cost_per_active_user_usd is None
    assert economics.user_cost_p95_usd is None
