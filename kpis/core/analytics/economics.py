from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass

from kpis.core.analytics.aggregate import EventAggregate
from kpis.core.analytics.stats import median, percentile, safe_ratio

DAYS_PER_MONTH = 30
MONTHS_PER_YEAR = 12


@dataclass(frozen=True, slots=True)
class UnitEconomics:
    window_cost_usd: float
    monthly_ai_cost_usd: float
    cost_per_active_user_usd: float | None
    cost_per_success_usd: float | None
    user_cost_median_usd: float | None
    user_cost_p95_usd: float | None
    infra_estimate_usd: float
    paying_users: int | None = None
    mrr_usd: float | None = None
    arr_usd: float | None = None
    gross_margin: float | None = None


def monthly_cost(window_cost_usd: float, window_days: int) -> float:
    """Scale a window's spend linearly to a 30-day month."""
    return window_cost_usd * DAYS_PER_MONTH / window_days


def recurring_revenue(by_plan: Mapping[str, int], plan_prices_usd: Mapping[str, float]) -> tuple[int, float]:
    """Paying users and MRR; plans without a price are free."""
    paid = {plan: count for plan, count in by_plan.items() if plan in plan_prices_usd}
    return sum(paid.values()), sum(count * plan_prices_usd[plan] for plan, count in paid.items())


def gross_margin(mrr_usd: float | None, monthly_ai_cost_usd: float, infra_estimate_usd: float) -> float | None:
    if not mrr_usd:
        return None
    return (mrr_usd - monthly_ai_cost_usd - infra_estimate_usd) / mrr_usd


def compute_unit_economics(
    agg: EventAggregate,
    *,
    window_days: int,
    by_plan: Mapping[str, int] | None,
    plan_prices_usd: Mapping[str, float],
    infra_estimate_usd: float,
) -> UnitEconomics:
    """Revenue figures stay None when the plan breakdown is unavailable."""
    monthly_ai_cost = monthly_cost(agg.cost_usd, window_days)
    user_costs = list(agg.user_costs().values())

    paying_users: int | None = None
    mrr: float | None = None
    if by_plan is not None:
        paying_users, mrr = recurring_revenue(by_plan, plan_prices_usd)

    return UnitEconomics(
        window_cost_usd=agg.cost_usd,
        monthly_ai_cost_usd=monthly_ai_cost,
        cost_per_active_user_usd=safe_ratio(agg.cost_usd, len(agg.active_users)),
        cost_per_success_usd=safe_ratio(agg.cost_usd, agg.success_events),
        user_cost_median_usd=median(user_costs),
        user_cost_p95_usd=percentile(user_costs, 0.95),
        infra_estimate_usd=infra_estimate_usd,
        paying_users=paying_users,
        mrr_usd=mrr,
        arr_usd=mrr * MONTHS_PER_YEAR if mrr is not None else None,
        gross_margin=gross_margin(mrr, monthly_ai_cost, infra_estimate_usd),
    )
