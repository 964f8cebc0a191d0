from __future__ import annotations

from collections import defaultdict
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from datetime import date, timedelta

from kpis.core.analytics.stats import percentile
from kpis.core.analytics.types import CostRow
from kpis.core.utils.time import utc_day

BASELINE_DAYS = 7
GLOBAL_MULTIPLIER = 2.5
TOOL_MULTIPLIER = 3.0
USER_PERCENTILE = 0.95
ANOMALY_LIMIT = 10

KIND_GLOBAL_DAILY_COST = "global_daily_cost"
KIND_TOOL_DAILY_COST = "tool_daily_cost"
KIND_USER_COST_OUTLIER = "user_cost_outlier"


@dataclass(frozen=True, slots=True)
class CostAnomaly:
    kind: str
    subject: str
    observed_usd: float
    baseline_usd: float
    threshold_usd: float
    multiplier: float
    message: str


def _exceeds(today: float, baseline_mean: float, factor: float) -> bool:
    # No baseline spend means no reference point.
    return baseline_mean > 0 and today > factor * baseline_mean


def daily_cost_anomalies(
    rows: Iterable[CostRow],
    *,
    today: date,
    baseline_days: int = BASELINE_DAYS,
    global_multiplier: float = GLOBAL_MULTIPLIER,
    tool_multiplier: float = TOOL_MULTIPLIER,
) -> list[CostAnomaly]:
    """Compare today's spend to the mean of the preceding ``baseline_days``.

    Days without events contribute zero to the baseline mean.
    """
    first_baseline_day = today - timedelta(days=baseline_days)
    today_total = 0.0
    baseline_total = 0.0
    today_by_tool: dict[str, float] = defaultdict(float)
    baseline_by_tool: dict[str, float] = defaultdict(float)

    for row in rows:
        day = utc_day(row.occurred_at)
        if day == today:
            today_total += row.cost_usd
            today_by_tool[row.tool] += row.cost_usd
        elif first_baseline_day <= day < today:
            baseline_total += row.cost_usd
            baseline_by_tool[row.tool] += row.cost_usd

    anomalies: list[CostAnomaly] = []
    baseline_mean = baseline_total / baseline_days
    if _exceeds(today_total, baseline_mean, global_multiplier):
        anomalies.append(
            _anomaly(KIND_GLOBAL_DAILY_COST, "all_tools", today_total, baseline_mean, global_multiplier)
        )

    for tool, spent in today_by_tool.items():
        tool_mean = baseline_by_tool.get(tool, 0.0) / baseline_days
        if _exceeds(spent, tool_mean, tool_multiplier):
            anomalies.append(_anomaly(KIND_TOOL_DAILY_COST, tool, spent, tool_mean, tool_multiplier))
    return anomalies


def user_cost_outliers(user_costs: Mapping[str, float], *, cutoff: float = USER_PERCENTILE) -> list[CostAnomaly]:
    threshold = percentile(user_costs.values(), cutoff)
    if threshold is None or threshold <= 0:
        return []
    return [
        _anomaly(KIND_USER_COST_OUTLIER, user_id, cost, threshold, 1.0)
        for user_id, cost in user_costs.items()
        if cost > threshold
    ]


def rank_anomalies(anomalies: Iterable[CostAnomaly], *, limit: int = ANOMALY_LIMIT) -> list[CostAnomaly]:
    return sorted(anomalies, key=lambda item: item.multiplier, reverse=True)[:limit]


def _anomaly(kind: str, subject: str, observed: float, baseline: float, factor: float) -> CostAnomaly:
    multiplier = observed / baseline
    threshold = baseline * factor
    return CostAnomaly(
        kind=kind,
        subject=subject,
        observed_usd=round(observed, 6),
        baseline_usd=round(baseline, 6),
        threshold_usd=round(threshold, 6),
        multiplier=round(multiplier, 4),
        message=f"{subject}: ${observed:.2f} is {multiplier:.1f}x the baseline ${baseline:.2f}",
    )
