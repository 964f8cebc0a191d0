from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass

from kpis.core.analytics.aggregate import EventAggregate
from kpis.core.analytics.stats import percentile, rate_or_zero, safe_ratio
from kpis.core.analytics.types import ReliabilityCounter, ToolAccumulator


@dataclass(frozen=True, slots=True)
class EventSummary:
    success_rate: float
    error_rate: float
    p50_latency_ms: float | None
    p95_latency_ms: float | None
    events_per_active_user: float | None


@dataclass(frozen=True, slots=True)
class ReliabilitySummary:
    name: str
    total: int
    success: int
    error: int
    timeout: int
    rate_limit: int
    quota: int
    unauthorized: int
    upstream_error: int
    success_rate: float
    error_rate: float
    p50_latency_ms: float | None
    p95_latency_ms: float | None


@dataclass(frozen=True, slots=True)
class ToolUsage:
    tool: str
    events: int
    unique_users: int
    cost_usd: float
    success_rate: float


@dataclass(frozen=True, slots=True)
class ToolRankings:
    by_usage: tuple[ToolUsage, ...] = ()
    by_cost: tuple[ToolUsage, ...] = ()


def summarize_events(agg: EventAggregate) -> EventSummary:
    return EventSummary(
        success_rate=rate_or_zero(agg.success_events, agg.total_events),
        error_rate=rate_or_zero(agg.error_events, agg.total_events),
        p50_latency_ms=percentile(agg.latencies, 0.5),
        p95_latency_ms=percentile(agg.latencies, 0.95),
        events_per_active_user=safe_ratio(agg.total_events, len(agg.active_users)),
    )


def summarize_reliability(counters: Mapping[str, ReliabilityCounter]) -> list[ReliabilitySummary]:
    """One row per provider or tool, busiest first."""
    rows = [
        ReliabilitySummary(
            name=name,
            total=counter.total,
            success=counter.success,
            error=counter.error,
            timeout=counter.timeout,
            rate_limit=counter.rate_limit,
            quota=counter.quota,
            unauthorized=counter.unauthorized,
            upstream_error=counter.upstream_error,
            success_rate=rate_or_zero(counter.success, counter.total),
            error_rate=rate_or_zero(counter.error, counter.total),
            p50_latency_ms=percentile(counter.latencies, 0.5),
            p95_latency_ms=percentile(counter.latencies, 0.95),
        )
        for name, counter in counters.items()
    ]
    rows.sort(key=lambda row: (-row.total, row.name))
    return rows


def rank_tool_usage(tools: Mapping[str, ToolAccumulator], *, limit: int) -> ToolRankings:
    usage = [
        ToolUsage(
            tool=name,
            events=acc.events,
            unique_users=len(acc.users),
            cost_usd=acc.cost_usd,
            success_rate=rate_or_zero(acc.reliability.success, acc.reliability.total),
        )
        for name, acc in tools.items()
    ]
    return ToolRankings(
        by_usage=tuple(sorted(usage, key=lambda row: (-row.events, row.tool))[:limit]),
        by_cost=tuple(sorted(usage, key=lambda row: (-row.cost_usd, row.tool))[:limit]),
    )
