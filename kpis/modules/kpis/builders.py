from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field

from kpis.core.analytics.activity import AdoptionTrend, DailyValue, ToolAdoption
from kpis.core.analytics.aggregate import EventAggregate, FailureSample
from kpis.core.analytics.anomalies import CostAnomaly
from kpis.core.analytics.cohorts import ActivationResult, RetentionResult, RetentionSplit
from kpis.core.analytics.economics import UnitEconomics
from kpis.core.analytics.sections import ReportContext
from kpis.core.analytics.stats import round_or_none
from kpis.core.analytics.summary import EventSummary, ReliabilitySummary, ToolRankings, ToolUsage
from kpis.core.utils.time import to_iso_z
from kpis.modules.kpis.schemas import (
    AdoptionTrendPointResponse,
    AdoptionTrendResponse,
    AiResponse,
    AnomalyResponse,
    DailyPointResponse,
    DefinitionsResponse,
    EngagementResponse,
    FoundingResponse,
    GrowthResponse,
    KpisResponse,
    OutcomeCountsResponse,
    RecentFailureResponse,
    ReliabilityResponse,
    ReliabilityRowResponse,
    RetentionResponse,
    RetentionSplitResponse,
    TopSpenderResponse,
    ToolAdoptionResponse,
    ToolsResponse,
    ToolUsageResponse,
    UnitEconomicsResponse,
    UsersResponse,
    WindowResponse,
)

_COST_DIGITS = 6


@dataclass(frozen=True, slots=True)
class UserTotals:
    total: int
    by_plan: dict[str, int]
    founding_members: int


@dataclass(frozen=True, slots=True)
class ActiveUserCounts:
    dau: int
    wau: int
    mau: int
    stickiness: float | None


@dataclass(frozen=True, slots=True)
class ActivityTrends:
    rolling_mau: list[DailyValue] = field(default_factory=list)
    returning_users: list[DailyValue] = field(default_factory=list)


@dataclass(frozen=True, slots=True)
class TopSpender:
    user_id: str
    cost_usd: float
    events: int
    successes: int
    p50_latency_ms: float | None
    email: str | None = None
    membership: str | None = None


@dataclass(slots=True)
class KpisReport:
    """Every computed value of one report, ready for assembly."""

    ctx: ReportContext
    core_tools: Sequence[str]
    aggregate: EventAggregate
    summary: EventSummary
    economics: UnitEconomics
    activation: ActivationResult
    reliability_by_provider: list[ReliabilitySummary] = field(default_factory=list)
    reliability_by_tool: list[ReliabilitySummary] = field(default_factory=list)
    tool_rankings: ToolRankings = field(default_factory=ToolRankings)
    user_totals: UserTotals | None = None
    active_users: ActiveUserCounts | None = None
    trends: ActivityTrends = field(default_factory=ActivityTrends)
    adoption: list[ToolAdoption] = field(default_factory=list)
    adoption_trend: AdoptionTrend = field(default_factory=lambda: AdoptionTrend(tools=(), points=()))
    retention: RetentionResult | None = None
    anomalies: list[CostAnomaly] = field(default_factory=list)
    top_spenders: list[TopSpender] = field(default_factory=list)
    founding_active: int = 0


def build_kpis_response(report: KpisReport) -> KpisResponse:
    ctx = report.ctx
    agg = report.aggregate
    return KpisResponse(
        ok=True,
        window=WindowResponse(
            days=ctx.window.days,
            label=ctx.window.label,
            since_iso=ctx.window.since_iso,
            generated_at=to_iso_z(ctx.now),
            options_days=list(ctx.window.options_days),
        ),
        definitions=build_definitions(report.core_tools),
        users=build_users(report),
        growth=build_growth(report),
        engagement=build_engagement(report),
        ai=build_ai(agg, report.summary),
        unit_economics=build_unit_economics(report),
        reliability=ReliabilityResponse(
            by_provider=build_reliability_rows(report.reliability_by_provider),
            by_tool=build_reliability_rows(report.reliability_by_tool),
            recent_failures=[build_recent_failure(sample) for sample in agg.recent_failures],
        ),
        tools=build_tools(report),
        founding=build_founding(report),
        warnings=list(ctx.warnings),
    )


def build_definitions(core_tools: Sequence[str]) -> DefinitionsResponse:
    return DefinitionsResponse(
        active_user="Unique users with at least one ai_usage_event in the selected window",
        activated_user="New users whose first core-tool use happens within 24h of signup",
        week1_retention="Users created 7-14 days ago with an event within 7 days of signup",
        stickiness="DAU / MAU, null when MAU is 0",
        core_tools=list(core_tools),
    )


def build_users(report: KpisReport) -> UsersResponse:
    totals = report.user_totals
    activation = report.activation
    return UsersResponse(
        total=totals.total if totals else None,
        new=activation.new_users,
        active=len(report.aggregate.active_users),
        activated=activation.activated,
        activation_rate=activation.activation_rate,
        by_plan=dict(totals.by_plan) if totals else {},
    )


def build_growth(report: KpisReport) -> GrowthResponse:
    activation = report.activation
    return GrowthResponse(
        new_users=activation.new_users,
        activated_users=activation.activated,
        activation_rate=activation.activation_rate,
        ttfv_median_minutes=round_or_none(activation.ttfv_median_minutes, 2),
        ttfv_samples=len(activation.ttfv_minutes),
        week1_retention=build_retention(report.retention),
    )


def build_retention(retention: RetentionResult | None) -> RetentionResponse:
    if retention is None:
        return RetentionResponse()
    return RetentionResponse(
        cohort_start=to_iso_z(retention.cohort_start),
        cohort_end=to_iso_z(retention.cohort_end),
        cohort_size=retention.overall.cohort_size,
        retained=retention.overall.retained,
        rate=retention.overall.rate,
    )


def build_retention_split(split: RetentionSplit | None) -> RetentionSplitResponse:
    if split is None:
        return RetentionSplitResponse()
    return RetentionSplitResponse(cohort_size=split.cohort_size, retained=split.retained, rate=split.rate)


def build_engagement(report: KpisReport) -> EngagementResponse:
    counts = report.active_users
    active = len(report.aggregate.active_users)
    return EngagementResponse(
        dau=counts.dau if counts else None,
        wau=counts.wau if counts else None,
        mau=counts.mau if counts else None,
        stickiness=counts.stickiness if counts else None,
        active_users_window=active,
        events_per_active_user=round_or_none(report.summary.events_per_active_user, 2),
        rolling_mau=_daily_points(report.trends.rolling_mau),
        returning_users=_daily_points(report.trends.returning_users),
    )


def build_ai(agg: EventAggregate, summary: EventSummary) -> AiResponse:
    return AiResponse(
        total_events=agg.total_events,
        success_events=agg.success_events,
        error_events=agg.error_events,
        rate_limit_events=agg.rate_limit_events,
        cost_usd=round(agg.cost_usd, _COST_DIGITS),
        success_rate=summary.success_rate,
        error_rate=summary.error_rate,
        p50_latency_ms=summary.p50_latency_ms,
        p95_latency_ms=summary.p95_latency_ms,
        outcomes=OutcomeCountsResponse(
            success=agg.success_events,
            error=agg.error_events,
            rate_limit=agg.rate_limit_events,
            quota=agg.quota_events,
            unauthorized=agg.unauthorized_events,
            timeout=agg.timeout_events,
            upstream_error=agg.upstream_error_events,
        ),
    )


def build_unit_economics(report: KpisReport) -> UnitEconomicsResponse:
    economics = report.economics
    return UnitEconomicsResponse(
        window_cost_usd=round(economics.window_cost_usd, _COST_DIGITS),
        monthly_ai_cost_estimate_usd=round(economics.monthly_ai_cost_usd, _COST_DIGITS),
        cost_per_active_user_usd=round_or_none(economics.cost_per_active_user_usd, _COST_DIGITS),
        cost_per_success_usd=round_or_none(economics.cost_per_success_usd, _COST_DIGITS),
        user_cost_median_usd=round_or_none(economics.user_cost_median_usd, _COST_DIGITS),
        user_cost_p95_usd=round_or_none(economics.user_cost_p95_usd, _COST_DIGITS),
        paying_users=economics.paying_users,
        estimated_mrr_usd=round_or_none(economics.mrr_usd, 2),
        estimated_arr_usd=round_or_none(economics.arr_usd, 2),
        infra_estimate_usd=economics.infra_estimate_usd,
        gross_margin_estimate=round_or_none(economics.gross_margin),
        top_spenders=[
            TopSpenderResponse(
                user_id=spender.user_id,
                email=spender.email,
                membership=spender.membership,
                cost_usd=round(spender.cost_usd, _COST_DIGITS),
                events=spender.events,
                successes=spender.successes,
                p50_latency_ms=spender.p50_latency_ms,
            )
            for spender in report.top_spenders
        ],
        anomalies=[AnomalyResponse.model_validate(anomaly) for anomaly in report.anomalies],
    )


def build_reliability_rows(rows: Sequence[ReliabilitySummary]) -> list[ReliabilityRowResponse]:
    return [ReliabilityRowResponse.model_validate(row) for row in rows]


def build_recent_failure(sample: FailureSample) -> RecentFailureResponse:
    return RecentFailureResponse(
        occurred_at=to_iso_z(sample.occurred_at),
        user_id=sample.user_id,
        tool=sample.tool,
        endpoint=sample.endpoint,
        provider=sample.provider,
        model=sample.model,
        outcome=sample.outcome,
        http_status=sample.http_status,
        error_code=sample.error_code,
        latency_ms=sample.latency_ms,
        request_id=sample.request_id,
    )


def build_tools(report: KpisReport) -> ToolsResponse:
    rankings = report.tool_rankings
    trend = report.adoption_trend
    return ToolsResponse(
        top_by_usage=[build_tool_usage(row) for row in rankings.by_usage],
        top_by_cost=[build_tool_usage(row) for row in rankings.by_cost],
        adoption=[ToolAdoptionResponse.model_validate(row) for row in report.adoption],
        adoption_trend=AdoptionTrendResponse(
            tools=list(trend.tools),
            points=[
                AdoptionTrendPointResponse(day=point.day, active_users=point.active_users, rates=dict(point.rates))
                for point in trend.points
            ],
        ),
    )


def build_tool_usage(row: ToolUsage) -> ToolUsageResponse:
    return ToolUsageResponse(
        tool=row.tool,
        events=row.events,
        unique_users=row.unique_users,
        cost_usd=round(row.cost_usd, _COST_DIGITS),
        success_rate=row.success_rate,
    )


def build_founding(report: KpisReport) -> FoundingResponse:
    retention = report.retention
    return FoundingResponse(
        members=report.user_totals.founding_members if report.user_totals else None,
        active_in_window=report.founding_active,
        week1_retention=build_retention_split(retention.founding if retention else None),
        non_founding_week1_retention=build_retention_split(retention.non_founding if retention else None),
    )


def _daily_points(values: Sequence[DailyValue]) -> list[DailyPointResponse]:
    return [DailyPointResponse(day=value.day, value=value.value) for value in values]
