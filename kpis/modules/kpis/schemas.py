from __future__ import annotations

from datetime import date

from pydantic import Field

from kpis.modules.shared.schemas import ReportModel


class WindowResponse(ReportModel):
    days: int
    label: str
    since_iso: str
    generated_at: str
    options_days: list[int]


class DefinitionsResponse(ReportModel):
    active_user: str
    activated_user: str
    week1_retention: str
    stickiness: str
    core_tools: list[str]


class UsersResponse(ReportModel):
    total: int | None = None
    new: int
    active: int
    activated: int
    activation_rate: float
    by_plan: dict[str, int] = Field(default_factory=dict)


class RetentionSplitResponse(ReportModel):
    cohort_size: int = 0
    retained: int = 0
    rate: float | None = None


class RetentionResponse(RetentionSplitResponse):
    cohort_start: str | None = None
    cohort_end: str | None = None


class DailyPointResponse(ReportModel):
    day: date
    value: int


class GrowthResponse(ReportModel):
    new_users: int
    activated_users: int
    activation_rate: float
    ttfv_median_minutes: float | None = None
    ttfv_samples: int = 0
    week1_retention: RetentionResponse


class EngagementResponse(ReportModel):
    dau: int | None = None
    wau: int | None = None
    mau: int | None = None
    stickiness: float | None = None
    active_users_window: int
    events_per_active_user: float | None = None
    rolling_mau: list[DailyPointResponse] = Field(default_factory=list)
    returning_users: list[DailyPointResponse] = Field(default_factory=list)


class OutcomeCountsResponse(ReportModel):
    success: int
    error: int
    rate_limit: int
    quota: int
    unauthorized: int
    timeout: int
    upstream_error: int


class AiResponse(ReportModel):
    total_events: int
    success_events: int
    error_events: int
    rate_limit_events: int
    cost_usd: float
    success_rate: float
    error_rate: float
    p50_latency_ms: float | None = None
    p95_latency_ms: float | None = None
    outcomes: OutcomeCountsResponse


class TopSpenderResponse(ReportModel):
    user_id: str
    email: str | None = None
    membership: str | None = None
    cost_usd: float
    events: int
    successes: int
    p50_latency_ms: float | None = None


class AnomalyResponse(ReportModel):
    kind: str
    subject: str
    observed_usd: float
    baseline_usd: float
    threshold_usd: float
    multiplier: float
    message: str


class UnitEconomicsResponse(ReportModel):
    window_cost_usd: float
    monthly_ai_cost_estimate_usd: float
    cost_per_active_user_usd: float | None = None
    cost_per_success_usd: float | None = None
    user_cost_median_usd: float | None = None
    user_cost_p95_usd: float | None = None
    paying_users: int | None = None
    estimated_mrr_usd: float | None = None
    estimated_arr_usd: float | None = None
    infra_estimate_usd: float
    gross_margin_estimate: float | None = None
    top_spenders: list[TopSpenderResponse] = Field(default_factory=list)
    anomalies: list[AnomalyResponse] = Field(default_factory=list)


class ReliabilityRowResponse(ReportModel):
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
    p50_latency_ms: float | None = None
    p95_latency_ms: float | None = None


class RecentFailureResponse(ReportModel):
    occurred_at: str
    user_id: str | None = None
    tool: str
    endpoint: str | None = None
    provider: str
    model: str | None = None
    outcome: str | None = None
    http_status: int | None = None
    error_code: str | None = None
    latency_ms: float | None = None
    request_id: str | None = None


class ReliabilityResponse(ReportModel):
    by_provider: list[ReliabilityRowResponse] = Field(default_factory=list)
    by_tool: list[ReliabilityRowResponse] = Field(default_factory=list)
    recent_failures: list[RecentFailureResponse] = Field(default_factory=list)


class ToolUsageResponse(ReportModel):
    tool: str
    events: int
    unique_users: int
    cost_usd: float
    success_rate: float


class ToolAdoptionResponse(ReportModel):
    tool: str
    unique_users: int
    adoption_rate: float


class AdoptionTrendPointResponse(ReportModel):
    day: date
    active_users: int
    rates: dict[str, float]


class AdoptionTrendResponse(ReportModel):
    tools: list[str] = Field(default_factory=list)
    points: list[AdoptionTrendPointResponse] = Field(default_factory=list)


class ToolsResponse(ReportModel):
    top_by_usage: list[ToolUsageResponse] = Field(default_factory=list)
    top_by_cost: list[ToolUsageResponse] = Field(default_factory=list)
    adoption: list[ToolAdoptionResponse] = Field(default_factory=list)
    adoption_trend: AdoptionTrendResponse = Field(default_factory=AdoptionTrendResponse)


class FoundingResponse(ReportModel):
    members: int | None = None
    active_in_window: int = 0
    week1_retention: RetentionSplitResponse
    non_founding_week1_retention: RetentionSplitResponse


class KpisResponse(ReportModel):
    ok: bool = True
    window: WindowResponse
    definitions: DefinitionsResponse
    users: UsersResponse
    growth: GrowthResponse
    engagement: EngagementResponse
    ai: AiResponse
    unit_economics: UnitEconomicsResponse
    reliability: ReliabilityResponse
    tools: ToolsResponse
    founding: FoundingResponse
    warnings: list[str] = Field(default_factory=list)
