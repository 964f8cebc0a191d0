from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from contextlib import AbstractAsyncContextManager
from datetime import date, datetime, time, timedelta
from typing import Concatenate

from sqlalchemy.exc import SQLAlchemyError

from kpis.core.analytics.activity import (
    TREND_DAYS,
    AdoptionTrend,
    build_daily_active_index,
    returning_users_trend,
    rolling_active_users,
    stickiness,
    tool_adoption,
    tool_adoption_trend,
)
from kpis.core.analytics.aggregate import EventAggregate, aggregate_events
from kpis.core.analytics.anomalies import (
    BASELINE_DAYS,
    CostAnomaly,
    daily_cost_anomalies,
    rank_anomalies,
    user_cost_outliers,
)
from kpis.core.analytics.cohorts import (
    ActivationResult,
    RetentionResult,
    compute_activation,
    compute_week1_retention,
    retention_cohort_bounds,
)
from kpis.core.analytics.economics import compute_unit_economics
from kpis.core.analytics.sections import ReportContext, run_section
from kpis.core.analytics.stats import median
from kpis.core.analytics.summary import rank_tool_usage, summarize_events, summarize_reliability
from kpis.core.analytics.types import UserRecord
from kpis.core.analytics.window import resolve_window
from kpis.core.config.settings import Settings
from kpis.core.exceptions import ReportError
from kpis.core.utils.batching import fetch_in_batches
from kpis.core.utils.request_id import current_request_id
from kpis.core.utils.time import utc_day, utcnow
from kpis.modules.kpis.builders import (
    ActiveUserCounts,
    ActivityTrends,
    KpisReport,
    TopSpender,
    UserTotals,
    build_kpis_response,
)
from kpis.modules.kpis.repository import KpisRepository
from kpis.modules.kpis.schemas import KpisResponse

logger = logging.getLogger(__name__)

type RepositoryScope = Callable[[], AbstractAsyncContextManager[KpisRepository]]

ACTIVE_USER_WINDOWS = (1, 7, 30)


class KpisService:
    def __init__(
        self,
        repo: KpisRepository,
        repo_scope: RepositoryScope,
        settings: Settings,
        *,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._repo = repo
        self._repo_scope = repo_scope
        self._settings = settings
        self._clock = clock

    async def build_report(self, days: object = None) -> KpisResponse:
        settings = self._settings
        now = self._clock()
        window = resolve_window(days, now=now, fallback=settings.default_window_days)
        ctx = ReportContext(
            now=now,
            window=window,
            section_timeout_seconds=settings.secondary_timeout_seconds,
        )

        try:
            events = await self._repo.scan_events_since(window.since)
        except SQLAlchemyError as exc:
            logger.error("Telemetry scan failed since=%s request_id=%s", window.since_iso, current_request_id())
            raise ReportError("Telemetry scan failed") from exc
        try:
            new_users = await self._repo.list_users_created_between(window.since, now)
        except SQLAlchemyError as exc:
            logger.error("New users scan failed since=%s request_id=%s", window.since_iso, current_request_id())
            raise ReportError("New users scan failed") from exc

        agg = aggregate_events(
            events,
            recent_failures_limit=settings.recent_failures_limit,
            latency_sample_cap=settings.latency_sample_cap,
        )
        activation = ActivationResult(new_users=len(new_users), activated_ids=frozenset(), ttfv_minutes=())

        # Each secondary section reads through its own session so a timed-out
        # scan cannot leave the request session mid-query.
        scoped = self._scoped
        user_totals = await run_section(ctx, "user_totals", scoped(self._user_totals), None)
        activation = await run_section(ctx, "activation", scoped(self._activation, ctx, new_users), activation)
        active_users = await run_section(ctx, "active_users", lambda: self._active_users(ctx), None)
        trends = await run_section(ctx, "activity_trends", scoped(self._activity_trends, ctx), ActivityTrends())
        adoption_trend = await run_section(
            ctx,
            "tool_adoption_trend",
            scoped(self._adoption_trend, ctx),
            AdoptionTrend(tools=(), points=()),
        )
        retention = await run_section(ctx, "retention", scoped(self._retention, ctx), None)
        anomalies = await run_section(ctx, "spend_anomalies", scoped(self._anomalies, ctx, agg), [])
        top_spenders = await run_section(ctx, "top_spenders", scoped(self._top_spenders, agg), [])
        founding_active = await run_section(ctx, "founding_activity", scoped(self._founding_active, agg), 0)

        if ctx.degraded_sections:
            logger.info(
                "KPI report degraded days=%s sections=%s request_id=%s",
                window.days,
                ",".join(ctx.degraded_sections),
                current_request_id(),
            )

        report = KpisReport(
            ctx=ctx,
            core_tools=tuple(settings.core_tools),
            aggregate=agg,
            summary=summarize_events(agg),
            economics=compute_unit_economics(
                agg,
                window_days=window.days,
                by_plan=user_totals.by_plan if user_totals else None,
                plan_prices_usd=settings.plan_prices_usd,
                infra_estimate_usd=settings.infra_estimate_usd,
            ),
            activation=activation,
            reliability_by_provider=summarize_reliability(agg.providers),
            reliability_by_tool=summarize_reliability({name: acc.reliability for name, acc in agg.tools.items()}),
            tool_rankings=rank_tool_usage(agg.tools, limit=settings.top_tools_limit),
            user_totals=user_totals,
            active_users=active_users,
            trends=trends,
            adoption=tool_adoption(
                {name: acc.users for name, acc in agg.tools.items()},
                len(agg.active_users),
                limit=settings.top_tools_limit,
            ),
            adoption_trend=adoption_trend,
            retention=retention,
            anomalies=anomalies,
            top_spenders=top_spenders,
            founding_active=founding_active,
        )
        return build_kpis_response(report)

    def _scoped[**P, T](
        self,
        compute: Callable[Concatenate[KpisRepository, P], Awaitable[T]],
        *args: P.args,
        **kwargs: P.kwargs,
    ) -> Callable[[], Awaitable[T]]:
        async def run() -> T:
            async with self._repo_scope() as repo:
                return await compute(repo, *args, **kwargs)

        return run

    async def _user_totals(self, repo: KpisRepository) -> UserTotals:
        return UserTotals(
            total=await repo.count_users(),
            by_plan=await repo.count_users_by_membership(),
            founding_members=await repo.count_founding_members(),
        )

    async def _activation(
        self,
        repo: KpisRepository,
        ctx: ReportContext,
        new_users: list[UserRecord],
    ) -> ActivationResult:
        core_tools = list(self._settings.core_tools)
        core_events = await fetch_in_batches(
            (user.id for user in new_users),
            lambda batch: repo.events_for_users(batch, ctx.window.since, tools=core_tools),
            batch_size=self._settings.lookup_batch_size,
        )
        return compute_activation(new_users, core_events)

    async def _active_users(self, ctx: ReportContext) -> ActiveUserCounts:
        dau, wau, mau = await asyncio.gather(
            *(self._distinct_active_since(ctx.now - timedelta(days=days)) for days in ACTIVE_USER_WINDOWS)
        )
        return ActiveUserCounts(dau=dau, wau=wau, mau=mau, stickiness=stickiness(dau, mau))

    async def _distinct_active_since(self, since: datetime) -> int:
        async with self._repo_scope() as repo:
            return len(await repo.distinct_active_user_ids(since))

    async def _activity_trends(self, repo: KpisRepository, ctx: ReportContext) -> ActivityTrends:
        end = utc_day(ctx.now)
        start = end - timedelta(days=TREND_DAYS - 1)
        # The first trend day needs a full trailing window behind it.
        scan_from = _start_of_day(start - timedelta(days=TREND_DAYS - 1))
        rows = await repo.scan_event_activity(scan_from)
        _warn_if_capped(ctx, "activity_trends", rows, repo.row_cap)
        index = build_daily_active_index(rows)
        return ActivityTrends(
            rolling_mau=rolling_active_users(index, start=start, end=end, window_days=TREND_DAYS),
            returning_users=returning_users_trend(index, start=start, end=end),
        )

    async def _adoption_trend(self, repo: KpisRepository, ctx: ReportContext) -> AdoptionTrend:
        end = utc_day(ctx.now)
        start = end - timedelta(days=TREND_DAYS - 1)
        rows = await repo.scan_event_activity(_start_of_day(start))
        _warn_if_capped(ctx, "tool_adoption_trend", rows, repo.row_cap)
        return tool_adoption_trend(rows, start=start, end=end)

    async def _retention(self, repo: KpisRepository, ctx: ReportContext) -> RetentionResult:
        start, end = retention_cohort_bounds(ctx.now)
        cohort = await repo.list_users_created_between(start, end)
        events = await fetch_in_batches(
            (user.id for user in cohort),
            lambda batch: repo.events_for_users(batch, start),
            batch_size=self._settings.lookup_batch_size,
        )
        return compute_week1_retention(cohort, events, now=ctx.now)

    async def _anomalies(self, repo: KpisRepository, ctx: ReportContext, agg: EventAggregate) -> list[CostAnomaly]:
        today = utc_day(ctx.now)
        rows = await repo.scan_event_costs(_start_of_day(today - timedelta(days=BASELINE_DAYS)))
        found = daily_cost_anomalies(
            rows,
            today=today,
            global_multiplier=self._settings.global_anomaly_multiplier,
            tool_multiplier=self._settings.tool_anomaly_multiplier,
        )
        found.extend(user_cost_outliers(agg.user_costs()))
        return rank_anomalies(found, limit=self._settings.anomaly_limit)

    async def _top_spenders(self, repo: KpisRepository, agg: EventAggregate) -> list[TopSpender]:
        ranked = sorted(agg.users.items(), key=lambda item: (-item[1].cost_usd, item[0]))
        ranked = [(user_id, acc) for user_id, acc in ranked if acc.cost_usd > 0][: self._settings.top_spenders_limit]
        if not ranked:
            return []
        profiles = await fetch_in_batches(
            (user_id for user_id, _ in ranked),
            repo.users_by_ids,
            batch_size=self._settings.lookup_batch_size,
        )
        by_id = {profile.id: profile for profile in profiles}
        spenders: list[TopSpender] = []
        for user_id, acc in ranked:
            profile = by_id.get(user_id)
            spenders.append(
                TopSpender(
                    user_id=user_id,
                    cost_usd=acc.cost_usd,
                    events=acc.events,
                    successes=acc.successes,
                    p50_latency_ms=median(acc.latencies),
                    email=profile.email if profile else None,
                    membership=profile.membership if profile else None,
                )
            )
        return spenders

    async def _founding_active(self, repo: KpisRepository, agg: EventAggregate) -> int:
        profiles = await fetch_in_batches(
            agg.active_users,
            repo.users_by_ids,
            batch_size=self._settings.lookup_batch_size,
        )
        return sum(1 for profile in profiles if profile.is_founding)


def _start_of_day(day: date) -> datetime:
    return datetime.combine(day, time.min)


def _warn_if_capped(ctx: ReportContext, section: str, rows: list, row_cap: int) -> None:
    # Scans run newest first, so a capped scan loses the oldest days.
    if len(rows) < row_cap:
        return
    logger.warning(
        "Report scan hit row cap section=%s row_cap=%s request_id=%s",
        section,
        row_cap,
        current_request_id(),
    )
    ctx.warn(section, f"scan capped at {row_cap} rows; oldest rows omitted")
