from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import datetime

from kpis.core.analytics.classify import classify_event
from kpis.core.analytics.types import (
    ReliabilityCounter,
    ToolAccumulator,
    UsageEventRecord,
    UserAccumulator,
)

RECENT_FAILURES_LIMIT = 25
REQUEST_ID_PREVIEW_CHARS = 18


@dataclass(frozen=True, slots=True)
class FailureSample:
    occurred_at: datetime
    user_id: str | None
    tool: str
    endpoint: str | None
    provider: str
    model: str | None
    outcome: str | None
    http_status: int | None
    error_code: str | None
    latency_ms: float | None
    request_id: str | None


@dataclass(slots=True)
class EventAggregate:
    latency_sample_cap: int = 5000
    total_events: int = 0
    success_events: int = 0
    error_events: int = 0
    rate_limit_events: int = 0
    quota_events: int = 0
    unauthorized_events: int = 0
    timeout_events: int = 0
    upstream_error_events: int = 0
    cost_usd: float = 0.0
    latencies: list[float] = field(default_factory=list)
    active_users: set[str] = field(default_factory=set)
    tools: dict[str, ToolAccumulator] = field(default_factory=dict)
    providers: dict[str, ReliabilityCounter] = field(default_factory=dict)
    users: dict[str, UserAccumulator] = field(default_factory=dict)
    recent_failures: list[FailureSample] = field(default_factory=list)

    def tool(self, name: str) -> ToolAccumulator:
        acc = self.tools.get(name)
        if acc is None:
            acc = ToolAccumulator(reliability=ReliabilityCounter(sample_cap=self.latency_sample_cap))
            self.tools[name] = acc
        return acc

    def provider(self, name: str) -> ReliabilityCounter:
        counter = self.providers.get(name)
        if counter is None:
            counter = ReliabilityCounter(sample_cap=self.latency_sample_cap)
            self.providers[name] = counter
        return counter

    def user(self, user_id: str) -> UserAccumulator:
        acc = self.users.get(user_id)
        if acc is None:
            acc = UserAccumulator()
            self.users[user_id] = acc
        return acc

    def user_costs(self) -> dict[str, float]:
        return {user_id: acc.cost_usd for user_id, acc in self.users.items()}


def aggregate_events(
    events: Iterable[UsageEventRecord],
    *,
    recent_failures_limit: int = RECENT_FAILURES_LIMIT,
    latency_sample_cap: int = 5000,
) -> EventAggregate:
    """Single forward pass over already-fetched events.

    Events are expected newest first, so the failure feed and the capped
    latency samples keep the most recent entries.
    """
    agg = EventAggregate(latency_sample_cap=latency_sample_cap)
    for event in events:
        flags = classify_event(event)
        uid = event.user_id
        latency = event.latency_ms
        cost = event.cost_usd

        agg.total_events += 1
        agg.cost_usd += cost
        if flags.is_success:
            agg.success_events += 1
        else:
            agg.error_events += 1
        if flags.is_rate_limit:
            agg.rate_limit_events += 1
        if flags.is_quota:
            agg.quota_events += 1
        if flags.is_unauthorized:
            agg.unauthorized_events += 1
        if flags.is_timeout:
            agg.timeout_events += 1
        if flags.is_upstream_error:
            agg.upstream_error_events += 1
        if latency is not None and len(agg.latencies) < latency_sample_cap:
            agg.latencies.append(latency)

        tool = agg.tool(event.tool)
        tool.events += 1
        tool.cost_usd += cost
        tool.reliability.record(flags, latency)

        agg.provider(event.provider).record(flags, latency)

        if uid is not None:
            agg.active_users.add(uid)
            tool.users.add(uid)
            user = agg.user(uid)
            user.cost_usd += cost
            user.events += 1
            if flags.is_success:
                user.successes += 1
            if latency is not None and len(user.latencies) < latency_sample_cap:
                user.latencies.append(latency)

        if flags.is_error and len(agg.recent_failures) < recent_failures_limit:
            agg.recent_failures.append(_failure_sample(event))
    return agg


def _failure_sample(event: UsageEventRecord) -> FailureSample:
    request_id = event.request_id[:REQUEST_ID_PREVIEW_CHARS] if event.request_id else None
    return FailureSample(
        occurred_at=event.occurred_at,
        user_id=event.user_id,
        tool=event.tool,
        endpoint=event.endpoint,
        provider=event.provider,
        model=event.model,
        outcome=event.raw_outcome,
        http_status=event.http_status,
        error_code=event.error_code,
        latency_ms=event.latency_ms,
        request_id=request_id,
    )
