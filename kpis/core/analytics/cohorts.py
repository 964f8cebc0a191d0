from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import datetime, timedelta

from kpis.core.analytics.stats import median, safe_ratio
from kpis.core.analytics.types import ActivityRow, UserRecord

ACTIVATION_WINDOW = timedelta(hours=24)
RETENTION_WINDOW = timedelta(days=7)
RETENTION_COHORT_MIN_AGE = timedelta(days=7)
RETENTION_COHORT_MAX_AGE = timedelta(days=14)


@dataclass(frozen=True, slots=True)
class ActivationResult:
    new_users: int
    activated_ids: frozenset[str]
    ttfv_minutes: tuple[float, ...]

    @property
    def activated(self) -> int:
        return len(self.activated_ids)

    @property
    def activation_rate(self) -> float:
        return self.activated / self.new_users if self.new_users else 0.0

    @property
    def ttfv_median_minutes(self) -> float | None:
        return median(self.ttfv_minutes)


@dataclass(frozen=True, slots=True)
class RetentionSplit:
    cohort_size: int = 0
    retained: int = 0

    @property
    def rate(self) -> float | None:
        return safe_ratio(self.retained, self.cohort_size)


@dataclass(frozen=True, slots=True)
class RetentionResult:
    cohort_start: datetime
    cohort_end: datetime
    overall: RetentionSplit = field(default_factory=RetentionSplit)
    founding: RetentionSplit = field(default_factory=RetentionSplit)
    non_founding: RetentionSplit = field(default_factory=RetentionSplit)


def first_occurrences(rows: Iterable[ActivityRow]) -> dict[str, datetime]:
    first: dict[str, datetime] = {}
    for row in rows:
        seen = first.get(row.user_id)
        if seen is None or row.occurred_at < seen:
            first[row.user_id] = row.occurred_at
    return first


def compute_activation(
    new_users: Iterable[UserRecord],
    core_events: Iterable[ActivityRow],
    *,
    within: timedelta = ACTIVATION_WINDOW,
) -> ActivationResult:
    """Activated = first core-tool event no later than ``created_at + within``."""
    created = {user.id: user.created_at for user in new_users}
    first_core = first_occurrences(row for row in core_events if row.user_id in created)

    activated: set[str] = set()
    ttfv: list[float] = []
    for user_id, first_at in first_core.items():
        created_at = created[user_id]
        delta = first_at - created_at
        if delta >= timedelta(0):
            ttfv.append(delta.total_seconds() / 60.0)
        if first_at <= created_at + within:
            activated.add(user_id)
    return ActivationResult(
        new_users=len(created),
        activated_ids=frozenset(activated),
        ttfv_minutes=tuple(ttfv),
    )


def retention_cohort_bounds(now: datetime) -> tuple[datetime, datetime]:
    return now - RETENTION_COHORT_MAX_AGE, now - RETENTION_COHORT_MIN_AGE


def compute_week1_retention(
    cohort: Iterable[UserRecord],
    events: Iterable[ActivityRow],
    *,
    now: datetime,
    within: timedelta = RETENTION_WINDOW,
) -> RetentionResult:
    start, end = retention_cohort_bounds(now)
    members = {user.id: user for user in cohort if start <= user.created_at <= end}

    retained: set[str] = set()
    for row in events:
        user = members.get(row.user_id)
        if user is None or row.user_id in retained:
            continue
        if user.created_at <= row.occurred_at <= user.created_at + within:
            retained.add(row.user_id)

    founding_ids = {user_id for user_id, user in members.items() if user.is_founding}
    other_ids = members.keys() - founding_ids
    return RetentionResult(
        cohort_start=start,
        cohort_end=end,
        overall=RetentionSplit(cohort_size=len(members), retained=len(retained)),
        founding=RetentionSplit(cohort_size=len(founding_ids), retained=len(retained & founding_ids)),
        non_founding=RetentionSplit(cohort_size=len(other_ids), retained=len(retained & other_ids)),
    )
