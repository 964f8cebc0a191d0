from __future__ import annotations

import math
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum

from kpis.core.utils.time import parse_timestamp

UNKNOWN_TOOL = "unknown"
UNKNOWN_PROVIDER = "unknown"


class Outcome(str, Enum):
    ALLOWED = "ALLOWED"
    BLOCKED_RATE_LIMIT = "BLOCKED_RATE_LIMIT"
    BLOCKED_QUOTA = "BLOCKED_QUOTA"
    UNAUTHORIZED = "UNAUTHORIZED"
    ERROR_UPSTREAM = "ERROR_UPSTREAM"
    SUCCESS_CHARGED = "SUCCESS_CHARGED"
    SUCCESS_NOT_CHARGED = "SUCCESS_NOT_CHARGED"
    UNKNOWN = "UNKNOWN"

    @classmethod
    def parse(cls, value: object) -> Outcome:
        if isinstance(value, Outcome):
            return value
        text = str(value or "").strip().upper().replace("-", "_")
        try:
            return cls(text)
        except ValueError:
            return cls.UNKNOWN


SUCCESS_OUTCOMES = frozenset({Outcome.SUCCESS_CHARGED, Outcome.SUCCESS_NOT_CHARGED, Outcome.ALLOWED})


def _field(row: object, name: str) -> object:
    if isinstance(row, Mapping):
        return row.get(name)
    return getattr(row, name, None)


def _optional_str(value: object) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _optional_int(value: object) -> int | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(number):
        return None
    return int(number)


def _latency(value: object) -> float | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(number) or number < 0:
        return None
    return number


def _cost(value: object) -> float:
    if value is None or isinstance(value, bool):
        return 0.0
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0.0
    return number if math.isfinite(number) else 0.0


@dataclass(frozen=True, slots=True)
class UserRecord:
    id: str
    created_at: datetime
    membership: str | None = None
    email: str | None = None
    is_founding: bool = False

    @classmethod
    def from_row(cls, row: object) -> UserRecord | None:
        user_id = _optional_str(_field(row, "id"))
        created_at = parse_timestamp(_field(row, "created_at"))
        if user_id is None or created_at is None:
            return None
        return cls(
            id=user_id,
            created_at=created_at,
            membership=_optional_str(_field(row, "membership")),
            email=_optional_str(_field(row, "email")),
            is_founding=bool(_field(row, "founding_circle_member")),
        )


@dataclass(frozen=True, slots=True)
class UsageEventRecord:
    occurred_at: datetime
    outcome: Outcome
    id: int | None = None
    request_id: str | None = None
    user_id: str | None = None
    tool: str = UNKNOWN_TOOL
    endpoint: str | None = None
    provider: str = UNKNOWN_PROVIDER
    model: str | None = None
    raw_outcome: str | None = None
    http_status: int | None = None
    error_code: str | None = None
    latency_ms: float | None = None
    cost_usd: float = 0.0

    @classmethod
    def from_row(cls, row: object) -> UsageEventRecord | None:
        occurred_at = parse_timestamp(_field(row, "occurred_at"))
        if occurred_at is None:
            return None
        raw_outcome = _optional_str(_field(row, "outcome"))
        return cls(
            occurred_at=occurred_at,
            outcome=Outcome.parse(raw_outcome),
            id=_optional_int(_field(row, "id")),
            request_id=_optional_str(_field(row, "request_id")),
            user_id=_optional_str(_field(row, "user_id")),
            tool=_optional_str(_field(row, "tool")) or UNKNOWN_TOOL,
            endpoint=_optional_str(_field(row, "endpoint")),
            provider=(_optional_str(_field(row, "provider")) or UNKNOWN_PROVIDER).lower(),
            model=_optional_str(_field(row, "model")),
            raw_outcome=raw_outcome,
            http_status=_optional_int(_field(row, "http_status")),
            error_code=_optional_str(_field(row, "error_code")),
            latency_ms=_latency(_field(row, "latency_ms")),
            cost_usd=_cost(_field(row, "estimated_cost_usd")),
        )


@dataclass(frozen=True, slots=True)
class ActivityRow:
    user_id: str
    occurred_at: datetime
    tool: str = UNKNOWN_TOOL


@dataclass(frozen=True, slots=True)
class CostRow:
    occurred_at: datetime
    cost_usd: float
    tool: str = UNKNOWN_TOOL
    user_id: str | None = None


@dataclass(frozen=True, slots=True)
class EventFlags:
    is_success: bool
    is_rate_limit: bool
    is_quota: bool
    is_unauthorized: bool
    is_timeout: bool
    is_upstream_error: bool

    @property
    def is_error(self) -> bool:
        return not self.is_success


@dataclass(slots=True)
class ReliabilityCounter:
    sample_cap: int = 5000
    total: int = 0
    success: int = 0
    error: int = 0
    timeout: int = 0
    rate_limit: int = 0
    quota: int = 0
    unauthorized: int = 0
    upstream_error: int = 0
    latencies: list[float] = field(default_factory=list)

    def record(self, flags: EventFlags, latency_ms: float | None) -> None:
        self.total += 1
        if flags.is_success:
            self.success += 1
        else:
            self.error += 1
        if flags.is_timeout:
            self.timeout += 1
        if flags.is_rate_limit:
            self.rate_limit += 1
        if flags.is_quota:
            self.quota += 1
        if flags.is_unauthorized:
            self.unauthorized += 1
        if flags.is_upstream_error:
            self.upstream_error += 1
        if latency_ms is not None and len(self.latencies) < self.sample_cap:
            self.latencies.append(latency_ms)


@dataclass(slots=True)
class ToolAccumulator:
    reliability: ReliabilityCounter
    events: int = 0
    cost_usd: float = 0.0
    users: set[str] = field(default_factory=set)


@dataclass(slots=True)
class UserAccumulator:
    cost_usd: float = 0.0
    events: int = 0
    successes: int = 0
    latencies: list[float] = field(default_factory=list)


type DailyActiveIndex = dict[date, set[str]]
