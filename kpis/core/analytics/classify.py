from __future__ import annotations

from kpis.core.analytics.types import SUCCESS_OUTCOMES, EventFlags, Outcome, UsageEventRecord

RATE_LIMIT_CODES = frozenset({"RATE_LIMITED"})
QUOTA_CODES = frozenset({"QUOTA_EXCEEDED", "USAGE_LIMIT_REACHED"})
UNAUTHORIZED_CODES = frozenset({"UNAUTHORIZED"})
TIMEOUT_CODES = frozenset({"TIMEOUT"})

RATE_LIMIT_STATUSES = frozenset({429})
UNAUTHORIZED_STATUSES = frozenset({401, 403})
TIMEOUT_STATUSES = frozenset({408, 504})


def classify_event(event: UsageEventRecord) -> EventFlags:
    """Map one event onto independent outcome facets.

    Facets are not mutually exclusive: a 429 that ended in ``ERROR_UPSTREAM``
    is both rate-limited and an error. Only success/error partition events.
    """
    outcome = event.outcome
    status = event.http_status
    code = (event.error_code or "").upper()

    is_success = outcome in SUCCESS_OUTCOMES
    return EventFlags(
        is_success=is_success,
        is_rate_limit=(
            outcome is Outcome.BLOCKED_RATE_LIMIT or status in RATE_LIMIT_STATUSES or code in RATE_LIMIT_CODES
        ),
        is_quota=outcome is Outcome.BLOCKED_QUOTA or code in QUOTA_CODES,
        is_unauthorized=(
            outcome is Outcome.UNAUTHORIZED or status in UNAUTHORIZED_STATUSES or code in UNAUTHORIZED_CODES
        ),
        is_timeout=code in TIMEOUT_CODES or status in TIMEOUT_STATUSES,
        is_upstream_error=not is_success and outcome is Outcome.ERROR_UPSTREAM,
    )
