from __future__ import annotations

import math
from collections.abc import Iterable


def percentile(values: Iterable[float], p: float) -> float | None:
    """Linear-interpolated percentile at rank ``(n - 1) * p``; None when empty."""
    ordered = sorted(v for v in values if v is not None and math.isfinite(v))
    if not ordered:
        return None
    p = min(1.0, max(0.0, p))
    index = (len(ordered) - 1) * p
    lower = math.floor(index)
    upper = math.ceil(index)
    if lower == upper:
        return float(ordered[lower])
    low, high = ordered[lower], ordered[upper]
    value = low + (high - low) * (index - lower)
    # Float rounding must not step outside the bracketing ranks.
    return float(min(max(value, low), high))


def median(values: Iterable[float]) -> float | None:
    return percentile(values, 0.5)


def safe_ratio(numerator: float, denominator: float) -> float | None:
    if not denominator:
        return None
    return numerator / denominator


def rate_or_zero(numerator: float, denominator: float) -> float:
    return numerator / denominator if denominator else 0.0


def round_or_none(value: float | None, digits: int = 4) -> float | None:
    if value is None:
        return None
    return round(value, digits)
