from __future__ import annotations

import math
import random

import pytest

from kpis.core.analytics.stats import median, percentile, rate_or_zero, safe_ratio

pytestmark = pytest.mark.unit


def test_percentile_empty_is_none():
    for p in (0.0, 0.5, 0.95, 1.0):
        assert percentile([], p) is None


def test_percentile_interpolates_linearly():
    values = [10, 20, 30, 40]
    assert percentile(values, 0.5) == pytest.approx(25.0)
    assert percentile(values, 0.95) == pytest.approx(38.5)
    assert median([5, 1, 3]) == 3


def test_percentile_ignores_non_finite_values():
    assert percentile([1.0, math.nan, 3.0, math.inf], 1.0) == 3.0
    assert percentile([math.nan], 0.5) is None


def test_percentile_bounds_and_monotonicity():
    rng = random.Random(1234)
    for _ in range(200):
        values = [rng.uniform(-1000, 1000) for _ in range(rng.randint(1, 40))]
        assert percentile(values, 0) == min(values)
        assert percentile(values, 1) == max(values)

        steps = [i / 20 for i in range(21)]
        results = [percentile(sorted(values), p) for p in steps]
        assert all(a <= b for a, b in zip(results, results[1:]))


def test_percentile_clamps_p():
    assert percentile([1, 2, 3], -1) == 1
    assert percentile([1, 2, 3], 2) == 3


def test_ratios():
    assert safe_ratio(3, 0) is None
    assert safe_ratio(1, 4) == 0.25
    assert rate_or_zero(3, 0) == 0.0
