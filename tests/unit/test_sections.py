from __future__ import annotations

import asyncio
import logging
from datetime import datetime

import pytest

from kpis.core.analytics.sections import ReportContext, run_section
from kpis.core.analytics.window import resolve_window

pytestmark = pytest.mark.unit

NOW = datetime(2026, 3, 10, 12, 0, 0)


def _context(timeout: float = 1.0) -> ReportContext:
    return ReportContext(now=NOW, window=resolve_window(7, now=NOW), section_timeout_seconds=timeout)


@pytest.mark.asyncio
async def test_successful_section_returns_value():
    ctx = _context()

    async def compute() -> int:
        return 42

    assert await run_section(ctx, "answer", compute, 0) == 42
    assert ctx.warnings == []


@pytest.mark.asyncio
async def test_failing_section_returns_default_and_warns(caplog):
    ctx = _context()

    async def compute() -> list[int]:
        raise RuntimeError("cohort lookup failed")

    with caplog.at_level(logging.WARNING):
        result = await run_section(ctx, "retention", compute, [])

    assert result == []
    assert ctx.warnings == ["retention: cohort lookup failed"]
    assert ctx.degraded_sections == ["retention"]
    assert "section=retention" in caplog.text


@pytest.mark.asyncio
async def test_slow_section_times_out():
    ctx = _context(timeout=0.05)

    async def compute() -> int:
        await asyncio.sleep(5)
        return 1

    assert await run_section(ctx, "activity_trends", compute, -1) == -1
    assert ctx.warnings == ["activity_trends: timed out after 0.05s"]


@pytest.mark.asyncio
async def test_sections_fail_independently():
    ctx = _context()

    async def broken() -> int:
        raise ValueError()

    async def fine() -> int:
        return 3

    assert await run_section(ctx, "a", broken, 0) == 0
    assert await run_section(ctx, "b", fine, 0) == 3
    assert ctx.warnings == ["a: ValueError"]
