from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import datetime

from kpis.core.analytics.window import ReportWindow
from kpis.core.utils.request_id import current_request_id

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class ReportContext:
    """Everything one report request shares; discarded with the request."""

    now: datetime
    window: ReportWindow
    section_timeout_seconds: float
    warnings: list[str] = field(default_factory=list)
    degraded_sections: list[str] = field(default_factory=list)

    def warn(self, section: str, reason: str) -> None:
        self.degraded_sections.append(section)
        self.warnings.append(f"{section}: {reason}")


async def run_section[T](
    ctx: ReportContext,
    name: str,
    compute: Callable[[], Awaitable[T]],
    default: T,
    *,
    timeout_seconds: float | None = None,
) -> T:
    """Run one secondary metric; any failure degrades it to ``default``."""
    timeout = timeout_seconds if timeout_seconds is not None else ctx.section_timeout_seconds
    try:
        return await asyncio.wait_for(compute(), timeout=timeout)
    except TimeoutError:
        logger.warning(
            "Report section timed out section=%s timeout=%.1fs request_id=%s",
            name,
            timeout,
            current_request_id(),
        )
        ctx.warn(name, f"timed out after {timeout:g}s")
    except Exception as exc:
        logger.warning(
            "Report section failed section=%s request_id=%s error=%s",
            name,
            current_request_id(),
            exc,
            exc_info=True,
        )
        ctx.warn(name, str(exc) or exc.__class__.__name__)
    return default
