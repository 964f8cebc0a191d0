from __future__ import annotations

from collections.abc import Sequence
from datetime import datetime

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from kpis.core.analytics.types import UNKNOWN_TOOL, ActivityRow, CostRow, UsageEventRecord, UserRecord
from kpis.core.utils.batching import DEFAULT_PAGE_SIZE, DEFAULT_ROW_CAP, paginate
from kpis.db.models import UsageEvent, User


class KpisRepository:
    def __init__(
        self,
        session: AsyncSession,
        *,
        page_size: int = DEFAULT_PAGE_SIZE,
        row_cap: int = DEFAULT_ROW_CAP,
    ) -> None:
        self._session = session
        self._page_size = page_size
        self._row_cap = row_cap

    @property
    def row_cap(self) -> int:
        return self._row_cap

    async def scan_events_since(self, since: datetime) -> list[UsageEventRecord]:
        stmt = (
            select(UsageEvent)
            .where(UsageEvent.occurred_at >= since)
            .order_by(UsageEvent.occurred_at.desc(), UsageEvent.id.desc())
        )
        rows = await self._scan(stmt, scalars=True)
        return [record for record in map(UsageEventRecord.from_row, rows) if record is not None]

    async def scan_event_activity(self, since: datetime) -> list[ActivityRow]:
        stmt = (
            select(UsageEvent.user_id, UsageEvent.tool, UsageEvent.occurred_at)
            .where(UsageEvent.occurred_at >= since)
            .where(UsageEvent.user_id.is_not(None))
            .order_by(UsageEvent.occurred_at.desc(), UsageEvent.id.desc())
        )
        rows = await self._scan(stmt)
        return [_activity_row(row) for row in rows]

    async def distinct_active_user_ids(self, since: datetime) -> set[str]:
        stmt = (
            select(UsageEvent.user_id)
            .where(UsageEvent.occurred_at >= since)
            .where(UsageEvent.user_id.is_not(None))
            .distinct()
            .order_by(UsageEvent.user_id.asc())
        )
        rows = await self._scan(stmt, scalars=True)
        return {str(user_id) for user_id in rows}

    async def scan_event_costs(self, since: datetime) -> list[CostRow]:
        stmt = (
            select(UsageEvent.user_id, UsageEvent.tool, UsageEvent.estimated_cost_usd, UsageEvent.occurred_at)
            .where(UsageEvent.occurred_at >= since)
            .order_by(UsageEvent.occurred_at.desc(), UsageEvent.id.desc())
        )
        rows = await self._scan(stmt)
        costs: list[CostRow] = []
        for row in rows:
            record = UsageEventRecord.from_row(row._mapping)
            if record is None:
                continue
            costs.append(
                CostRow(
                    occurred_at=record.occurred_at,
                    cost_usd=record.cost_usd,
                    tool=record.tool,
                    user_id=record.user_id,
                )
            )
        return costs

    async def list_users_created_between(self, start: datetime, end: datetime | None = None) -> list[UserRecord]:
        stmt = select(User).where(User.created_at >= start)
        if end is not None:
            stmt = stmt.where(User.created_at <= end)
        stmt = stmt.order_by(User.created_at.asc(), User.id.asc())
        rows = await self._scan(stmt, scalars=True)
        return [record for record in map(UserRecord.from_row, rows) if record is not None]

    async def events_for_users(
        self,
        user_ids: Sequence[str],
        since: datetime,
        *,
        tools: Sequence[str] | None = None,
    ) -> list[ActivityRow]:
        if not user_ids:
            return []
        stmt = (
            select(UsageEvent.user_id, UsageEvent.tool, UsageEvent.occurred_at)
            .where(UsageEvent.user_id.in_(list(user_ids)))
            .where(UsageEvent.occurred_at >= since)
        )
        if tools is not None:
            stmt = stmt.where(UsageEvent.tool.in_(list(tools)))
        stmt = stmt.order_by(UsageEvent.occurred_at.asc(), UsageEvent.id.asc())
        rows = await self._scan(stmt)
        return [_activity_row(row) for row in rows]

    async def users_by_ids(self, user_ids: Sequence[str]) -> list[UserRecord]:
        if not user_ids:
            return []
        result = await self._session.execute(select(User).where(User.id.in_(list(user_ids))))
        return [record for record in map(UserRecord.from_row, result.scalars().all()) if record is not None]

    async def count_users(self) -> int:
        result = await self._session.execute(select(func.count(User.id)))
        return int(result.scalar_one())

    async def count_users_by_membership(self) -> dict[str, int]:
        membership = func.coalesce(User.membership, "unknown")
        result = await self._session.execute(
            select(membership.label("membership"), func.count(User.id)).group_by(membership)
        )
        return {str(row[0]): int(row[1]) for row in result.all()}

    async def count_founding_members(self) -> int:
        result = await self._session.execute(
            select(func.count(User.id)).where(User.founding_circle_member.is_(True))
        )
        return int(result.scalar_one())

    async def _scan(self, stmt, *, scalars: bool = False) -> list:
        async def _page(offset: int, limit: int) -> list:
            result = await self._session.execute(stmt.offset(offset).limit(limit))
            if scalars:
                return list(result.scalars().all())
            return list(result.all())

        return await paginate(_page, page_size=self._page_size, row_cap=self._row_cap)


def _activity_row(row) -> ActivityRow:
    return ActivityRow(
        user_id=str(row.user_id),
        occurred_at=row.occurred_at,
        tool=row.tool or UNKNOWN_TOOL,
    )
