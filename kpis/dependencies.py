from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from kpis.core.config.settings import Settings, get_settings
from kpis.db.session import get_background_session, get_session
from kpis.modules.kpis.repository import KpisRepository
from kpis.modules.kpis.service import KpisService, RepositoryScope


@dataclass(slots=True)
class KpisContext:
    service: KpisService


def _repository(session: AsyncSession, settings: Settings) -> KpisRepository:
    return KpisRepository(session, page_size=settings.scan_page_size, row_cap=settings.scan_row_cap)


def build_repository_scope(settings: Settings) -> RepositoryScope:
    @asynccontextmanager
    async def scope() -> AsyncIterator[KpisRepository]:
        async with get_background_session() as session:
            yield _repository(session, settings)

    return scope


def get_kpis_context(
    session: AsyncSession = Depends(get_session),
    settings: Settings = Depends(get_settings),
) -> KpisContext:
    service = KpisService(_repository(session, settings), build_repository_scope(settings), settings)
    return KpisContext(service=service)
