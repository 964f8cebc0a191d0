from __future__ import annotations

from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator

import anyio
from sqlalchemy.engine import URL, make_url
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from kpis.core.config.settings import Settings, get_settings

SQLITE_BUSY_TIMEOUT_SECONDS = 30


def build_engine(settings: Settings) -> AsyncEngine:
    url = make_url(settings.database_url)
    connect_args: dict[str, object] = {}
    if url.get_backend_name() == "sqlite":
        # Concurrent fan-out scans open several connections against one file.
        connect_args["timeout"] = SQLITE_BUSY_TIMEOUT_SECONDS
    return create_async_engine(
        url,
        echo=settings.database_echo,
        pool_pre_ping=url.get_backend_name() != "sqlite",
        connect_args=connect_args,
    )


engine = build_engine(get_settings())
SessionLocal = async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)


def _sqlite_file(database_url: str | URL) -> Path | None:
    url = make_url(database_url)
    if url.get_backend_name() != "sqlite" or not url.database or url.database == ":memory:":
        return None
    return Path(url.database).expanduser()


async def get_session() -> AsyncIterator[AsyncSession]:
    async with SessionLocal() as session:
        yield session


@asynccontextmanager
async def get_background_session() -> AsyncIterator[AsyncSession]:
    """Independent session for work that must not share the request session.

    Report scans only read, so nothing is ever committed here. Sections run
    under a timeout, so closing is shielded from the cancellation that ends them.
    """
    session = SessionLocal()
    try:
        yield session
    finally:
        with anyio.CancelScope(shield=True):
            await session.close()


async def init_db() -> None:
    from kpis.db.models import Base

    path = _sqlite_file(engine.url)
    if path is not None:
        path.parent.mkdir(parents=True, exist_ok=True)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def close_db() -> None:
    await engine.dispose()
