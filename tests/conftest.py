from __future__ import annotations

import os
import tempfile
from pathlib import Path

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

TEST_DB_DIR = Path(tempfile.mkdtemp(prefix="admin-kpis-tests-"))
TEST_DB_PATH = TEST_DB_DIR / "admin-kpis.db"

os.environ["KPIS_DATABASE_URL"] = os.environ.get("KPIS_TEST_DATABASE_URL", f"sqlite+aiosqlite:///{TEST_DB_PATH}")

from kpis.db.models import Base  # noqa: E402
from kpis.db.session import engine  # noqa: E402
from kpis.main import create_app  # noqa: E402


async def _reset_schema() -> None:
    async with engine.begin() as conn:

        def _reset(sync_conn):
            Base.metadata.drop_all(sync_conn)
            Base.metadata.create_all(sync_conn)

        await conn.run_sync(_reset)


@pytest_asyncio.fixture
async def app_instance():
    app = create_app()
    await _reset_schema()
    return app


@pytest_asyncio.fixture(scope="session", autouse=True)
async def dispose_engine():
    yield
    await engine.dispose()


@pytest_asyncio.fixture
async def db_setup():
    await _reset_schema()
    return True


@pytest_asyncio.fixture
async def async_client(app_instance):
    async with app_instance.router.lifespan_context(app_instance):
        transport = ASGITransport(app=app_instance)
        async with AsyncClient(transport=transport, base_url="http://testserver") as client:
            yield client


@pytest.fixture(autouse=True)
def _clear_settings_cache():
    from kpis.core.config.settings import get_settings

    get_settings.cache_clear()
    yield
    get_settings.cache_clear()
