from __future__ import annotations

from contextlib import asynccontextmanager

from fastapi import FastAPI

from kpis import __version__
from kpis.core.handlers import add_exception_handlers
from kpis.core.middleware import add_request_id_middleware
from kpis.db.session import close_db, init_db
from kpis.modules.health import api as health_api
from kpis.modules.kpis import api as kpis_api


@asynccontextmanager
async def lifespan(_: FastAPI):
    await init_db()
    try:
        yield
    finally:
        await close_db()


def create_app() -> FastAPI:
    app = FastAPI(
        title="admin-kpis",
        version=__version__,
        lifespan=lifespan,
        swagger_ui_parameters={"persistAuthorization": True},
    )

    add_request_id_middleware(app)
    add_exception_handlers(app)

    app.include_router(kpis_api.router)
    app.include_router(health_api.router)
    return app


app = create_app()
