from __future__ import annotations

from fastapi import APIRouter, Depends, Query

from kpis.core.auth.dependencies import AdminPrincipal, require_admin
from kpis.dependencies import KpisContext, get_kpis_context
from kpis.modules.kpis.schemas import KpisResponse

router = APIRouter(prefix="/api/admin", tags=["admin"])


@router.get("/kpis", response_model=KpisResponse)
async def get_kpis(
    # Kept as raw text: unsupported values fall back to the default window instead of a 422.
    days: str | None = Query(default=None),
    _principal: AdminPrincipal = Depends(require_admin),
    context: KpisContext = Depends(get_kpis_context),
) -> KpisResponse:
    return await context.service.build_report(days)
