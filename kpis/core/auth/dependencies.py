from __future__ import annotations

from dataclasses import dataclass
from typing import NoReturn

from fastapi import Security
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from kpis.core.auth.tokens import AuthResolution, resolve_bearer_user
from kpis.core.exceptions import AppError, AuthError, AuthNotConfiguredError, ForbiddenError
from kpis.db.session import get_background_session

_bearer = HTTPBearer(description="Access token of an admin user", auto_error=False)

_DENIAL_ERRORS: dict[int, type[AppError]] = {
    401: AuthError,
    403: ForbiddenError,
    503: AuthNotConfiguredError,
}


@dataclass(frozen=True, slots=True)
class AdminPrincipal:
    user_id: str


def _raise_for(resolution: AuthResolution) -> NoReturn:
    error_cls = _DENIAL_ERRORS.get(resolution.status, AuthError)
    raise error_cls(resolution.error)


async def require_admin(
    credentials: HTTPAuthorizationCredentials | None = Security(_bearer),
) -> AdminPrincipal:
    token = credentials.credentials if credentials else None
    async with get_background_session() as session:
        resolution = await resolve_bearer_user(token, session)
    if not resolution.ok or resolution.user_id is None:
        _raise_for(resolution)
    if not resolution.is_admin:
        raise ForbiddenError("Forbidden")
    return AdminPrincipal(user_id=resolution.user_id)
