from __future__ import annotations

import hashlib
import logging
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from kpis.core.utils.time import to_utc_naive, utcnow
from kpis.modules.users.repository import UsersRepository

logger = logging.getLogger(__name__)

GUEST_TOKEN = "guest"


@dataclass(frozen=True, slots=True)
class AuthResolution:
    ok: bool
    status: int = 200
    error: str | None = None
    user_id: str | None = None
    is_admin: bool = False

    @classmethod
    def denied(cls, status: int, error: str) -> AuthResolution:
        return cls(ok=False, status=status, error=error)


def hash_token(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


async def resolve_bearer_user(
    token: str | None,
    session: AsyncSession,
    *,
    now: datetime | None = None,
) -> AuthResolution:
    """Resolve a raw bearer token to the user that owns it."""
    if not token or token.lower() == GUEST_TOKEN:
        return AuthResolution.denied(401, "Unauthorized")

    repo = UsersRepository(session)
    try:
        stored = await repo.get_access_token(hash_token(token))
        if stored is None or stored.revoked:
            return AuthResolution.denied(401, "Unauthorized")
        current = now or utcnow()
        if stored.expires_at is not None and to_utc_naive(stored.expires_at) <= current:
            return AuthResolution.denied(401, "Session expired")
        user = await repo.get_by_id(stored.user_id)
    except SQLAlchemyError:
        logger.warning("Access token lookup failed", exc_info=True)
        return AuthResolution.denied(503, "Server auth is not configured.")

    if user is None:
        return AuthResolution.denied(401, "Unauthorized")
    return AuthResolution(ok=True, user_id=user.id, is_admin=bool(user.is_admin))
