from __future__ import annotations

from sqlalchemy.ext.asyncio import AsyncSession

from kpis.db.models import AccessToken, User


class UsersRepository:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get_by_id(self, user_id: str) -> User | None:
        return await self._session.get(User, user_id)

    async def get_access_token(self, token_hash: str) -> AccessToken | None:
        return await self._session.get(AccessToken, token_hash)
