from datetime import datetime

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..models.auth_session import AuthSession


async def get_auth_session_by_hash(
    session: AsyncSession, token_hash: str
) -> AuthSession | None:
    result = await session.execute(
        select(AuthSession).where(AuthSession.token_hash == token_hash)
    )
    return result.scalars().first()


class AuthSessionRepository:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get_active(self, token_hash: str, now: datetime) -> AuthSession | None:
        auth_session = await get_auth_session_by_hash(self._session, token_hash)
        if auth_session is None or auth_session.revoked:
            return None
        if auth_session.expires_at <= now:
            return None
        return auth_session
