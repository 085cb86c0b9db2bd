import uuid
from datetime import datetime

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from ..auth.roles import Role
from ..domain.identity import Principal
from ..errors import ConflictError, NotFoundError
from ..models.membership import Membership
from ..models.user import User


class UserRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def _membership(self, user_id: uuid.UUID) -> Membership | None:
        result = await self.session.execute(
            select(Membership)
            .where(Membership.user_id == user_id)
            .order_by(Membership.created_at)
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def _get_user(self, user_id: uuid.UUID) -> User:
        user = await self.session.get(User, user_id)
        if user is None:
            raise NotFoundError("User not found")
        return user

    async def get_principal(self, user_id: uuid.UUID) -> Principal | None:
        user = await self.session.get(User, user_id)
        if user is None:
            return None
        membership = await self._membership(user_id)
        return user.to_principal(membership.organization_id if membership else None)

    async def create_user(
        self,
        email: str,
        name: str,
        role: Role,
        organization_id: uuid.UUID,
    ) -> Principal:
        user = User(email=email, name=name, role=role.value)
        self.session.add(user)
        try:
            await self.session.flush()
            self.session.add(
                Membership(user_id=user.id, organization_id=organization_id, role=role.value)
            )
            await self.session.commit()
        except IntegrityError as exc:
            await self.session.rollback()
            raise ConflictError("A user with this email already exists") from exc
        await self.session.refresh(user)
        return user.to_principal(organization_id)

    async def set_role(self, user_id: uuid.UUID, role: Role) -> Principal:
        user = await self._get_user(user_id)
        membership = await self._membership(user_id)
        user.role = role.value
        if membership is not None:
            membership.role = role.value
        await self.session.commit()
        await self.session.refresh(user)
        return user.to_principal(membership.organization_id if membership else None)

    async def set_ban(
        self,
        user_id: uuid.UUID,
        *,
        banned: bool,
        reason: str | None = None,
        expires_at: datetime | None = None,
    ) -> Principal:
        user = await self._get_user(user_id)
        user.banned = banned
        user.ban_reason = reason if banned else None
        user.ban_expires = expires_at if banned else None
        await self.session.commit()
        await self.session.refresh(user)
        membership = await self._membership(user_id)
        return user.to_principal(membership.organization_id if membership else None)
