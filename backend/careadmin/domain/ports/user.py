from __future__ import annotations

import uuid
from datetime import datetime
from typing import Protocol

from ...auth.roles import Role
from ..identity import Principal


class UserDirectory(Protocol):
    async def get_principal(self, user_id: uuid.UUID) -> Principal | None:
        ...

    async def create_user(
        self,
        email: str,
        name: str,
        role: Role,
        organization_id: uuid.UUID,
    ) -> Principal:
        ...

    async def set_role(self, user_id: uuid.UUID, role: Role) -> Principal:
        ...

    async def set_ban(
        self,
        user_id: uuid.UUID,
        *,
        banned: bool,
        reason: str | None = None,
        expires_at: datetime | None = None,
    ) -> Principal:
        ...
