from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Protocol

from ..identity import Principal


class CorruptImpersonationRecord(Exception):
    """A stored record existed but could not be decoded."""


@dataclass(frozen=True)
class ImpersonationRecord:
    actor_id: uuid.UUID
    target_id: uuid.UUID
    started_at: datetime


class ImpersonationStore(Protocol):
    async def create_if_absent(
        self, session_id: str, record: ImpersonationRecord, ttl_seconds: int
    ) -> bool:
        """Persist the record unless one exists; False means one already exists."""
        ...

    async def get(self, session_id: str) -> ImpersonationRecord | None:
        ...

    async def delete(self, session_id: str) -> ImpersonationRecord | None:
        """
        Remove and return the record, or None if there was none.

        Raises:
            CorruptImpersonationRecord: If a record was removed but could not be decoded
        """
        ...


class IdentityOverlay(Protocol):
    """Transport-side overlay of the identity used for authorization."""

    async def set_overlay(self, session_id: str, identity: Principal) -> None:
        ...

    async def clear_overlay(self, session_id: str) -> None:
        ...
