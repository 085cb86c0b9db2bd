from __future__ import annotations

import uuid
from typing import Any, Protocol


class AuditSink(Protocol):
    """Append-only audit event store."""

    async def create(
        self,
        actor_id: uuid.UUID | None,
        actor_type: str,
        action: str,
        entity_type: str,
        entity_id: str,
        before: dict[str, Any] | None = None,
        after: dict[str, Any] | None = None,
        reason: str | None = None,
    ) -> Any:
        ...
