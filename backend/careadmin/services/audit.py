import uuid
from datetime import datetime
from typing import Any

from ..domain.ports.audit import AuditSink

ALLOWED_ACTOR_TYPES = frozenset({"user", "system"})


class AuditService:
    """Service for emitting audit events.

    Events are appended through the injected sink; this service never reads
    or rewrites history.
    """

    def __init__(self, sink: AuditSink):
        self.sink = sink

    def _validate_actor_type(self, actor_type: str) -> None:
        if actor_type not in ALLOWED_ACTOR_TYPES:
            raise ValueError(
                f"Invalid actor_type '{actor_type}'. "
                f"Must be one of: {', '.join(sorted(ALLOWED_ACTOR_TYPES))}"
            )

    async def log(
        self,
        action: str,
        entity_type: str,
        entity_id: str | uuid.UUID,
        actor_id: uuid.UUID | None = None,
        actor_type: str = "user",
        before: dict[str, Any] | None = None,
        after: dict[str, Any] | None = None,
        reason: str | None = None,
    ):
        """Log an audit event.

        Args:
            action: The action performed (e.g., 'impersonation_start')
            entity_type: The type of entity acted on (e.g., 'user')
            entity_id: The ID of the entity
            actor_id: The real, authenticated actor (None for system)
            actor_type: 'user' or 'system'
            before: State before the change
            after: State after the change
            reason: Optional reason for the change

        Raises:
            ValueError: If actor_type is invalid
        """
        self._validate_actor_type(actor_type)

        return await self.sink.create(
            actor_id=actor_id,
            actor_type=actor_type,
            action=action,
            entity_type=entity_type,
            entity_id=str(entity_id),
            before=before,
            after=after,
            reason=reason,
        )

    async def log_impersonation_start(
        self,
        actor_id: uuid.UUID,
        target_id: uuid.UUID,
        timestamp: datetime,
    ) -> None:
        await self.log(
            action="impersonation_start",
            entity_type="user",
            entity_id=target_id,
            actor_id=actor_id,
            after={
                "actor": str(actor_id),
                "target": str(target_id),
                "timestamp": timestamp.isoformat(),
            },
        )

    async def log_impersonation_stop(
        self,
        actor_id: uuid.UUID,
        previous_target_id: uuid.UUID,
        timestamp: datetime,
    ) -> None:
        await self.log(
            action="impersonation_stop",
            entity_type="user",
            entity_id=previous_target_id,
            actor_id=actor_id,
            before={"previous_target": str(previous_target_id)},
            after={
                "actor": str(actor_id),
                "previous_target": str(previous_target_id),
                "timestamp": timestamp.isoformat(),
            },
        )

    async def log_ban(
        self,
        actor_id: uuid.UUID,
        target_id: uuid.UUID,
        reason: str | None = None,
        expires_at: datetime | None = None,
    ) -> None:
        """Log a user ban."""
        await self.log(
            action="user.ban",
            entity_type="user",
            entity_id=target_id,
            actor_id=actor_id,
            before={"banned": False},
            after={
                "banned": True,
                "ban_expires": expires_at.isoformat() if expires_at else None,
            },
            reason=reason,
        )

    async def log_unban(self, actor_id: uuid.UUID, target_id: uuid.UUID) -> None:
        """Log a user unban."""
        await self.log(
            action="user.unban",
            entity_type="user",
            entity_id=target_id,
            actor_id=actor_id,
            before={"banned": True},
            after={"banned": False},
        )

    async def log_role_change(
        self,
        actor_id: uuid.UUID,
        target_id: uuid.UUID,
        old_role: str,
        new_role: str,
    ) -> None:
        """Log a role change."""
        await self.log(
            action="user.role_change",
            entity_type="user",
            entity_id=target_id,
            actor_id=actor_id,
            before={"role": old_role},
            after={"role": new_role},
        )

    async def log_invitation_created(
        self,
        actor_id: uuid.UUID,
        invitation_id: uuid.UUID,
        organization_id: uuid.UUID,
        role: str,
    ) -> None:
        await self.log(
            action="invitation.create",
            entity_type="invitation",
            entity_id=invitation_id,
            actor_id=actor_id,
            after={"organization_id": str(organization_id), "role": role, "status": "pending"},
        )

    async def log_invitation_cancelled(
        self,
        actor_id: uuid.UUID,
        invitation_id: uuid.UUID,
        bypassed_membership_check: bool,
    ) -> None:
        await self.log(
            action="invitation.cancel",
            entity_type="invitation",
            entity_id=invitation_id,
            actor_id=actor_id,
            before={"status": "pending"},
            after={"status": "cancelled"},
            reason="system_admin_bypass" if bypassed_membership_check else None,
        )
