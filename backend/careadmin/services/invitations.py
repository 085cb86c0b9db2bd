import logging
import uuid
from collections.abc import Callable
from datetime import datetime, timedelta, timezone

from ..auth.permissions import can_assign_to_organization, require
from ..auth.roles import Role, validate_role_for_organization
from ..domain.identity import OrganizationRef, Principal
from ..domain.ports.invitation import (
    InvitationNotifier,
    InvitationRecord,
    InvitationRepository,
    InvitationStatus,
)
from ..domain.ports.membership import OrganizationAdminCheck
from ..errors import NotFoundError, Unauthorized, ValidationError
from .audit import AuditService

logger = logging.getLogger("careadmin.invitations")

Clock = Callable[[], datetime]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _normalize_email(email: str) -> str:
    normalized = email.strip().lower()
    local, _, domain = normalized.partition("@")
    if not local or not domain or "@" in domain:
        raise ValidationError("Invalid email address", details={"email": email})
    return normalized


class InvitationLifecycle:
    """Pending -> {Accepted, Cancelled, Expired}. Terminal states never move."""

    def __init__(
        self,
        repository: InvitationRepository,
        admin_check: OrganizationAdminCheck,
        notifier: InvitationNotifier,
        audit: AuditService,
        *,
        ttl_days: int = 7,
        clock: Clock = _utcnow,
    ) -> None:
        if ttl_days <= 0:
            raise ValueError("ttl_days must be greater than 0")
        self._repository = repository
        self._admin_check = admin_check
        self._notifier = notifier
        self._audit = audit
        self._ttl = timedelta(days=ttl_days)
        self._clock = clock

    async def create(
        self,
        actor: Principal,
        organization: OrganizationRef,
        email: str,
        role: Role,
    ) -> InvitationRecord:
        """
        Invite an email address into an organization with the given role.

        The invitation is persisted before notification; a failed
        notification is logged and leaves the invitation Pending.

        Raises:
            Unauthorized: If the actor cannot assign users to the organization
            ValidationError: If the organization is inactive or email is malformed
            InvalidRoleForOrganization: If the role does not fit the organization type
        """
        require(
            can_assign_to_organization(actor.role, organization.type),
            action="invite",
            actor=actor.role,
            target=organization.type,
        )
        if not organization.active:
            raise ValidationError(
                "Cannot invite into an inactive organization",
                details={"organization_id": str(organization.id)},
            )
        validate_role_for_organization(role, organization.type)

        now = self._clock()
        invitation = await self._repository.add(
            InvitationRecord(
                id=uuid.uuid4(),
                organization_id=organization.id,
                email=_normalize_email(email),
                role=role,
                status=InvitationStatus.PENDING,
                invited_by=actor.audit_id,
                created_at=now,
                expires_at=now + self._ttl,
            )
        )
        await self._audit.log_invitation_created(
            actor.audit_id, invitation.id, organization.id, role.value
        )
        logger.info(
            "Invitation created invitation_id=%s organization_id=%s role=%s invited_by=%s",
            invitation.id,
            organization.id,
            role.value,
            actor.id,
        )

        try:
            await self._notifier.send_invitation(invitation, organization)
        except Exception:
            logger.exception(
                "Invitation notification failed invitation_id=%s organization_id=%s",
                invitation.id,
                organization.id,
            )
        return invitation

    async def _authorize_organization_admin(
        self, actor: Principal, organization_id: uuid.UUID, action: str
    ) -> bool:
        """Returns True if the system admin bypass applied."""
        if actor.role is Role.SYSTEM_ADMIN:
            return True
        if not await self._admin_check.is_organization_admin(actor.id, organization_id):
            raise Unauthorized(
                details={
                    "action": action,
                    "actor_role": actor.role.value,
                    "organization_id": str(organization_id),
                }
            )
        return False

    async def cancel(self, actor: Principal, invitation_id: uuid.UUID) -> InvitationRecord:
        """
        Cancel a pending invitation.

        Cancelling an invitation that is no longer pending is a successful
        no-op: the record is returned unchanged and nothing is audited.

        Raises:
            NotFoundError: If the invitation does not exist
            Unauthorized: If the actor is not an admin of the organization
        """
        invitation = await self._repository.get(invitation_id)
        if invitation is None:
            raise NotFoundError("Invitation not found")

        bypassed = await self._authorize_organization_admin(
            actor, invitation.organization_id, "cancel_invitation"
        )

        if invitation.status is not InvitationStatus.PENDING:
            logger.info(
                "Invitation cancel ignored invitation_id=%s status=%s",
                invitation.id,
                invitation.status.value,
            )
            return invitation

        cancelled = await self._repository.transition(
            invitation.id,
            expected=InvitationStatus.PENDING,
            new_status=InvitationStatus.CANCELLED,
        )
        if cancelled is None:
            # Lost the race to another terminal transition
            current = await self._repository.get(invitation.id)
            return current or invitation

        await self._audit.log_invitation_cancelled(actor.audit_id, cancelled.id, bypassed)
        logger.info(
            "Invitation cancelled invitation_id=%s actor_id=%s bypass=%s",
            cancelled.id,
            actor.id,
            bypassed,
        )
        return cancelled

    async def accept(self, invitation_id: uuid.UUID) -> InvitationRecord:
        """
        Mark a pending invitation accepted.

        Raises:
            NotFoundError: If the invitation does not exist
            ValidationError: If it is no longer pending or has expired
        """
        invitation = await self._repository.get(invitation_id)
        if invitation is None:
            raise NotFoundError("Invitation not found")
        if invitation.status is not InvitationStatus.PENDING:
            raise ValidationError(
                "Invitation is no longer pending",
                details={"status": invitation.status.value},
            )
        if invitation.expires_at <= self._clock():
            await self._repository.transition(
                invitation.id,
                expected=InvitationStatus.PENDING,
                new_status=InvitationStatus.EXPIRED,
            )
            raise ValidationError("Invitation has expired", details={"status": "expired"})

        accepted = await self._repository.transition(
            invitation.id,
            expected=InvitationStatus.PENDING,
            new_status=InvitationStatus.ACCEPTED,
        )
        if accepted is None:
            raise ValidationError("Invitation is no longer pending")
        logger.info("Invitation accepted invitation_id=%s", accepted.id)
        return accepted

    async def expire_stale(self, now: datetime | None = None) -> int:
        """Move pending invitations past their expiry to Expired."""
        now = now or self._clock()
        expired = 0
        for invitation in await self._repository.list_pending_expired(now):
            moved = await self._repository.transition(
                invitation.id,
                expected=InvitationStatus.PENDING,
                new_status=InvitationStatus.EXPIRED,
            )
            if moved is not None:
                expired += 1
        if expired:
            logger.info("Expired stale invitations count=%d", expired)
        return expired

    async def list_for_organization(
        self, actor: Principal, organization_id: uuid.UUID
    ) -> list[InvitationRecord]:
        await self._authorize_organization_admin(actor, organization_id, "list_invitations")
        return await self._repository.list_for_organization(organization_id)
