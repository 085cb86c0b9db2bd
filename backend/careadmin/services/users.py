import logging
import uuid
from datetime import datetime

from ..auth.permissions import (
    can_assign_to_organization,
    can_ban,
    can_create_role,
    can_edit,
    can_view,
    require,
)
from ..auth.roles import Role, validate_role_for_organization
from ..auth.scope import OrganizationScopeFilter
from ..domain.identity import OrganizationRef, Principal
from ..domain.ports.user import UserDirectory
from ..errors import NotFoundError, ValidationError
from .audit import AuditService

logger = logging.getLogger("careadmin.users")


class UserAdministration:
    """User management actions gated by scope first, then permission."""

    def __init__(
        self,
        directory: UserDirectory,
        scope: OrganizationScopeFilter,
        audit: AuditService,
    ) -> None:
        self._directory = directory
        self._scope = scope
        self._audit = audit

    async def _load_visible(self, actor: Principal, user_id: uuid.UUID) -> Principal:
        # Users outside the actor's scope are reported as missing
        target = await self._directory.get_principal(user_id)
        if target is None:
            raise NotFoundError("User not found")
        visible = await self._scope.accessible_users(actor)
        if not visible(target):
            raise NotFoundError("User not found")
        return target

    async def _organization_of(self, target: Principal) -> OrganizationRef:
        if target.organization_id is None:
            raise ValidationError(
                "User has no organization membership", details={"user_id": str(target.id)}
            )
        organization = await self._scope.get_organization(target.organization_id)
        if organization is None:
            raise NotFoundError("Organization not found")
        return organization

    async def get_user(self, actor: Principal, user_id: uuid.UUID) -> Principal:
        target = await self._load_visible(actor, user_id)
        require(can_view(actor.role, target.role), action="view_user", actor=actor.role, target=target.role)
        return target

    async def create_user(
        self,
        actor: Principal,
        organization: OrganizationRef,
        email: str,
        name: str,
        role: Role,
    ) -> Principal:
        """
        Create a user directly inside an organization.

        Raises:
            Unauthorized: If the actor may not create the role or assign into the organization
            NotFoundError: If the organization is outside the actor's scope
            InvalidRoleForOrganization: If the role does not fit the organization type
        """
        require(can_create_role(actor.role, role), action="create_user", actor=actor.role, target=role)
        require(
            can_assign_to_organization(actor.role, organization.type),
            action="assign_to_organization",
            actor=actor.role,
            target=organization.type,
        )
        if not await self._scope.can_access_organization(actor, organization):
            raise NotFoundError("Organization not found")
        validate_role_for_organization(role, organization.type)

        user = await self._directory.create_user(
            email=email.strip().lower(),
            name=name.strip(),
            role=role,
            organization_id=organization.id,
        )
        await self._audit.log(
            action="user.create",
            entity_type="user",
            entity_id=user.id,
            actor_id=actor.audit_id,
            after={"role": role.value, "organization_id": str(organization.id)},
        )
        logger.info(
            "User created user_id=%s role=%s organization_id=%s actor_id=%s",
            user.id,
            role.value,
            organization.id,
            actor.id,
        )
        return user

    async def change_role(
        self, actor: Principal, user_id: uuid.UUID, new_role: Role
    ) -> Principal:
        target = await self._load_visible(actor, user_id)
        require(can_edit(actor.role, target.role), action="edit_user", actor=actor.role, target=target.role)
        require(
            can_create_role(actor.role, new_role),
            action="assign_role",
            actor=actor.role,
            target=new_role,
        )
        organization = await self._organization_of(target)
        validate_role_for_organization(new_role, organization.type)

        if target.role is new_role:
            return target

        updated = await self._directory.set_role(target.id, new_role)
        await self._audit.log_role_change(actor.audit_id, target.id, target.role.value, new_role.value)
        logger.info(
            "User role changed user_id=%s from=%s to=%s actor_id=%s",
            target.id,
            target.role.value,
            new_role.value,
            actor.id,
        )
        return updated

    async def ban(
        self,
        actor: Principal,
        user_id: uuid.UUID,
        *,
        reason: str | None = None,
        expires_at: datetime | None = None,
    ) -> Principal:
        """
        Ban a user, optionally until expires_at.

        Raises:
            NotFoundError: If the user is missing or outside the actor's scope
            ValidationError: If the actor targets themselves
            Unauthorized: If the actor's role may not ban the target's role
        """
        target = await self._load_visible(actor, user_id)
        if target.id == actor.id:
            raise ValidationError("You cannot ban yourself")
        require(can_ban(actor.role, target.role), action="ban_user", actor=actor.role, target=target.role)

        updated = await self._directory.set_ban(
            target.id, banned=True, reason=reason, expires_at=expires_at
        )
        await self._audit.log_ban(actor.audit_id, target.id, reason=reason, expires_at=expires_at)
        logger.info("User banned user_id=%s actor_id=%s", target.id, actor.id)
        return updated

    async def unban(self, actor: Principal, user_id: uuid.UUID) -> Principal:
        target = await self._load_visible(actor, user_id)
        require(can_ban(actor.role, target.role), action="unban_user", actor=actor.role, target=target.role)
        if not target.banned:
            return target

        updated = await self._directory.set_ban(target.id, banned=False)
        await self._audit.log_unban(actor.audit_id, target.id)
        logger.info("User unbanned user_id=%s actor_id=%s", target.id, actor.id)
        return updated
