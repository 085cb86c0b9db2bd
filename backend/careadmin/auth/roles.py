"""
Role catalog - the closed set of roles, their organization affinity and
hierarchy levels.

Roles are partitioned into two disjoint families:
- Admin-organization roles (platform operators, not scoped to one tenant)
- Client-organization roles (scoped to exactly one tenant)

Hierarchy levels are only meaningful within a family. Permission decisions
live in permissions.py as explicit rule tables and never compare levels
across families.
"""
from __future__ import annotations

from enum import Enum
from typing import Final

from ..errors import InvalidRoleForOrganization


class Role(str, Enum):
    # Admin organization roles, highest authority first
    SYSTEM_ADMIN = "system_admin"
    PLATFORM_ADMIN = "platform_admin"
    PLATFORM_AGENT = "platform_agent"

    # Client organization roles, highest authority first
    CLIENT_ADMIN = "client_admin"
    FRONT_DESK = "front_desk"
    TECHNICIAN = "technician"
    INTERPRETING_DOCTOR = "interpreting_doctor"


class OrganizationType(str, Enum):
    ADMIN = "admin"
    CLIENT = "client"


class RoleFamily(str, Enum):
    ADMIN = "admin"
    CLIENT = "client"


# ============================================================================
# FAMILIES
# ============================================================================

ADMIN_ROLES: Final[frozenset[Role]] = frozenset({
    Role.SYSTEM_ADMIN,
    Role.PLATFORM_ADMIN,
    Role.PLATFORM_AGENT,
})

CLIENT_ROLES: Final[frozenset[Role]] = frozenset({
    Role.CLIENT_ADMIN,
    Role.FRONT_DESK,
    Role.TECHNICIAN,
    Role.INTERPRETING_DOCTOR,
})

ROLES_BY_ORGANIZATION_TYPE: Final[dict[OrganizationType, frozenset[Role]]] = {
    OrganizationType.ADMIN: ADMIN_ROLES,
    OrganizationType.CLIENT: CLIENT_ROLES,
}


# ============================================================================
# HIERARCHY
# ============================================================================

# Higher number = more authority. technician and interpreting_doctor are peers.
HIERARCHY_LEVELS: Final[dict[Role, int]] = {
    Role.SYSTEM_ADMIN: 100,
    Role.PLATFORM_ADMIN: 90,
    Role.PLATFORM_AGENT: 80,
    Role.CLIENT_ADMIN: 70,
    Role.FRONT_DESK: 60,
    Role.TECHNICIAN: 50,
    Role.INTERPRETING_DOCTOR: 50,
}

ROLE_LABELS: Final[dict[Role, str]] = {
    Role.SYSTEM_ADMIN: "System Administrator",
    Role.PLATFORM_ADMIN: "Platform Admin",
    Role.PLATFORM_AGENT: "Platform Agent",
    Role.CLIENT_ADMIN: "Client Admin",
    Role.FRONT_DESK: "Front Desk",
    Role.TECHNICIAN: "Technician",
    Role.INTERPRETING_DOCTOR: "Interpreting Doctor",
}


def is_admin_family(role: Role) -> bool:
    return role in ADMIN_ROLES


def is_client_family(role: Role) -> bool:
    return role in CLIENT_ROLES


def role_family(role: Role) -> RoleFamily:
    return RoleFamily.ADMIN if role in ADMIN_ROLES else RoleFamily.CLIENT


def hierarchy_level(role: Role) -> int:
    return HIERARCHY_LEVELS[role]


def role_label(role: Role) -> str:
    return ROLE_LABELS[role]


def valid_roles_for(org_type: OrganizationType) -> frozenset[Role]:
    """Roles that may be held inside an organization of the given type."""
    return ROLES_BY_ORGANIZATION_TYPE[org_type]


def validate_role_for_organization(role: Role, org_type: OrganizationType) -> None:
    """
    Enforce organization-type affinity for a role assignment.

    Admin roles only in admin organizations, client roles only in client
    organizations.

    Raises:
        InvalidRoleForOrganization: If the role belongs to the other family
    """
    if role not in valid_roles_for(org_type):
        raise InvalidRoleForOrganization(
            f"Role '{role.value}' cannot be assigned in a '{org_type.value}' organization",
            details={
                "role": role.value,
                "organization_type": org_type.value,
                "allowed_roles": sorted(r.value for r in valid_roles_for(org_type)),
            },
        )


# Family order as listed above; used for the import-time check
_FAMILY_ORDER: Final[dict[RoleFamily, tuple[Role, ...]]] = {
    RoleFamily.ADMIN: (Role.SYSTEM_ADMIN, Role.PLATFORM_ADMIN, Role.PLATFORM_AGENT),
    RoleFamily.CLIENT: (
        Role.CLIENT_ADMIN,
        Role.FRONT_DESK,
        Role.TECHNICIAN,
        Role.INTERPRETING_DOCTOR,
    ),
}


def _validate_catalog() -> None:
    """Validate the catalog at import time."""
    errors = []

    if ADMIN_ROLES & CLIENT_ROLES:
        errors.append(f"Roles in both families: {sorted(r.value for r in ADMIN_ROLES & CLIENT_ROLES)}")

    missing = set(Role) - (ADMIN_ROLES | CLIENT_ROLES)
    if missing:
        errors.append(f"Roles without a family: {sorted(r.value for r in missing)}")

    for role in Role:
        if role not in HIERARCHY_LEVELS:
            errors.append(f"Role '{role.value}' has no hierarchy level")
        if role not in ROLE_LABELS:
            errors.append(f"Role '{role.value}' has no label")

    for family, ordered in _FAMILY_ORDER.items():
        levels = [HIERARCHY_LEVELS.get(role, 0) for role in ordered]
        if levels != sorted(levels, reverse=True):
            errors.append(f"Hierarchy levels increase within the {family.value} family")

    if errors:
        raise RuntimeError(
            "Role catalog validation failed:\n" + "\n".join(f"  - {e}" for e in errors)
        )


_validate_catalog()
