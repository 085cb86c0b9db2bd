"""
Permission resolver - pure decision functions over (actor role, target role)
or (actor role, organization type).

Every rule is an explicit table lookup, first match wins. Hierarchy levels
from roles.py are NOT consulted; the client_admin peer-edit / no-peer-ban
asymmetry is encoded directly in the tables.

ALL functions are side-effect free and safe to call from any request.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Final

from ..errors import Unauthorized
from .roles import ADMIN_ROLES, CLIENT_ROLES, OrganizationType, Role

ANY_ROLE: Final[frozenset[Role]] = frozenset(Role)

_EVERYONE_BUT_SYSTEM_ADMIN: Final[frozenset[Role]] = ANY_ROLE - {Role.SYSTEM_ADMIN}

# client_admin may ban only the strictly lower client roles
_LOWER_CLIENT_ROLES: Final[frozenset[Role]] = CLIENT_ROLES - {Role.CLIENT_ADMIN}


# ============================================================================
# RULE TABLES - actor role -> target roles the actor may act on
# Actors absent from a table are denied.
# ============================================================================

VIEW_RULES: Final[dict[Role, frozenset[Role]]] = {
    Role.SYSTEM_ADMIN: ANY_ROLE,
    Role.PLATFORM_ADMIN: ANY_ROLE,
    Role.CLIENT_ADMIN: CLIENT_ROLES,
}

EDIT_RULES: Final[dict[Role, frozenset[Role]]] = {
    Role.SYSTEM_ADMIN: ANY_ROLE,
    Role.PLATFORM_ADMIN: _EVERYONE_BUT_SYSTEM_ADMIN,
    # Peers included
    Role.CLIENT_ADMIN: CLIENT_ROLES,
}

BAN_RULES: Final[dict[Role, frozenset[Role]]] = {
    # No self-exception: a system_admin cannot ban another system_admin
    Role.SYSTEM_ADMIN: _EVERYONE_BUT_SYSTEM_ADMIN,
    Role.PLATFORM_ADMIN: _EVERYONE_BUT_SYSTEM_ADMIN,
    # Peers excluded
    Role.CLIENT_ADMIN: _LOWER_CLIENT_ROLES,
}

IMPERSONATE_RULES: Final[dict[Role, frozenset[Role]]] = {
    Role.SYSTEM_ADMIN: _EVERYONE_BUT_SYSTEM_ADMIN,
}

CREATE_ROLE_RULES: Final[dict[Role, frozenset[Role]]] = {
    Role.SYSTEM_ADMIN: ANY_ROLE,
    Role.PLATFORM_ADMIN: _EVERYONE_BUT_SYSTEM_ADMIN,
}

ASSIGN_RULES: Final[dict[Role, frozenset[OrganizationType]]] = {
    Role.SYSTEM_ADMIN: frozenset(OrganizationType),
    Role.PLATFORM_ADMIN: frozenset(OrganizationType),
}

# Roles whose scope is not limited to one organization
ORGANIZATION_INDEPENDENT_ROLES: Final[frozenset[Role]] = frozenset({
    Role.SYSTEM_ADMIN,
    Role.PLATFORM_ADMIN,
})


def _allowed(rules: dict[Role, frozenset], actor: Role, target) -> bool:
    return target in rules.get(actor, frozenset())


def can_view(actor: Role, target: Role) -> bool:
    return _allowed(VIEW_RULES, actor, target)


def can_edit(actor: Role, target: Role) -> bool:
    return _allowed(EDIT_RULES, actor, target)


def can_ban(actor: Role, target: Role) -> bool:
    return _allowed(BAN_RULES, actor, target)


def can_impersonate(actor: Role, target: Role) -> bool:
    """Only system_admin may impersonate, and never another system_admin."""
    return _allowed(IMPERSONATE_RULES, actor, target)


def can_create_role(actor: Role, target_role: Role) -> bool:
    return _allowed(CREATE_ROLE_RULES, actor, target_role)


def can_assign_to_organization(actor: Role, org_type: OrganizationType) -> bool:
    return _allowed(ASSIGN_RULES, actor, org_type)


def is_organization_independent(role: Role) -> bool:
    return role in ORGANIZATION_INDEPENDENT_ROLES


@dataclass(frozen=True)
class UserCapabilities:
    """Coarse, target-independent summary used to decide which actions to offer."""

    can_create: bool
    can_edit: bool
    can_ban: bool
    can_impersonate: bool
    can_view_all: bool


def capabilities_for(role: Role) -> UserCapabilities:
    return UserCapabilities(
        can_create=role in CREATE_ROLE_RULES,
        can_edit=role in EDIT_RULES,
        can_ban=role in BAN_RULES,
        can_impersonate=role in IMPERSONATE_RULES,
        can_view_all=role in ORGANIZATION_INDEPENDENT_ROLES,
    )


def require(allowed: bool, *, action: str, actor: Role, target: Role | OrganizationType | None = None) -> None:
    """
    Turn a decision into an enforcement point.

    Raises:
        Unauthorized: If the decision was False
    """
    if allowed:
        return
    details = {"action": action, "actor_role": actor.value}
    if target is not None:
        details["target"] = target.value
    raise Unauthorized(f"Permission denied: {action}", details=details)


def _validate_rules() -> None:
    """Validate hard invariants of the rule tables at import time."""
    errors = []

    # Nobody may ban or impersonate a system_admin
    for name, rules in (("ban", BAN_RULES), ("impersonate", IMPERSONATE_RULES)):
        for actor, targets in rules.items():
            if Role.SYSTEM_ADMIN in targets:
                errors.append(f"'{actor.value}' may {name} system_admin")

    # Impersonation has exactly one grantable role
    if set(IMPERSONATE_RULES) != {Role.SYSTEM_ADMIN}:
        errors.append("Impersonation must be granted to system_admin only")

    # Tenant isolation: client roles never act on admin-family targets
    for name, rules in (("view", VIEW_RULES), ("edit", EDIT_RULES), ("ban", BAN_RULES)):
        for actor, targets in rules.items():
            if actor in CLIENT_ROLES and targets & ADMIN_ROLES:
                errors.append(f"Client role '{actor.value}' may {name} admin-family roles")

    if errors:
        raise RuntimeError(
            "Permission rule validation failed:\n" + "\n".join(f"  - {e}" for e in errors)
        )


_validate_rules()
