"""
Tests for the permission decision functions.

Properties are checked over every (actor, target) pair so that a rule table
edit cannot silently open a hole.
"""
import itertools

import pytest

from careadmin.auth import permissions
from careadmin.auth.permissions import (
    can_assign_to_organization,
    can_ban,
    can_create_role,
    can_edit,
    can_impersonate,
    can_view,
    capabilities_for,
    require,
)
from careadmin.auth.roles import ADMIN_ROLES, CLIENT_ROLES, OrganizationType, Role, hierarchy_level
from careadmin.errors import Unauthorized

ALL_PAIRS = list(itertools.product(Role, Role))


class TestSystemAdminInviolability:
    @pytest.mark.parametrize("actor", list(Role))
    def test_nobody_bans_system_admin(self, actor):
        assert not can_ban(actor, Role.SYSTEM_ADMIN)

    @pytest.mark.parametrize("actor", list(Role))
    def test_nobody_impersonates_system_admin(self, actor):
        assert not can_impersonate(actor, Role.SYSTEM_ADMIN)

    @pytest.mark.parametrize("actor", [r for r in Role if r is not Role.SYSTEM_ADMIN])
    def test_only_system_admin_edits_system_admin(self, actor):
        assert not can_edit(actor, Role.SYSTEM_ADMIN)

    def test_system_admin_edits_system_admin(self):
        assert can_edit(Role.SYSTEM_ADMIN, Role.SYSTEM_ADMIN)


class TestTenantIsolation:
    def test_client_roles_never_act_on_admin_family(self):
        for actor, target in itertools.product(CLIENT_ROLES, ADMIN_ROLES):
            assert not can_view(actor, target)
            assert not can_edit(actor, target)
            assert not can_ban(actor, target)
            assert not can_impersonate(actor, target)

    def test_client_roles_cannot_create_roles_or_assign(self):
        for actor in CLIENT_ROLES:
            for role in Role:
                assert not can_create_role(actor, role)
            for org_type in OrganizationType:
                assert not can_assign_to_organization(actor, org_type)


class TestViewAndEdit:
    def test_admin_wide_roles_view_everyone(self):
        for actor in (Role.SYSTEM_ADMIN, Role.PLATFORM_ADMIN):
            assert all(can_view(actor, target) for target in Role)

    def test_client_admin_views_client_family_only(self):
        for target in Role:
            assert can_view(Role.CLIENT_ADMIN, target) == (target in CLIENT_ROLES)

    def test_platform_agent_has_no_user_rights(self):
        for target in Role:
            assert not can_view(Role.PLATFORM_AGENT, target)
            assert not can_edit(Role.PLATFORM_AGENT, target)
            assert not can_ban(Role.PLATFORM_AGENT, target)

    def test_platform_admin_edits_all_but_system_admin(self):
        for target in Role:
            assert can_edit(Role.PLATFORM_ADMIN, target) == (target is not Role.SYSTEM_ADMIN)

    @pytest.mark.parametrize("actor", [Role.FRONT_DESK, Role.TECHNICIAN, Role.INTERPRETING_DOCTOR])
    def test_lower_client_roles_cannot_view_or_edit(self, actor):
        for target in Role:
            assert not can_view(actor, target)
            assert not can_edit(actor, target)


class TestHierarchyMonotonicity:
    """
    A lower role never acts on a higher role of its own family.

    View is left out: platform_admin may view system_admin.
    """

    SAME_FAMILY_DESCENDING = sorted(
        (
            (higher, lower)
            for family in (ADMIN_ROLES, CLIENT_ROLES)
            for higher, lower in itertools.permutations(family, 2)
            if hierarchy_level(higher) > hierarchy_level(lower)
        ),
        key=lambda pair: (pair[0].value, pair[1].value),
    )

    def test_pairs_cover_both_families(self):
        assert (Role.SYSTEM_ADMIN, Role.PLATFORM_AGENT) in self.SAME_FAMILY_DESCENDING
        assert (Role.CLIENT_ADMIN, Role.TECHNICIAN) in self.SAME_FAMILY_DESCENDING

    @pytest.mark.parametrize("higher, lower", SAME_FAMILY_DESCENDING)
    def test_lower_role_cannot_act_on_higher(self, higher, lower):
        assert not can_edit(lower, higher)
        assert not can_ban(lower, higher)
        assert not can_impersonate(lower, higher)
        assert not can_create_role(lower, higher)


class TestPeerAsymmetry:
    def test_client_admin_may_edit_peer(self):
        assert can_edit(Role.CLIENT_ADMIN, Role.CLIENT_ADMIN)

    def test_client_admin_may_not_ban_peer(self):
        assert not can_ban(Role.CLIENT_ADMIN, Role.CLIENT_ADMIN)

    def test_client_admin_bans_lower_client_roles(self):
        for target in (Role.FRONT_DESK, Role.TECHNICIAN, Role.INTERPRETING_DOCTOR):
            assert can_ban(Role.CLIENT_ADMIN, target)


class TestImpersonationNarrowness:
    def test_only_system_admin_impersonates(self):
        for actor, target in ALL_PAIRS:
            expected = actor is Role.SYSTEM_ADMIN and target is not Role.SYSTEM_ADMIN
            assert can_impersonate(actor, target) == expected


class TestCreateAndAssign:
    def test_system_admin_creates_any_role(self):
        assert all(can_create_role(Role.SYSTEM_ADMIN, role) for role in Role)

    def test_platform_admin_cannot_create_system_admin(self):
        assert not can_create_role(Role.PLATFORM_ADMIN, Role.SYSTEM_ADMIN)
        assert can_create_role(Role.PLATFORM_ADMIN, Role.CLIENT_ADMIN)

    def test_only_admin_wide_roles_assign(self):
        for actor, org_type in itertools.product(Role, OrganizationType):
            expected = actor in {Role.SYSTEM_ADMIN, Role.PLATFORM_ADMIN}
            assert can_assign_to_organization(actor, org_type) == expected


class TestCapabilities:
    def test_system_admin_capabilities(self):
        caps = capabilities_for(Role.SYSTEM_ADMIN)
        assert caps.can_create and caps.can_edit and caps.can_ban
        assert caps.can_impersonate and caps.can_view_all

    def test_client_admin_capabilities(self):
        caps = capabilities_for(Role.CLIENT_ADMIN)
        assert caps.can_edit and caps.can_ban
        assert not caps.can_create
        assert not caps.can_impersonate
        assert not caps.can_view_all

    def test_technician_has_no_capabilities(self):
        caps = capabilities_for(Role.TECHNICIAN)
        assert not any(
            (caps.can_create, caps.can_edit, caps.can_ban, caps.can_impersonate, caps.can_view_all)
        )


class TestRequire:
    def test_allowed_passes(self):
        require(True, action="ban_user", actor=Role.SYSTEM_ADMIN)

    def test_denied_raises_with_details(self):
        with pytest.raises(Unauthorized) as exc_info:
            require(False, action="ban_user", actor=Role.FRONT_DESK, target=Role.TECHNICIAN)
        assert exc_info.value.status_code == 403
        assert exc_info.value.code == "PERMISSION_DENIED"
        assert exc_info.value.details == {
            "action": "ban_user",
            "actor_role": "front_desk",
            "target": "technician",
        }


class TestRuleValidation:
    def test_granting_ban_on_system_admin_fails(self, monkeypatch):
        """The import-time check rejects a rule that touches system_admin."""
        broken = dict(permissions.BAN_RULES)
        broken[Role.PLATFORM_ADMIN] = frozenset(Role)
        monkeypatch.setattr(permissions, "BAN_RULES", broken)
        with pytest.raises(RuntimeError, match="may ban system_admin"):
            permissions._validate_rules()

    def test_client_role_on_admin_target_fails(self, monkeypatch):
        broken = dict(permissions.VIEW_RULES)
        broken[Role.CLIENT_ADMIN] = frozenset(Role)
        monkeypatch.setattr(permissions, "VIEW_RULES", broken)
        with pytest.raises(RuntimeError, match="admin-family roles"):
            permissions._validate_rules()
