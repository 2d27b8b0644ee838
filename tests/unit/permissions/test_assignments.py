"""
Tests for member role assignments.
"""
import pytest

from scout_rbac.core.exceptions import (
    CrossOrganizationRoleError,
    MembershipNotFoundError,
    PermissionDeniedError,
    RoleNotFoundError,
)
from scout_rbac.features.permissions.assignments import (
    add_member,
    add_member_role,
    get_member_role_ids,
    is_role_in_use,
    load_principal,
    remove_member_role,
    set_member_roles,
)
from scout_rbac.features.permissions.roles import create_role


ASSIGNER = frozenset({"users.assign_roles"})
DISTRICT_ASSIGNER = frozenset({"users.assign_roles", "users.assign_district"})


class TestMembership:
    """Test memberships and principals."""

    async def test_load_principal(self, db, organization, make_member):
        """Test that a principal carries the member's role ids."""
        leader = await create_role(db, organization.id, "leader", "Leader")
        user = await make_member(organization.id, [leader.id])

        principal = await load_principal(db, organization.id, user.id)

        assert principal.user_id == user.id
        assert principal.organization_id == organization.id
        assert principal.role_ids == frozenset({leader.id})

    async def test_non_member(self, db, organization, other_organization, make_member):
        """Test that a user from another organization has no principal here."""
        user = await make_member(other_organization.id)

        with pytest.raises(MembershipNotFoundError):
            await load_principal(db, organization.id, user.id)

    async def test_add_member_twice(self, db, organization, make_member):
        """Test that adding an existing member is a no-op."""
        user = await make_member(organization.id)

        assert await add_member(db, organization.id, user.id) is False


class TestSetMemberRoles:
    """Test replacing a member's roles."""

    async def test_set_is_a_set(self, db, organization, make_member):
        """Test that duplicates collapse and the set replaces previous roles."""
        leader = await create_role(db, organization.id, "leader", "Leader")
        parent = await create_role(db, organization.id, "parent", "Parent", data_scope="linked")
        user = await make_member(organization.id, [leader.id])

        result = await set_member_roles(db, organization.id, user.id, [parent.id, parent.id])

        assert result == frozenset({parent.id})
        assert await get_member_role_ids(db, organization.id, user.id) == frozenset({parent.id})
        assert await is_role_in_use(db, leader.id) is False
        assert await is_role_in_use(db, parent.id) is True

    async def test_unknown_role(self, db, organization, make_member):
        """Test that an unknown role id is rejected at write time."""
        user = await make_member(organization.id)

        with pytest.raises(RoleNotFoundError):
            await set_member_roles(db, organization.id, user.id, ["01HZZZZZZZZZZZZZZZZZZZZZZZ"])

    async def test_cross_organization_role(self, db, organization, other_organization, make_member):
        """Test that a role from another organization cannot be assigned."""
        foreign = await create_role(db, other_organization.id, "leader", "Leader")
        user = await make_member(organization.id)

        with pytest.raises(CrossOrganizationRoleError):
            await set_member_roles(db, organization.id, user.id, [foreign.id])

        assert await get_member_role_ids(db, organization.id, user.id) == frozenset()

    async def test_template_role_assignable(self, db, organization, make_member):
        """Test that shared template roles can be assigned in any organization."""
        template = await create_role(db, None, "auditor", "Auditor")
        user = await make_member(organization.id)

        assert await set_member_roles(db, organization.id, user.id, [template.id]) == frozenset({template.id})

    async def test_non_member(self, db, organization):
        """Test that roles cannot be set for someone outside the organization."""
        with pytest.raises(MembershipNotFoundError):
            await set_member_roles(db, organization.id, "01HZZZZZZZZZZZZZZZZZZZZZZZ", [])


class TestAssignmentAuthorization:
    """Test the actor checks on assignment."""

    async def test_requires_assign_roles(self, db, organization, make_member):
        """Test that an actor without users.assign_roles is refused."""
        leader = await create_role(db, organization.id, "leader", "Leader")
        user = await make_member(organization.id)

        with pytest.raises(PermissionDeniedError):
            await set_member_roles(db, organization.id, user.id, [leader.id], actor_permission_keys=frozenset())

    async def test_district_needs_assign_district(self, db, organization, make_member):
        """Test that granting the district role needs users.assign_district."""
        district = await create_role(db, organization.id, "district", "District", is_system_role=True)
        leader = await create_role(db, organization.id, "leader", "Leader")
        user = await make_member(organization.id)

        with pytest.raises(PermissionDeniedError):
            await set_member_roles(db, organization.id, user.id, [district.id], actor_permission_keys=ASSIGNER)

        assert await set_member_roles(db, organization.id, user.id, [leader.id], actor_permission_keys=ASSIGNER)
        assert await set_member_roles(
            db, organization.id, user.id, [district.id], actor_permission_keys=DISTRICT_ASSIGNER
        ) == frozenset({district.id})

    async def test_removing_district_needs_assign_district(self, db, organization, make_member):
        """Test that taking the district role away also needs users.assign_district."""
        district = await create_role(db, organization.id, "district", "District", is_system_role=True)
        user = await make_member(organization.id, [district.id])

        with pytest.raises(PermissionDeniedError):
            await set_member_roles(db, organization.id, user.id, [], actor_permission_keys=ASSIGNER)

        assert await get_member_role_ids(db, organization.id, user.id) == frozenset({district.id})

    async def test_add_and_remove_single_role(self, db, organization, make_member):
        """Test the single-role helpers."""
        leader = await create_role(db, organization.id, "leader", "Leader")
        parent = await create_role(db, organization.id, "parent", "Parent", data_scope="linked")
        user = await make_member(organization.id, [leader.id])

        assert await add_member_role(db, organization.id, user.id, parent.id) == frozenset({leader.id, parent.id})
        assert await remove_member_role(db, organization.id, user.id, leader.id) == frozenset({parent.id})
