"""
Tests for role permission grants and the catalog.
"""
import pytest

from scout_rbac.core.exceptions import PermissionDeniedError, SystemRoleProtectedError, UnknownPermissionError
from scout_rbac.features.permissions.cache import role_cache
from scout_rbac.features.permissions.catalog import (
    PERMISSION_CATALOG,
    delete_permission,
    group_permissions_by_category,
    list_permissions,
)
from scout_rbac.features.permissions.evaluator import has_permission
from scout_rbac.features.permissions.grants import (
    grant_permission,
    list_role_permissions,
    revoke_permission,
    set_role_permissions,
)
from scout_rbac.features.permissions.roles import create_role


class TestCatalog:
    """Test the permission catalog."""

    def test_catalog_keys_unique(self):
        """Test that no key appears twice in the seed catalog."""
        keys = [key for key, _, _, _ in PERMISSION_CATALOG]
        assert len(keys) == len(set(keys))

    def test_cross_category_keys(self):
        """Test that calendar keys group under finance and guardian keys under participants."""
        categories = {key: category for key, _, category, _ in PERMISSION_CATALOG}
        assert categories["calendar.view"] == "finance"
        assert categories["guardians.manage"] == "participants"

    async def test_list_and_filter(self, db, catalog):
        """Test listing the seeded catalog, whole and by category."""
        everything = await list_permissions(db)
        finance = await list_permissions(db, category="finance")

        assert len(everything) == len(PERMISSION_CATALOG)
        assert {p.key for p in finance} == {
            "finance.view", "finance.manage", "finance.approve", "calendar.view", "calendar.manage",
        }

    async def test_group_by_category(self, db, catalog):
        """Test grouping for administration screens."""
        grouped = await group_permissions_by_category(db)

        assert "roles" in grouped
        assert {p.key for p in grouped["roles"]} == {"roles.view", "roles.manage"}

    async def test_delete_permission_cascades(self, db, catalog, organization):
        """Test that deleting a key removes its grants and evaluation sees it at once."""
        role = await create_role(db, organization.id, "helper", "Helper")
        await grant_permission(db, role.id, "meetings.view")
        assert await has_permission(db, organization.id, {role.id}, "meetings.view") is True

        await delete_permission(db, "meetings.view")

        assert await list_role_permissions(db, role.id) == []
        assert await has_permission(db, organization.id, {role.id}, "meetings.view") is False

    async def test_delete_unknown_permission(self, db, catalog):
        """Test that deleting an unknown key fails."""
        with pytest.raises(UnknownPermissionError):
            await delete_permission(db, "spaceships.launch")


class TestGrantPermission:
    """Test granting and revoking single keys."""

    async def test_grant_and_revoke(self, db, catalog, organization):
        """Test a grant round trip through the evaluator."""
        role = await create_role(db, organization.id, "helper", "Helper")

        assert await grant_permission(db, role.id, "badges.view") is True
        assert await grant_permission(db, role.id, "badges.view") is False
        assert await has_permission(db, organization.id, {role.id}, "badges.view") is True

        assert await revoke_permission(db, role.id, "badges.view") is True
        assert await has_permission(db, organization.id, {role.id}, "badges.view") is False

    async def test_unknown_key(self, db, catalog, organization):
        """Test that a key missing from the catalog is rejected."""
        role = await create_role(db, organization.id, "helper", "Helper")

        with pytest.raises(UnknownPermissionError):
            await grant_permission(db, role.id, "badges.fly")

    async def test_grant_invalidates_cache(self, db, catalog, organization):
        """Test that a cached snapshot is dropped when the role's grants change."""
        role = await create_role(db, organization.id, "helper", "Helper")
        await has_permission(db, organization.id, {role.id}, "badges.view")
        assert role.id in role_cache

        await grant_permission(db, role.id, "badges.view")

        assert role.id not in role_cache

    async def test_system_role_protected(self, db, catalog, organization):
        """Test that system role grants are only editable by bootstrap code."""
        role = await create_role(db, organization.id, "district", "District", is_system_role=True)

        with pytest.raises(SystemRoleProtectedError):
            await grant_permission(db, role.id, "badges.view")

        assert await grant_permission(db, role.id, "badges.view", allow_system=True) is True


class TestSetRolePermissions:
    """Test replacing a role's full grant set."""

    async def test_replace(self, db, catalog, organization):
        """Test that the new set replaces the old one."""
        role = await create_role(db, organization.id, "helper", "Helper")
        await set_role_permissions(db, role.id, ["badges.view", "points.view"])

        result = await set_role_permissions(db, role.id, ["points.view", "points.manage"])

        assert [p.key for p in result] == ["points.manage", "points.view"]
        assert {p.key for p in await list_role_permissions(db, role.id)} == {"points.view", "points.manage"}

    async def test_unknown_key_leaves_grants(self, db, catalog, organization):
        """Test that one unknown key aborts the whole replacement."""
        role = await create_role(db, organization.id, "helper", "Helper")
        await set_role_permissions(db, role.id, ["badges.view"])

        with pytest.raises(UnknownPermissionError):
            await set_role_permissions(db, role.id, ["points.view", "points.fly"])

        assert [p.key for p in await list_role_permissions(db, role.id)] == ["badges.view"]

    async def test_replace_with_nothing(self, db, catalog, organization):
        """Test that an empty set removes every grant."""
        role = await create_role(db, organization.id, "helper", "Helper")
        await set_role_permissions(db, role.id, ["badges.view"])

        await set_role_permissions(db, role.id, [])

        assert await list_role_permissions(db, role.id) == []


class TestActorHeldKeys:
    """Test that a caller can only grant keys they hold."""

    async def test_grant_key_not_held(self, db, catalog, organization):
        """Test that granting a key outside the caller's own set is refused."""
        role = await create_role(db, organization.id, "helper", "Helper")

        with pytest.raises(PermissionDeniedError):
            await grant_permission(
                db, role.id, "users.assign_district", actor_permission_keys=frozenset({"roles.manage"})
            )

        assert await list_role_permissions(db, role.id) == []

    async def test_grant_key_held(self, db, catalog, organization):
        """Test that a held key is granted normally."""
        role = await create_role(db, organization.id, "helper", "Helper")

        assert await grant_permission(
            db, role.id, "badges.view", actor_permission_keys=frozenset({"roles.manage", "badges.view"})
        ) is True

    async def test_replace_keeps_existing_unheld_keys(self, db, catalog, organization):
        """Test that keys already on the role may stay even when the caller lacks them."""
        role = await create_role(db, organization.id, "helper", "Helper")
        await set_role_permissions(db, role.id, ["finance.view", "badges.view"])

        result = await set_role_permissions(
            db, role.id, ["finance.view"], actor_permission_keys=frozenset({"badges.view"})
        )

        assert [p.key for p in result] == ["finance.view"]

    async def test_replace_adding_unheld_key(self, db, catalog, organization):
        """Test that a replacement adding an unheld key writes nothing."""
        role = await create_role(db, organization.id, "helper", "Helper")
        await set_role_permissions(db, role.id, ["badges.view"])

        with pytest.raises(PermissionDeniedError):
            await set_role_permissions(
                db, role.id, ["badges.view", "users.assign_district"], actor_permission_keys=frozenset({"badges.view"})
            )

        assert [p.key for p in await list_role_permissions(db, role.id)] == ["badges.view"]
