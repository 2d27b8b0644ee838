"""
Tests for default form grant population.
"""
import pytest
from sqlalchemy import select

from scout_rbac.features.forms.defaults import (
    FormCategory,
    default_form_matrix,
    populate_default_form_grants,
    populate_organization_form_defaults,
    resolve_form_category,
)
from scout_rbac.features.forms.models import FormPermission, FormTemplate
from scout_rbac.features.forms.schemas import FormCapabilities
from scout_rbac.features.forms.service import list_form_permission_matrix, set_form_permission
from scout_rbac.features.permissions.evaluator import form_capabilities


FULL = FormCapabilities.full()


class TestResolveFormCategory:
    """Test category lookup."""

    @pytest.mark.parametrize("form_type, expected", [
        ("organization_info", FormCategory.ORGANIZATION),
        ("risk_acceptance", FormCategory.PARTICIPANT),
        ("fiche_sante", FormCategory.PARTICIPANT),
        ("participant_registration", FormCategory.PARTICIPANT),
        ("parent_guardian", FormCategory.PARTICIPANT),
        ("badge_request", FormCategory.APPROVAL),
        ("camp_feedback", FormCategory.GENERAL),
    ])
    def test_form_type_lookup(self, form_type, expected):
        """Test categories derived from known form types."""
        assert resolve_form_category(form_type) == expected

    def test_explicit_category_wins(self):
        """Test that a template's own category overrides the form type."""
        assert resolve_form_category("camp_feedback", "approval") == FormCategory.APPROVAL
        assert resolve_form_category("badge_request", "general") == FormCategory.GENERAL

    def test_unknown_explicit_category(self):
        """Test that an unrecognized category falls back to the form type lookup."""
        assert resolve_form_category("badge_request", "mystery") == FormCategory.APPROVAL
        assert resolve_form_category("camp_feedback", "mystery") == FormCategory.GENERAL


class TestDefaultFormMatrix:
    """Test the default policy per category."""

    def test_organization_forms_are_district_only(self):
        """Test that sensitive organization forms go to district alone."""
        assert default_form_matrix(FormCategory.ORGANIZATION) == {"district": FULL}

    def test_participant_forms(self):
        """Test parent view+submit and leader view+submit+edit on participant forms."""
        matrix = default_form_matrix(FormCategory.PARTICIPANT)

        assert matrix["district"] == FULL
        assert matrix["unitadmin"] == FULL
        assert matrix["parent"] == FormCapabilities(view=True, submit=True)
        assert matrix["leader"] == FormCapabilities(view=True, submit=True, edit=True)

    def test_approval_forms(self):
        """Test that leaders may approve only approval-category forms."""
        matrix = default_form_matrix(FormCategory.APPROVAL)

        assert matrix["leader"].approve is True
        assert matrix["parent"] == FormCapabilities(view=True, submit=True)

    def test_general_fallback(self):
        """Test the fallback matrix for unknown categories."""
        matrix = default_form_matrix(FormCategory.GENERAL)

        assert matrix["leader"] == FormCapabilities(view=True, edit=True)
        assert matrix["parent"] == FormCapabilities(view=True, submit=True)
        assert matrix["unitadmin"] == FULL

    def test_demo_roles_mirror(self):
        """Test that demo roles mirror their counterparts."""
        for category in FormCategory:
            matrix = default_form_matrix(category)
            assert matrix.get("demoadmin") == matrix.get("unitadmin")
            assert matrix.get("demoparent") == matrix.get("parent")


async def add_template(db, organization_id, form_type, category=None):
    template = FormTemplate(organization_id=organization_id, form_type=form_type, display_name=form_type, category=category)
    db.add(template)
    await db.commit()
    await db.refresh(template)
    return template


class TestPopulateDefaults:
    """Test writing default grants."""

    async def test_participant_form_grants(self, db, provisioned_org, role_named):
        """Test the grants created for a participant form."""
        template = await add_template(db, provisioned_org.id, "risk_acceptance")

        added = await populate_default_form_grants(db, template)
        await db.commit()

        assert added == 6
        parent = await role_named(provisioned_org.id, "parent")
        finance = await role_named(provisioned_org.id, "finance")
        assert await form_capabilities(db, provisioned_org.id, {parent.id}, template.id) == FormCapabilities(view=True, submit=True)
        assert await form_capabilities(db, provisioned_org.id, {finance.id}, template.id) == FormCapabilities.none()

    async def test_organization_form_is_district_only(self, db, provisioned_org, role_named):
        """Test that unitadmin gets nothing on an organization-sensitive form."""
        template = await add_template(db, provisioned_org.id, "organization_info")

        await populate_default_form_grants(db, template)
        await db.commit()

        district = await role_named(provisioned_org.id, "district")
        unitadmin = await role_named(provisioned_org.id, "unitadmin")
        assert await form_capabilities(db, provisioned_org.id, {district.id}, template.id) == FULL
        assert await form_capabilities(db, provisioned_org.id, {unitadmin.id}, template.id) == FormCapabilities.none()

    async def test_existing_grants_untouched(self, db, provisioned_org, role_named):
        """Test that a template with any grant row is left alone."""
        template = await add_template(db, provisioned_org.id, "risk_acceptance")
        leader = await role_named(provisioned_org.id, "leader")
        await set_form_permission(db, provisioned_org.id, template.id, leader.id, can_view=True)

        assert await populate_default_form_grants(db, template) == 0

        result = await db.execute(select(FormPermission).where(FormPermission.form_template_id == template.id))
        assert len(result.scalars().all()) == 1

    async def test_populate_organization(self, db, provisioned_org):
        """Test populating every template without grants in one pass."""
        await add_template(db, provisioned_org.id, "badge_request")
        await add_template(db, provisioned_org.id, "organization_info")

        added = await populate_organization_form_defaults(db, provisioned_org.id)
        await db.commit()

        assert added == 6 + 1
        assert await populate_organization_form_defaults(db, provisioned_org.id) == 0

    async def test_matrix_listing(self, db, provisioned_org):
        """Test that the matrix lists every role for every template, false where ungranted."""
        template = await add_template(db, provisioned_org.id, "organization_info")
        await populate_default_form_grants(db, template)
        await db.commit()

        entries = await list_form_permission_matrix(db, provisioned_org.id)

        assert len(entries) == 9
        by_role = {entry.role_name: entry for entry in entries}
        assert by_role["district"].can_approve is True
        assert by_role["leader"].can_view is False
