"""
Tests for the form template and form permission routes.
"""
import pytest


@pytest.fixture
async def members(provisioned_org, make_member, role_named):
    users = {}
    for role_name in ("district", "unitadmin", "leader", "parent"):
        role = await role_named(provisioned_org.id, role_name)
        users[role_name] = await make_member(provisioned_org.id, [role.id], name=role_name.title())
    return users


async def create_form(client, organization, headers, form_type, **extra):
    response = await client.post(
        f"/organizations/{organization.id}/forms",
        json={"form_type": form_type, "display_name": form_type.replace("_", " ").title(), **extra},
        headers=headers,
    )
    assert response.status_code == 201, response.text
    return response.json()


class TestFormRoutes:
    """Test form routes end to end."""

    async def test_parent_capabilities_on_risk_acceptance(self, client, provisioned_org, members, auth_headers):
        """Test that a parent can view and submit but not edit a risk acceptance form."""
        form = await create_form(client, provisioned_org, auth_headers(members["unitadmin"]), "risk_acceptance")

        response = await client.get(
            f"/organizations/{provisioned_org.id}/forms/{form['id']}/capabilities",
            headers=auth_headers(members["parent"]),
        )

        assert response.status_code == 200
        assert response.json() == {"view": True, "submit": True, "edit": False, "approve": False}

    async def test_list_only_viewable(self, client, provisioned_org, members, auth_headers):
        """Test that the form list hides forms the caller cannot view."""
        admin_headers = auth_headers(members["unitadmin"])
        await create_form(client, provisioned_org, admin_headers, "badge_request")
        await create_form(client, provisioned_org, admin_headers, "organization_info")

        as_parent = await client.get(f"/organizations/{provisioned_org.id}/forms", headers=auth_headers(members["parent"]))
        as_district = await client.get(f"/organizations/{provisioned_org.id}/forms", headers=auth_headers(members["district"]))

        assert [f["form_type"] for f in as_parent.json()] == ["badge_request"]
        assert as_parent.json()[0]["capabilities"]["approve"] is False
        assert [f["form_type"] for f in as_district.json()] == ["badge_request", "organization_info"]

    async def test_view_guard(self, client, provisioned_org, members, auth_headers):
        """Test that the view guard refuses organization forms to non-district roles."""
        form = await create_form(client, provisioned_org, auth_headers(members["district"]), "organization_info")
        url = f"/organizations/{provisioned_org.id}/forms/{form['id']}"

        as_unitadmin = await client.get(url, headers=auth_headers(members["unitadmin"]))
        as_district = await client.get(url, headers=auth_headers(members["district"]))

        assert as_unitadmin.status_code == 403
        assert as_district.status_code == 200
        assert as_district.json()["capabilities"]["approve"] is True

    async def test_unknown_form(self, client, provisioned_org, members, auth_headers):
        """Test that an unknown template id is not found."""
        response = await client.get(
            f"/organizations/{provisioned_org.id}/forms/01HZZZZZZZZZZZZZZZZZZZZZZZ/capabilities",
            headers=auth_headers(members["leader"]),
        )

        assert response.status_code == 404

    async def test_duplicate_form(self, client, provisioned_org, members, auth_headers):
        """Test that a repeated form type is a conflict."""
        headers = auth_headers(members["unitadmin"])
        await create_form(client, provisioned_org, headers, "fiche_sante")

        response = await client.post(
            f"/organizations/{provisioned_org.id}/forms",
            json={"form_type": "fiche_sante", "display_name": "Health Sheet"},
            headers=headers,
        )

        assert response.status_code == 409

    async def test_parent_cannot_create_forms(self, client, provisioned_org, members, auth_headers):
        """Test that creating templates needs forms.create."""
        response = await client.post(
            f"/organizations/{provisioned_org.id}/forms",
            json={"form_type": "camp_feedback", "display_name": "Camp Feedback"},
            headers=auth_headers(members["parent"]),
        )

        assert response.status_code == 403


class TestFormPermissionRoutes:
    """Test the form permission matrix routes."""

    async def test_upsert_and_matrix(self, client, provisioned_org, members, role_named, auth_headers):
        """Test that an upsert changes the parent's capabilities and shows in the matrix."""
        headers = auth_headers(members["unitadmin"])
        form = await create_form(client, provisioned_org, headers, "camp_feedback")
        parent = await role_named(provisioned_org.id, "parent")

        response = await client.put(
            f"/organizations/{provisioned_org.id}/form-permissions",
            json={"form_template_id": form["id"], "role_id": parent.id, "can_view": True},
            headers=headers,
        )
        capabilities = await client.get(
            f"/organizations/{provisioned_org.id}/forms/{form['id']}/capabilities",
            headers=auth_headers(members["parent"]),
        )
        matrix = await client.get(f"/organizations/{provisioned_org.id}/form-permissions", headers=headers)

        assert response.status_code == 200
        assert capabilities.json() == {"view": True, "submit": False, "edit": False, "approve": False}
        entry = next(e for e in matrix.json() if e["role_name"] == "parent")
        assert entry["can_view"] is True
        assert entry["can_submit"] is False

    async def test_parent_cannot_edit_matrix(self, client, provisioned_org, members, role_named, auth_headers):
        """Test that editing form grants needs forms.manage."""
        form = await create_form(client, provisioned_org, auth_headers(members["unitadmin"]), "camp_feedback")
        parent = await role_named(provisioned_org.id, "parent")

        response = await client.put(
            f"/organizations/{provisioned_org.id}/form-permissions",
            json={"form_template_id": form["id"], "role_id": parent.id, "can_approve": True},
            headers=auth_headers(members["parent"]),
        )

        assert response.status_code == 403
