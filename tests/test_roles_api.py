"""Roles and permission catalogue endpoints."""

from procurement.core.permissions import ALL_PERMISSIONS, ROLE_TEMPLATES, Perm
from procurement.models import db
from procurement.models.audit import AuditLog
from procurement.models.auth import Role
from procurement.services import workflow_service
from tests.conftest import assign, make_user

ROLES = "/api/v1/roles"


def _create(client, headers, **body):
    payload = {"name": "Auditor", "permissions": [Perm.VIEW_REQUESTS, Perm.VIEW_REPORTS]}
    payload.update(body)
    return client.post(ROLES, json=payload, headers=headers)


class TestRoleCrud:
    def test_list_includes_system_roles_with_counts(self, client, org, auth_headers):
        res = client.get(ROLES, headers=auth_headers(org.admin))
        assert res.status_code == 200
        by_name = {r["name"]: r for r in res.get_json()["data"]}
        assert {"Super Admin", "Site Manager", "Procurement Manager", "Staff"} <= set(by_name)
        assert all(by_name[n]["isSystem"] for n in ("Super Admin", "Staff"))
        assert by_name["Staff"]["userCount"] == 1
        assert by_name["Staff"]["permissionCount"] == 3

    def test_create_role(self, client, org, auth_headers):
        res = _create(client, auth_headers(org.admin), color="#123ABC", scope="site")
        assert res.status_code == 201
        role = res.get_json()["data"]
        assert role["isSystem"] is False
        assert role["color"] == "#123ABC"
        assert role["scope"] == "site"
        assert sorted(p["fullName"] for p in role["permissions"]) == sorted(
            [Perm.VIEW_REQUESTS, Perm.VIEW_REPORTS]
        )
        assert AuditLog.query.filter_by(action="role_created").count() == 1

    def test_create_validation(self, client, org, auth_headers):
        headers = auth_headers(org.admin)
        assert _create(client, headers, name="  ").status_code == 400
        assert _create(client, headers, color="red").status_code == 400
        assert _create(client, headers, scope="galaxy").status_code == 400

        res = _create(client, headers, permissions=["requests.teleport"])
        assert res.status_code == 400
        assert res.get_json()["error"]["details"] == {"permissions": ["requests.teleport"]}

    def test_duplicate_name_conflicts(self, client, org, auth_headers):
        headers = auth_headers(org.admin)
        assert _create(client, headers).status_code == 201
        res = _create(client, headers, name="auditor")
        assert res.status_code == 409
        assert res.get_json()["error"]["code"] == "RESOURCE_CONFLICT"

    def test_update_role_replaces_permissions(self, client, org, auth_headers):
        headers = auth_headers(org.admin)
        role_id = _create(client, headers).get_json()["data"]["id"]
        res = client.put(
            f"{ROLES}/{role_id}",
            json={"name": "Spend Auditor", "permissions": [Perm.VIEW_REPORTS]},
            headers=headers,
        )
        assert res.status_code == 200
        data = res.get_json()["data"]
        assert data["name"] == "Spend Auditor"
        assert [p["fullName"] for p in data["permissions"]] == [Perm.VIEW_REPORTS]

    def test_update_takes_effect_for_holders(self, client, org, auth_headers):
        headers = auth_headers(org.admin)
        role_id = _create(client, headers, permissions=[Perm.VIEW_CATALOGUE]).get_json()["data"]["id"]
        holder = make_user(org.id, "holder")
        assign(holder, db.session.get(Role, role_id))
        db.session.commit()

        res = client.get("/api/v1/categories", headers=auth_headers(holder))
        assert res.status_code == 200

        client.put(f"{ROLES}/{role_id}", json={"permissions": []}, headers=headers)
        res = client.get("/api/v1/categories", headers=auth_headers(holder))
        assert res.status_code == 403

    def test_system_roles_read_only(self, client, org, auth_headers):
        headers = auth_headers(org.admin)
        staff_id = org.roles["Staff"].id
        res = client.put(f"{ROLES}/{staff_id}", json={"name": "Crew"}, headers=headers)
        assert res.status_code == 403
        assert res.get_json()["error"]["code"] == "FORBIDDEN"
        res = client.delete(f"{ROLES}/{staff_id}", headers=headers)
        assert res.status_code == 403

    def test_get_unknown_role(self, client, org, auth_headers):
        res = client.get(f"{ROLES}/9999", headers=auth_headers(org.admin))
        assert res.status_code == 404
        assert res.get_json()["error"]["code"] == "RESOURCE_NOT_FOUND"


class TestRoleDeletion:
    def test_delete_unused_role(self, client, org, auth_headers):
        headers = auth_headers(org.admin)
        role_id = _create(client, headers).get_json()["data"]["id"]
        res = client.delete(f"{ROLES}/{role_id}", headers=headers)
        assert res.status_code == 200
        assert res.get_json()["data"] == {"deleted": True, "id": role_id}
        assert db.session.get(Role, role_id) is None

    def test_delete_refused_while_assigned(self, client, org, auth_headers):
        headers = auth_headers(org.admin)
        role_id = _create(client, headers).get_json()["data"]["id"]
        assign(org.staff, db.session.get(Role, role_id))
        db.session.commit()

        res = client.delete(f"{ROLES}/{role_id}", headers=headers)
        assert res.status_code == 409
        assert res.get_json()["error"]["details"] == {"userCount": 1}

    def test_delete_after_all_holders_reassigned(self, client, org, auth_headers):
        headers = auth_headers(org.admin)
        role_id = _create(client, headers).get_json()["data"]["id"]
        role = db.session.get(Role, role_id)
        # staff holds it at three locations; still one user
        assign(org.staff, role)
        assign(org.staff, role, site=org.hq)
        assign(org.staff, role, area=org.yard)
        assign(org.site_mgr, role, site=org.depot)
        assign(org.proc_mgr, role)
        db.session.commit()

        listed = {r["id"]: r for r in client.get(ROLES, headers=headers).get_json()["data"]}
        assert listed[role_id]["userCount"] == 3

        res = client.delete(f"{ROLES}/{role_id}", headers=headers)
        assert res.status_code == 409
        body = res.get_json()["error"]
        assert body["code"] == "RESOURCE_CONFLICT"
        assert body["details"] == {"userCount": 3}
        assert "3 user(s)" in body["message"]

        reassignments = {
            org.staff: [{"roleId": org.roles["Staff"].id, "areaId": org.floor1.id}],
            org.site_mgr: [{"roleId": org.roles["Site Manager"].id, "siteId": org.hq.id}],
            org.proc_mgr: [{"roleId": org.roles["Procurement Manager"].id}],
        }
        for user, roles in reassignments.items():
            res = client.post(f"/api/v1/end-users/{user.id}/roles", json={"roles": roles}, headers=headers)
            assert res.status_code == 200

        res = client.delete(f"{ROLES}/{role_id}", headers=headers)
        assert res.status_code == 200
        assert res.get_json()["data"] == {"deleted": True, "id": role_id}

    def test_delete_refused_while_used_by_workflow(self, client, org, auth_headers):
        headers = auth_headers(org.admin)
        role_id = _create(client, headers).get_json()["data"]["id"]
        workflow_service.create_workflow(org.id, name="Audit first", levels=[{"roleId": role_id}])

        res = client.delete(f"{ROLES}/{role_id}", headers=headers)
        assert res.status_code == 409
        assert res.get_json()["error"]["details"] == {"workflowLevelCount": 1}


class TestCloneAndTemplates:
    def test_clone_copies_permissions(self, client, org, auth_headers):
        sm = org.roles["Site Manager"]
        res = client.post(f"{ROLES}/{sm.id}/clone", json={"name": "Deputy Manager"}, headers=auth_headers(org.admin))
        assert res.status_code == 201
        clone = res.get_json()["data"]
        assert clone["isSystem"] is False
        assert clone["scope"] == "site"
        assert clone["userCount"] == 0
        assert sorted(p["fullName"] for p in clone["permissions"]) == sm.permission_names

    def test_clone_requires_name(self, client, org, auth_headers):
        sm = org.roles["Site Manager"]
        res = client.post(f"{ROLES}/{sm.id}/clone", json={}, headers=auth_headers(org.admin))
        assert res.status_code == 400

    def test_templates(self, client, org, auth_headers):
        res = client.get(f"{ROLES}/templates", headers=auth_headers(org.admin))
        assert [t["name"] for t in res.get_json()["data"]] == [t["name"] for t in ROLE_TEMPLATES]


class TestRolePermissionsGate:
    def test_staff_cannot_manage_roles(self, client, org, auth_headers):
        headers = auth_headers(org.staff)
        res = client.get(ROLES, headers=headers)
        assert res.status_code == 403
        assert res.get_json()["error"]["details"] == {"required": Perm.VIEW_ROLES}
        assert _create(client, headers).status_code == 403

    def test_unauthenticated(self, client, org):
        res = client.get(ROLES)
        assert res.status_code == 401
        assert res.get_json()["error"]["code"] == "UNAUTHORIZED"


class TestPermissionsApi:
    def test_grouped_catalogue(self, client, org, auth_headers):
        res = client.get("/api/v1/permissions", headers=auth_headers(org.admin))
        groups = res.get_json()["data"]
        names = {p["fullName"] for g in groups for p in g["permissions"]}
        assert names == ALL_PERMISSIONS
        requests_group = next(g for g in groups if g["category"] == "requests")
        assert requests_group["label"] == "Requests"

    def test_categories(self, client, org, auth_headers):
        res = client.get("/api/v1/permissions/categories", headers=auth_headers(org.admin))
        assert "workflows" in res.get_json()["data"]

    def test_my_permissions_at_location(self, client, org, auth_headers):
        headers = auth_headers(org.staff)
        res = client.get(
            f"/api/v1/permissions/me?siteId={org.hq.id}&areaId={org.floor1.id}", headers=headers,
        )
        data = res.get_json()["data"]
        assert data["isSuperAdmin"] is False
        assert Perm.SUBMIT_REQUESTS in data["permissions"]

        res = client.get(f"/api/v1/permissions/me?siteId={org.depot.id}", headers=headers)
        assert res.get_json()["data"]["permissions"] == []

    def test_can_endpoint(self, client, org, auth_headers):
        res = client.get(
            f"/api/v1/permissions/me/can/{Perm.APPROVE_REQUESTS}?siteId={org.hq.id}",
            headers=auth_headers(org.site_mgr),
        )
        data = res.get_json()["data"]
        assert data["allowed"] is True
        assert data["decision"] == "allow_role_grant"

    def test_user_permissions_requires_view_users(self, client, org, auth_headers):
        url = f"/api/v1/permissions/users/{org.staff.id}"
        assert client.get(url, headers=auth_headers(org.staff)).status_code == 403
        res = client.get(url, headers=auth_headers(org.admin))
        assert res.status_code == 200
        assert res.get_json()["data"]["userId"] == org.staff.id
