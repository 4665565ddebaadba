"""Approval workflow templates: CRUD, single-active rule, default protection."""

import pytest

from procurement.models.workflow import ApprovalWorkflow
from procurement.services import workflow_service

WORKFLOWS = "/api/v1/workflows"


@pytest.fixture()
def headers(org, auth_headers):
    return auth_headers(org.admin)


@pytest.fixture()
def default_wf(org):
    return ApprovalWorkflow.query_for_org(org.id).filter_by(is_default=True).one()


def _create(client, headers, org, **body):
    payload = {
        "name": "Fast track",
        "levels": [{"roleId": org.roles["Procurement Manager"].id}],
    }
    payload.update(body)
    return client.post(WORKFLOWS, json=payload, headers=headers)


def _active_ids(org_id):
    return [
        w.id for w in ApprovalWorkflow.query_for_org(org_id).filter_by(is_active=True).all()
    ]


class TestCreate:
    def test_create_inactive_when_default_active(self, client, org, headers, default_wf):
        res = _create(client, headers, org)
        assert res.status_code == 201
        wf = res.get_json()["data"]
        assert wf["isActive"] is False
        assert wf["isDefault"] is False
        assert wf["version"] == 1
        assert [(lvl["levelOrder"], lvl["roleName"]) for lvl in wf["levels"]] == [(1, "Procurement Manager")]
        assert _active_ids(org.id) == [default_wf.id]

    def test_create_with_is_active_takes_over(self, client, org, headers, default_wf):
        wf = _create(client, headers, org, isActive=True).get_json()["data"]
        assert wf["isActive"] is True
        assert _active_ids(org.id) == [wf["id"]]

    def test_first_workflow_for_trigger_auto_activates(self, client, org, headers):
        wf = _create(client, headers, org, triggerType="manual").get_json()["data"]
        assert wf["triggerType"] == "manual"
        assert wf["isActive"] is True
        # The request_submitted default is untouched
        assert workflow_service.get_active_workflow(org.id).is_default

    def test_levels_are_ordered(self, client, org, headers):
        levels = [
            {"roleId": org.roles["Staff"].id},
            {"roleId": org.roles["Site Manager"].id},
            {"roleId": org.roles["Procurement Manager"].id},
        ]
        wf = _create(client, headers, org, levels=levels).get_json()["data"]
        assert [(lvl["levelOrder"], lvl["roleName"]) for lvl in wf["levels"]] == [
            (1, "Staff"), (2, "Site Manager"), (3, "Procurement Manager"),
        ]

    @pytest.mark.parametrize("body", [
        {"levels": []},
        {"levels": [{"roleId": 99999}]},
        {"levels": [{}]},
        {"name": ""},
        {"triggerType": "cron"},
    ])
    def test_validation(self, client, org, headers, body):
        res = _create(client, headers, org, **body)
        assert res.status_code == 400
        assert res.get_json()["error"]["code"] == "VALIDATION_ERROR"

    def test_requires_permission(self, client, org, auth_headers):
        res = _create(client, auth_headers(org.site_mgr), org)
        assert res.status_code == 403


class TestUpdate:
    def test_update_bumps_version(self, client, org, headers):
        wf_id = _create(client, headers, org).get_json()["data"]["id"]
        res = client.put(
            f"{WORKFLOWS}/{wf_id}",
            json={"name": "Fast track v2", "levels": [
                {"roleId": org.roles["Site Manager"].id},
                {"roleId": org.roles["Procurement Manager"].id},
            ]},
            headers=headers,
        )
        assert res.status_code == 200
        wf = res.get_json()["data"]
        assert wf["name"] == "Fast track v2"
        assert wf["version"] == 2
        assert len(wf["levels"]) == 2

    def test_update_can_activate(self, client, org, headers, default_wf):
        wf_id = _create(client, headers, org).get_json()["data"]["id"]
        res = client.put(f"{WORKFLOWS}/{wf_id}", json={"isActive": True}, headers=headers)
        assert res.get_json()["data"]["isActive"] is True
        assert _active_ids(org.id) == [wf_id]

    def test_deactivating_active_workflow_conflicts(self, client, org, headers):
        wf_id = _create(client, headers, org, isActive=True).get_json()["data"]["id"]
        res = client.put(f"{WORKFLOWS}/{wf_id}", json={"isActive": False}, headers=headers)
        assert res.status_code == 409
        assert _active_ids(org.id) == [wf_id]

    def test_default_is_read_only(self, client, org, headers, default_wf):
        res = client.put(f"{WORKFLOWS}/{default_wf.id}", json={"name": "Mine now"}, headers=headers)
        assert res.status_code == 403
        assert res.get_json()["error"]["code"] == "FORBIDDEN"

    def test_invalid_levels_leave_workflow_untouched(self, client, org, headers):
        wf_id = _create(client, headers, org).get_json()["data"]["id"]
        res = client.put(
            f"{WORKFLOWS}/{wf_id}", json={"name": "Renamed", "levels": []}, headers=headers,
        )
        assert res.status_code == 400
        wf = client.get(f"{WORKFLOWS}/{wf_id}", headers=headers).get_json()["data"]
        assert wf["name"] == "Fast track"
        assert wf["version"] == 1


class TestActivation:
    def test_activate_switches_single_active(self, client, org, headers, default_wf):
        a = _create(client, headers, org, name="A").get_json()["data"]["id"]
        b = _create(client, headers, org, name="B").get_json()["data"]["id"]

        res = client.patch(f"{WORKFLOWS}/{a}/activate", headers=headers)
        assert res.status_code == 200
        assert _active_ids(org.id) == [a]

        client.patch(f"{WORKFLOWS}/{b}/activate", headers=headers)
        assert _active_ids(org.id) == [b]

        client.patch(f"{WORKFLOWS}/{default_wf.id}/activate", headers=headers)
        assert _active_ids(org.id) == [default_wf.id]

    def test_activate_is_idempotent(self, client, org, headers, default_wf):
        for _ in range(2):
            res = client.patch(f"{WORKFLOWS}/{default_wf.id}/activate", headers=headers)
            assert res.status_code == 200
            assert res.get_json()["data"]["isActive"] is True
        assert _active_ids(org.id) == [default_wf.id]

    def test_activation_scoped_to_trigger(self, client, org, headers, default_wf):
        manual = _create(client, headers, org, triggerType="manual").get_json()["data"]["id"]
        client.patch(f"{WORKFLOWS}/{manual}/activate", headers=headers)
        assert sorted(_active_ids(org.id)) == sorted([default_wf.id, manual])

    def test_list_filters_by_trigger(self, client, org, headers):
        _create(client, headers, org, triggerType="manual")
        res = client.get(f"{WORKFLOWS}?triggerType=manual", headers=headers)
        assert [w["triggerType"] for w in res.get_json()["data"]] == ["manual"]
        res = client.get(WORKFLOWS, headers=headers)
        assert res.get_json()["data"][0]["isDefault"] is True


class TestDuplicateAndDelete:
    def test_duplicate(self, client, org, headers, default_wf):
        res = client.post(f"{WORKFLOWS}/{default_wf.id}/duplicate", headers=headers)
        assert res.status_code == 201
        copy = res.get_json()["data"]
        assert copy["name"] == f"{workflow_service.DEFAULT_WORKFLOW_NAME} (Copy)"
        assert copy["isDefault"] is False
        assert copy["isActive"] is False
        assert [lvl["roleId"] for lvl in copy["levels"]] == [lvl.role_id for lvl in default_wf.levels]

    def test_duplicate_with_name(self, client, org, headers, default_wf):
        res = client.post(
            f"{WORKFLOWS}/{default_wf.id}/duplicate", json={"name": "Custom"}, headers=headers,
        )
        assert res.get_json()["data"]["name"] == "Custom"

    def test_default_cannot_be_deleted(self, client, org, headers, default_wf):
        res = client.delete(f"{WORKFLOWS}/{default_wf.id}", headers=headers)
        assert res.status_code == 403

    def test_deleting_active_reactivates_default(self, client, org, headers, default_wf):
        wf_id = _create(client, headers, org, isActive=True).get_json()["data"]["id"]
        res = client.delete(f"{WORKFLOWS}/{wf_id}", headers=headers)
        assert res.status_code == 200
        assert res.get_json()["data"] == {"deleted": True, "id": wf_id}
        assert _active_ids(org.id) == [default_wf.id]

    def test_deleted_template_keeps_request_snapshot(self, client, org, headers, auth_headers, request_payload):
        wf_id = _create(client, headers, org, isActive=True).get_json()["data"]["id"]
        res = client.post("/api/v1/requests", json=request_payload(), headers=auth_headers(org.staff))
        rid = res.get_json()["data"]["id"]

        client.delete(f"{WORKFLOWS}/{wf_id}", headers=headers)

        data = client.get(f"/api/v1/requests/{rid}", headers=auth_headers(org.staff)).get_json()["data"]
        assert data["workflow"]["id"] is None
        assert data["workflow"]["name"] == "Fast track"
        assert len(data["workflow"]["approvalLevels"]) == 1

    def test_other_org_workflow_not_found(self, client, org, headers):
        res = client.get(f"{WORKFLOWS}/424242", headers=headers)
        assert res.status_code == 404
