"""Sites, areas, categories and the catalogue."""

import pytest

from procurement.core.exceptions import ValidationError
from procurement.services import reference_service


class TestSitesAndAreas:
    def test_list_sites_with_areas(self, client, org, auth_headers):
        res = client.get("/api/v1/sites", headers=auth_headers(org.staff))
        assert res.status_code == 200
        sites = {s["name"]: s for s in res.get_json()["data"]}
        assert set(sites) == {"HQ", "Depot"}
        assert sorted(a["name"] for a in sites["HQ"]["areas"]) == ["Floor 1", "Floor 2"]

    def test_create_and_update_site(self, client, org, auth_headers):
        headers = auth_headers(org.admin)
        res = client.post("/api/v1/sites", json={"name": "Annex", "address": "1 Side St"}, headers=headers)
        assert res.status_code == 201
        site = res.get_json()["data"]
        assert site["address"] == "1 Side St"

        res = client.put(f"/api/v1/sites/{site['id']}", json={"isActive": False}, headers=headers)
        assert res.get_json()["data"]["isActive"] is False
        names = [s["name"] for s in client.get("/api/v1/sites", headers=headers).get_json()["data"]]
        assert "Annex" not in names
        names = [
            s["name"]
            for s in client.get("/api/v1/sites?includeInactive=true", headers=headers).get_json()["data"]
        ]
        assert "Annex" in names

    def test_site_name_required(self, client, org, auth_headers):
        res = client.post("/api/v1/sites", json={"name": "  "}, headers=auth_headers(org.admin))
        assert res.status_code == 400

    def test_staff_cannot_create_site(self, client, org, auth_headers):
        res = client.post("/api/v1/sites", json={"name": "Annex"}, headers=auth_headers(org.staff))
        assert res.status_code == 403

    def test_areas(self, client, org, auth_headers):
        headers = auth_headers(org.admin)
        res = client.post(f"/api/v1/sites/{org.depot.id}/areas", json={"name": "Loading Bay"}, headers=headers)
        assert res.status_code == 201
        area_id = res.get_json()["data"]["id"]

        client.put(f"/api/v1/areas/{area_id}", json={"isActive": False}, headers=headers)
        res = client.get(f"/api/v1/sites/{org.depot.id}/areas", headers=headers)
        assert [a["name"] for a in res.get_json()["data"]] == ["Yard"]

    def test_areas_of_unknown_site(self, client, org, auth_headers):
        res = client.get("/api/v1/sites/9999/areas", headers=auth_headers(org.admin))
        assert res.status_code == 404


class TestCatalogue:
    def test_categories(self, client, org, auth_headers):
        res = client.get("/api/v1/categories", headers=auth_headers(org.staff))
        assert [c["name"] for c in res.get_json()["data"]] == ["Cleaning", "Stationery"]

    def test_duplicate_category(self, client, org, auth_headers):
        res = client.post("/api/v1/categories", json={"name": "Cleaning"}, headers=auth_headers(org.admin))
        assert res.status_code == 409

    def test_list_items_by_category(self, client, org, auth_headers):
        res = client.get(
            f"/api/v1/catalogue-items?categoryId={org.cleaning.id}", headers=auth_headers(org.staff),
        )
        items = res.get_json()["data"]
        assert [i["name"] for i in items] == ["Mop"]
        assert items[0]["categoryName"] == "Cleaning"
        assert items[0]["costPerUnit"] == pytest.approx(12.0)

    def test_create_item(self, client, org, auth_headers):
        res = client.post(
            "/api/v1/catalogue-items",
            json={
                "name": "Sticky Notes", "unit": "pack", "costPerUnit": "2.499",
                "categoryId": org.stationery.id, "supplier": "Paperworld",
            },
            headers=auth_headers(org.proc_mgr),
        )
        assert res.status_code == 201
        item = res.get_json()["data"]
        assert item["costPerUnit"] == pytest.approx(2.50)
        assert item["supplier"] == "Paperworld"

    def test_unpriced_item_allowed(self, client, org, auth_headers):
        res = client.post(
            "/api/v1/catalogue-items",
            json={"name": "Whiteboard", "unit": "each", "categoryId": org.stationery.id},
            headers=auth_headers(org.admin),
        )
        assert res.status_code == 201
        assert res.get_json()["data"]["costPerUnit"] is None

    @pytest.mark.parametrize("cost", ["-1", "abc", "NaN"])
    def test_bad_cost_rejected(self, org, cost):
        with pytest.raises(ValidationError):
            reference_service.create_catalogue_item(
                org.id, {"name": "Bad", "unit": "each", "costPerUnit": cost},
            )

    def test_unknown_category_rejected(self, client, org, auth_headers):
        res = client.post(
            "/api/v1/catalogue-items",
            json={"name": "Thing", "unit": "each", "categoryId": 9999},
            headers=auth_headers(org.admin),
        )
        assert res.status_code == 400

    def test_deactivate_item(self, client, org, auth_headers):
        headers = auth_headers(org.admin)
        res = client.put(f"/api/v1/catalogue-items/{org.mop.id}", json={"isActive": False}, headers=headers)
        assert res.status_code == 200
        names = [i["name"] for i in client.get("/api/v1/catalogue-items", headers=headers).get_json()["data"]]
        assert "Mop" not in names

    def test_staff_cannot_edit_catalogue(self, client, org, auth_headers):
        res = client.put(
            f"/api/v1/catalogue-items/{org.mop.id}", json={"costPerUnit": 1}, headers=auth_headers(org.staff),
        )
        assert res.status_code == 403
