"""Registration, login, bearer-token middleware and /auth/me."""

import time

import jwt as pyjwt
import pytest

from procurement.core.permissions import Perm
from procurement.models import db
from procurement.models.auth import Organization, Role
from procurement.services import jwt_service
from tests.conftest import TEST_PASSWORD


def _register(client, **overrides):
    body = {
        "organizationName": "Initech Offices",
        "username": "Bill",
        "password": "TpsReport1",
        "firstName": "Bill",
        "lastName": "Lumbergh",
        "email": "bill@initech.com",
    }
    body.update(overrides)
    return client.post("/api/v1/auth/register", json=body)


class TestRegister:
    def test_register_creates_org_roles_and_workflow(self, client):
        res = _register(client)
        assert res.status_code == 201
        data = res.get_json()["data"]
        assert data["tokenType"] == "Bearer"
        assert data["expiresIn"] == 900
        assert data["organization"]["slug"] == "initech-offices"
        assert data["user"]["username"] == "bill"

        org_id = data["organization"]["id"]
        names = {r.name for r in Role.query_for_org(org_id).all()}
        assert names == {"Super Admin", "Site Manager", "Procurement Manager", "Staff"}

        headers = {"Authorization": f"Bearer {data['accessToken']}"}
        workflows = client.get("/api/v1/workflows", headers=headers).get_json()["data"]
        assert len(workflows) == 1
        assert workflows[0]["isDefault"] is True
        assert workflows[0]["isActive"] is True
        assert [lvl["roleName"] for lvl in workflows[0]["levels"]] == [
            "Site Manager", "Procurement Manager",
        ]

    def test_duplicate_slug(self, client):
        assert _register(client).status_code == 201
        res = _register(client, username="someone")
        assert res.status_code == 409

    def test_validation(self, client):
        res = _register(client, password="short", organizationName="")
        assert res.status_code == 400
        details = res.get_json()["error"]["details"]
        assert {"password", "organizationName"} <= set(details)
        assert Organization.query.count() == 0


class TestLogin:
    def test_login_success(self, client, org):
        res = client.post("/api/v1/auth/login", json={
            "organization": org.slug, "username": "STAFF", "password": TEST_PASSWORD,
        })
        assert res.status_code == 200
        data = res.get_json()["data"]
        claims = jwt_service.decode_access_token(data["accessToken"])
        assert claims["sub"] == org.staff.id
        assert claims["org_id"] == org.id
        assert data["user"]["lastLoginAt"] is not None

    def test_login_by_email(self, client, org):
        res = client.post("/api/v1/auth/login", json={
            "organization": org.slug, "username": "staff@acme-offices.com", "password": TEST_PASSWORD,
        })
        assert res.status_code == 200

    @pytest.mark.parametrize("body", [
        {"username": "staff", "password": "wrong-password"},
        {"username": "ghost", "password": TEST_PASSWORD},
        {"organization": "no-such-org", "username": "staff", "password": TEST_PASSWORD},
    ])
    def test_login_failure(self, client, org, body):
        body = {"organization": org.slug, **body}
        res = client.post("/api/v1/auth/login", json=body)
        assert res.status_code == 401
        assert res.get_json()["error"]["message"] == "Invalid username or password"

    def test_login_missing_fields(self, client, org):
        res = client.post("/api/v1/auth/login", json={"organization": org.slug})
        assert res.status_code == 400
        assert res.get_json()["error"]["details"] == {"username": "required", "password": "required"}

    def test_inactive_account_cannot_login(self, client, org):
        org.staff.is_active = False
        db.session.commit()
        res = client.post("/api/v1/auth/login", json={
            "organization": org.slug, "username": "staff", "password": TEST_PASSWORD,
        })
        assert res.status_code == 401


class TestBearerToken:
    def test_me(self, client, org, auth_headers):
        res = client.get("/api/v1/auth/me", headers=auth_headers(org.staff))
        assert res.status_code == 200
        data = res.get_json()["data"]
        assert data["username"] == "staff"
        assert data["isSuperAdmin"] is False
        assert Perm.SUBMIT_REQUESTS in data["permissions"]
        assert data["organization"]["id"] == org.id
        assert [r["name"] for r in data["roles"]] == ["Staff"]

    def test_missing_token(self, client, org):
        res = client.get("/api/v1/auth/me")
        assert res.status_code == 401
        assert res.get_json() == {
            "success": False,
            "error": {"code": "UNAUTHORIZED", "message": "Authentication required"},
        }

    def test_garbage_token(self, client, org):
        res = client.get("/api/v1/auth/me", headers={"Authorization": "Bearer not.a.jwt"})
        assert res.status_code == 401
        assert res.get_json()["error"]["message"] == "Invalid token"

    def test_expired_token(self, client, org, app):
        now = int(time.time())
        token = pyjwt.encode(
            {"sub": str(org.staff.id), "org_id": org.id, "type": "access", "iat": now - 120, "exp": now - 60},
            app.config["JWT_SECRET_KEY"],
            algorithm="HS256",
        )
        res = client.get("/api/v1/auth/me", headers={"Authorization": f"Bearer {token}"})
        assert res.status_code == 401
        assert res.get_json()["error"]["message"] == "Token has expired"

    def test_token_signed_with_other_key(self, client, org):
        now = int(time.time())
        token = pyjwt.encode(
            {"sub": str(org.staff.id), "org_id": org.id, "type": "access", "iat": now, "exp": now + 60},
            "some-other-secret-that-is-long-enough",
            algorithm="HS256",
        )
        res = client.get("/api/v1/auth/me", headers={"Authorization": f"Bearer {token}"})
        assert res.status_code == 401

    def test_token_without_org_claim(self, app, org):
        now = int(time.time())
        token = pyjwt.encode(
            {"sub": str(org.staff.id), "type": "access", "iat": now, "exp": now + 60},
            app.config["JWT_SECRET_KEY"],
            algorithm="HS256",
        )
        with pytest.raises(pyjwt.InvalidTokenError):
            jwt_service.decode_access_token(token)

    def test_token_for_inactive_organization(self, client, org, auth_headers):
        db.session.get(Organization, org.id).is_active = False
        db.session.commit()
        res = client.get("/api/v1/auth/me", headers=auth_headers(org.staff))
        assert res.status_code == 401
