"""
Shared pytest fixtures for the Office Procurement Platform test suite.

Provides:
    - app: Flask application (session-scoped)
    - _setup_db: Database table creation/teardown (session-scoped)
    - session: Per-test DB cleanup w/ rollback + recreate (autouse)
    - client: Flask test client (function-scoped)
    - org: Registered organization with sites, catalogue and staff accounts
    - auth_headers: Bearer header factory for any EndUser
"""

from decimal import Decimal
from types import SimpleNamespace

import pytest

from procurement import create_app
from procurement.core.permissions import (
    PROCUREMENT_MANAGER_ROLE,
    SITE_MANAGER_ROLE,
    STAFF_ROLE,
    SUPER_ADMIN_ROLE,
)
from procurement.models import db as _db
from procurement.models.auth import EndUser, Role, UserRole
from procurement.models.reference import Area, CatalogueItem, Category, Site
from procurement.services.jwt_service import generate_access_token
from procurement.services.organization_service import register_organization
from procurement.services.permission_service import invalidate_all_cache
from procurement.utils.crypto import hash_password

TEST_PASSWORD = "Pass1234!"


# ── App & DB fixtures ────────────────────────────────────────────────────


@pytest.fixture(scope="session")
def app():
    """Create the Flask application once per test session."""
    return create_app("testing")


@pytest.fixture(scope="session")
def _setup_db(app):
    """Create all tables at session start, drop at end."""
    with app.app_context():
        _db.create_all()
    yield
    with app.app_context():
        _db.drop_all()


@pytest.fixture(autouse=True)
def session(app, _setup_db):
    """Per-test: open app context, rollback after test, recreate tables."""
    with app.app_context():
        # Ids are reused after the tables are recreated; a stale cache entry
        # would leak permissions between tests.
        invalidate_all_cache()
        yield
        invalidate_all_cache()
        _db.session.rollback()
        _db.drop_all()
        _db.create_all()


@pytest.fixture()
def client(app):
    """Flask test client."""
    return app.test_client()


# ── Helpers ──────────────────────────────────────────────────────────────


def make_user(org_id, username, role_label="STAFF", **kwargs):
    user = EndUser(
        organization_id=org_id,
        username=username,
        email=kwargs.pop("email", f"{username}@acme-offices.com"),
        password_hash=hash_password(TEST_PASSWORD),
        first_name=kwargs.pop("first_name", username.title()),
        last_name=kwargs.pop("last_name", "Tester"),
        role=role_label,
        **kwargs,
    )
    _db.session.add(user)
    _db.session.flush()
    return user


def assign(user, role, site=None, area=None):
    _db.session.add(UserRole(
        user_id=user.id,
        role_id=role.id,
        site_id=site.id if site is not None else None,
        area_id=area.id if area is not None else None,
    ))
    _db.session.flush()


@pytest.fixture()
def auth_headers():
    """Return a factory: ``auth_headers(user) -> {"Authorization": "Bearer ..."}``."""
    def _headers(user):
        token = generate_access_token(user.id, user.organization_id)
        return {"Authorization": f"Bearer {token}"}
    return _headers


# ── Domain fixtures ──────────────────────────────────────────────────────


@pytest.fixture()
def org():
    """A registered organization with two sites, a catalogue and four staff.

    Layout:
        HQ      → Floor 1, Floor 2
        Depot   → Yard
    Staff:
        admin        Super Admin, org-wide (created by registration)
        staff        Staff at HQ / Floor 1
        site_mgr     Site Manager at HQ
        proc_mgr     Procurement Manager, org-wide
    """
    organization, admin = register_organization(
        organization_name="Acme Offices",
        username="admin",
        password=TEST_PASSWORD,
        first_name="Ada",
        last_name="Admin",
        email="ada@acme-offices.com",
    )
    org_id = organization.id
    roles = {r.name: r for r in Role.query_for_org(org_id).all()}

    hq = Site(organization_id=org_id, name="HQ")
    depot = Site(organization_id=org_id, name="Depot")
    _db.session.add_all([hq, depot])
    _db.session.flush()
    floor1 = Area(organization_id=org_id, site_id=hq.id, name="Floor 1")
    floor2 = Area(organization_id=org_id, site_id=hq.id, name="Floor 2")
    yard = Area(organization_id=org_id, site_id=depot.id, name="Yard")
    _db.session.add_all([floor1, floor2, yard])

    stationery = Category(organization_id=org_id, name="Stationery")
    cleaning = Category(organization_id=org_id, name="Cleaning")
    _db.session.add_all([stationery, cleaning])
    _db.session.flush()

    pens = CatalogueItem(
        organization_id=org_id, name="Pens", unit="box", cost_per_unit=Decimal("4.50"),
        category_id=stationery.id,
    )
    paper = CatalogueItem(
        organization_id=org_id, name="A4 Paper", unit="ream", cost_per_unit=Decimal("3.20"),
        category_id=stationery.id,
    )
    stapler = CatalogueItem(
        organization_id=org_id, name="Stapler", unit="each", cost_per_unit=None,
        category_id=stationery.id,
    )
    mop = CatalogueItem(
        organization_id=org_id, name="Mop", unit="each", cost_per_unit=Decimal("12.00"),
        category_id=cleaning.id,
    )
    _db.session.add_all([pens, paper, stapler, mop])
    _db.session.flush()

    staff = make_user(org_id, "staff")
    assign(staff, roles[STAFF_ROLE], area=floor1)
    site_mgr = make_user(org_id, "sitemgr", "APPROVER_L1")
    assign(site_mgr, roles[SITE_MANAGER_ROLE], site=hq)
    proc_mgr = make_user(org_id, "procmgr", "PROCUREMENT")
    assign(proc_mgr, roles[PROCUREMENT_MANAGER_ROLE])
    _db.session.commit()

    return SimpleNamespace(
        id=org_id,
        slug=organization.slug,
        admin=admin,
        staff=staff,
        site_mgr=site_mgr,
        proc_mgr=proc_mgr,
        roles=roles,
        super_admin_role=roles[SUPER_ADMIN_ROLE],
        hq=hq,
        depot=depot,
        floor1=floor1,
        floor2=floor2,
        yard=yard,
        stationery=stationery,
        cleaning=cleaning,
        pens=pens,
        paper=paper,
        stapler=stapler,
        mop=mop,
    )


@pytest.fixture()
def request_payload(org):
    """Factory for a valid submission at HQ / Floor 1."""
    def _payload(**overrides):
        body = {
            "siteId": org.hq.id,
            "areaId": org.floor1.id,
            "priority": "normal",
            "items": [
                {"catalogueItemId": org.pens.id, "quantity": 2},
                {"catalogueItemId": org.paper.id, "quantity": 5},
            ],
        }
        body.update(overrides)
        return body
    return _payload
