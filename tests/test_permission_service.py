"""Location-aware permission resolution: union, scoping, super admin, cache."""

import pytest

from procurement.core.permissions import Perm
from procurement.models import db
from procurement.models.auth import Role, RolePermission, UserRole
from procurement.services import permission_service as ps
from procurement.services.organization_service import permissions_by_name
from tests.conftest import assign, make_user


def _role(org_id, name, *perm_names):
    role = Role(organization_id=org_id, name=name, scope="site")
    db.session.add(role)
    db.session.flush()
    for perm in permissions_by_name(perm_names).values():
        db.session.add(RolePermission(role_id=role.id, permission_id=perm.id))
    db.session.flush()
    return role


class TestLocationKeys:
    def test_location_key_variants(self):
        assert ps.location_key() == "org-wide"
        assert ps.location_key(site_id=3) == "site-3"
        assert ps.location_key(site_id=3, area_id=7) == "area-7"

    def test_parse_round_trip(self):
        assert ps.parse_location_key("org-wide") == (None, None)
        assert ps.parse_location_key("site-4") == (4, None)
        assert ps.parse_location_key("area-9") == (None, 9)

    @pytest.mark.parametrize("bad", ["site-", "region-1", "area-x", ""])
    def test_parse_rejects_garbage(self, bad):
        with pytest.raises(ValueError):
            ps.parse_location_key(bad)

    def test_area_grant_does_not_cover_parent_site(self):
        assert not ps.assignment_matches_context(
            assignment_site_id=None, assignment_area_id=5, site_id=1, area_id=None,
        )

    def test_site_grant_covers_its_areas(self):
        assert ps.assignment_matches_context(
            assignment_site_id=1, assignment_area_id=None, site_id=1, area_id=5,
        )

    def test_no_context_counts_everything(self):
        assert ps.assignment_matches_context(
            assignment_site_id=None, assignment_area_id=5, site_id=None, area_id=None,
        )


class TestResolution:
    def test_union_of_roles(self, org):
        user = make_user(org.id, "multi")
        viewer = _role(org.id, "Viewer", Perm.VIEW_REQUESTS)
        submitter = _role(org.id, "Submitter", Perm.SUBMIT_REQUESTS)
        assign(user, viewer, site=org.hq)
        assign(user, submitter, site=org.hq)
        db.session.commit()

        perms = ps.get_user_permissions(user.id, org.hq.id, org.floor1.id)
        assert {Perm.VIEW_REQUESTS, Perm.SUBMIT_REQUESTS} <= perms

    def test_area_assignment_scoped_to_that_area(self, org):
        staff = org.staff  # Staff at Floor 1
        assert ps.has_permission(staff.id, Perm.SUBMIT_REQUESTS, org.hq.id, org.floor1.id)
        assert not ps.has_permission(staff.id, Perm.SUBMIT_REQUESTS, org.hq.id, org.floor2.id)
        assert not ps.has_permission(staff.id, Perm.SUBMIT_REQUESTS, org.hq.id, None)
        assert not ps.has_permission(staff.id, Perm.SUBMIT_REQUESTS, org.depot.id, org.yard.id)

    def test_site_assignment_does_not_leak_to_other_site(self, org):
        mgr = org.site_mgr  # Site Manager at HQ
        assert ps.has_permission(mgr.id, Perm.APPROVE_REQUESTS, org.hq.id, org.floor2.id)
        assert not ps.has_permission(mgr.id, Perm.APPROVE_REQUESTS, org.depot.id, org.yard.id)

    def test_org_wide_assignment_applies_everywhere(self, org):
        assert ps.has_permission(org.proc_mgr.id, Perm.FULFILL_REQUESTS, org.depot.id, org.yard.id)

    def test_super_admin_passes_everything(self, org):
        assert ps.is_super_admin(org.admin.id)
        assert ps.has_permission(org.admin.id, Perm.DELETE_ROLES, org.depot.id, org.yard.id)
        assert ps.has_all_permissions(org.admin.id, [Perm.CREATE_USERS, Perm.EDIT_WORKFLOWS])

    def test_deny_by_default_for_unassigned_user(self, org):
        loner = make_user(org.id, "loner")
        db.session.commit()
        assert ps.get_user_permissions(loner.id) == frozenset()
        assert not ps.has_any_permission(loner.id, [Perm.VIEW_REQUESTS, Perm.VIEW_CATALOGUE])

    def test_inactive_user_has_no_permissions(self, org):
        org.proc_mgr.is_active = False
        db.session.commit()
        ps.invalidate_cache(org.proc_mgr.id)
        assert ps.get_user_permissions(org.proc_mgr.id) == frozenset()

    def test_evaluate_permission_reports_decision(self, org):
        allowed = ps.evaluate_permission(
            org.staff.id, Perm.SUBMIT_REQUESTS, site_id=org.hq.id, area_id=org.floor1.id,
        )
        assert allowed["allowed"] is True
        assert allowed["decision"] == "allow_role_grant"
        assert set(allowed["context"]["locationKeys"]) == {
            "org-wide", f"site-{org.hq.id}", f"area-{org.floor1.id}",
        }

        denied = ps.evaluate_permission(org.staff.id, Perm.FULFILL_REQUESTS)
        assert denied == {**denied, "allowed": False, "decision": "deny_by_default"}

        admin = ps.evaluate_permission(org.admin.id, Perm.FULFILL_REQUESTS)
        assert admin["decision"] == "allow_super_admin"

    def test_user_holds_role_at(self, org):
        sm_role = org.roles["Site Manager"]
        assert ps.user_holds_role_at(org.site_mgr.id, sm_role.id, org.hq.id, org.floor1.id)
        assert not ps.user_holds_role_at(org.site_mgr.id, sm_role.id, org.depot.id, org.yard.id)

    def test_locations_with_permission(self, org):
        assert ps.locations_with_permission(org.staff.id, Perm.VIEW_REQUESTS) == {f"area-{org.floor1.id}"}
        assert ps.locations_with_permission(org.admin.id, Perm.VIEW_REQUESTS) == {"org-wide"}


class TestCache:
    def test_cached_until_invalidated(self, org):
        user = make_user(org.id, "cached")
        db.session.commit()
        assert ps.get_user_permissions(user.id) == frozenset()

        db.session.add(UserRole(user_id=user.id, role_id=org.roles["Staff"].id))
        db.session.commit()
        # Stale until the user's entries are dropped
        assert ps.get_user_permissions(user.id) == frozenset()

        ps.invalidate_cache(user.id)
        assert Perm.SUBMIT_REQUESTS in ps.get_user_permissions(user.id)

    def test_ttl_expiry(self, org, app, monkeypatch):
        user = make_user(org.id, "ttl")
        db.session.commit()
        ps.get_user_permissions(user.id)
        db.session.add(UserRole(user_id=user.id, role_id=org.roles["Staff"].id))
        db.session.commit()

        monkeypatch.setitem(app.config, "PERMISSION_CACHE_TTL", -1)
        assert Perm.SUBMIT_REQUESTS in ps.get_user_permissions(user.id)
