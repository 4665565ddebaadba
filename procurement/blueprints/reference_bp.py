"""
Reference Data Blueprint - sites, areas, categories and catalogue items.

Routes:
  GET  /api/v1/sites                      PUT /api/v1/sites/<id>
  POST /api/v1/sites
  GET  /api/v1/sites/<id>/areas           PUT /api/v1/areas/<id>
  POST /api/v1/sites/<id>/areas
  GET  /api/v1/categories
  POST /api/v1/categories
  GET  /api/v1/catalogue-items            PUT /api/v1/catalogue-items/<id>
  POST /api/v1/catalogue-items
"""

from flask import Blueprint, g, request

from procurement.core.permissions import Perm
from procurement.middleware.permission_required import require_any_permission, require_permission
from procurement.services import reference_service
from procurement.utils.errors import api_ok

reference_bp = Blueprint("reference", __name__, url_prefix="/api/v1")


def _json() -> dict:
    return request.get_json(silent=True) or {}


def _include_inactive() -> bool:
    return request.args.get("includeInactive", "false").lower() == "true"


# ── Sites ────────────────────────────────────────────────────────────────

@reference_bp.route("/sites", methods=["GET"])
@require_any_permission(Perm.VIEW_SITES, Perm.VIEW_AREAS, Perm.SUBMIT_REQUESTS)
def list_sites():
    sites = reference_service.list_sites(g.jwt_org_id, include_inactive=_include_inactive())
    return api_ok([s.to_dict(include_areas=True) for s in sites])


@reference_bp.route("/sites", methods=["POST"])
@require_permission(Perm.CREATE_SITES)
def create_site():
    return api_ok(reference_service.create_site(g.jwt_org_id, _json()).to_dict(), status=201)


@reference_bp.route("/sites/<int:site_id>", methods=["PUT"])
@require_permission(Perm.EDIT_SITES)
def update_site(site_id):
    return api_ok(reference_service.update_site(g.jwt_org_id, site_id, _json()).to_dict())


# ── Areas ────────────────────────────────────────────────────────────────

@reference_bp.route("/sites/<int:site_id>/areas", methods=["GET"])
@require_any_permission(Perm.VIEW_AREAS, Perm.VIEW_SITES, Perm.SUBMIT_REQUESTS)
def list_areas(site_id):
    return api_ok([a.to_dict() for a in reference_service.list_areas(g.jwt_org_id, site_id)])


@reference_bp.route("/sites/<int:site_id>/areas", methods=["POST"])
@require_permission(Perm.CREATE_AREAS)
def create_area(site_id):
    area = reference_service.create_area(g.jwt_org_id, site_id, _json())
    return api_ok(area.to_dict(), status=201)


@reference_bp.route("/areas/<int:area_id>", methods=["PUT"])
@require_permission(Perm.EDIT_AREAS)
def update_area(area_id):
    return api_ok(reference_service.update_area(g.jwt_org_id, area_id, _json()).to_dict())


# ── Categories ───────────────────────────────────────────────────────────

@reference_bp.route("/categories", methods=["GET"])
@require_permission(Perm.VIEW_CATALOGUE)
def list_categories():
    return api_ok([c.to_dict() for c in reference_service.list_categories(g.jwt_org_id)])


@reference_bp.route("/categories", methods=["POST"])
@require_permission(Perm.CREATE_CATALOGUE)
def create_category():
    return api_ok(reference_service.create_category(g.jwt_org_id, _json()).to_dict(), status=201)


# ── Catalogue items ──────────────────────────────────────────────────────

@reference_bp.route("/catalogue-items", methods=["GET"])
@require_permission(Perm.VIEW_CATALOGUE)
def list_catalogue_items():
    items = reference_service.list_catalogue_items(
        g.jwt_org_id,
        category_id=request.args.get("categoryId"),
        include_inactive=_include_inactive(),
    )
    return api_ok([i.to_dict() for i in items])


@reference_bp.route("/catalogue-items", methods=["POST"])
@require_permission(Perm.CREATE_CATALOGUE)
def create_catalogue_item():
    item = reference_service.create_catalogue_item(g.jwt_org_id, _json())
    return api_ok(item.to_dict(), status=201)


@reference_bp.route("/catalogue-items/<int:item_id>", methods=["PUT"])
@require_permission(Perm.EDIT_CATALOGUE)
def update_catalogue_item(item_id):
    return api_ok(reference_service.update_catalogue_item(g.jwt_org_id, item_id, _json()).to_dict())
