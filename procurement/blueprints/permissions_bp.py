"""
Permissions Blueprint - permission catalogue and effective-permission checks.

Endpoints:
  GET /api/v1/permissions                       - Catalogue grouped by category
  GET /api/v1/permissions/categories            - Category names
  GET /api/v1/permissions/me                    - Caller's effective permissions
  GET /api/v1/permissions/me/can/:fullName      - Single check with decision trace
  GET /api/v1/permissions/users/:id             - Another user's effective permissions

``siteId`` / ``areaId`` query parameters narrow the evaluation to a location.
"""

from flask import Blueprint, g, request

from procurement.core.permissions import Perm
from procurement.middleware.permission_required import login_required, require_permission
from procurement.services import permission_service, role_service
from procurement.services.user_service import get_user
from procurement.utils.errors import api_ok
from procurement.utils.helpers import as_int

permissions_bp = Blueprint("permissions", __name__, url_prefix="/api/v1/permissions")


def _context() -> tuple[int | None, int | None]:
    return as_int(request.args.get("siteId")), as_int(request.args.get("areaId"))


def _effective(user_id: int) -> dict:
    site_id, area_id = _context()
    return {
        "userId": user_id,
        "siteId": site_id,
        "areaId": area_id,
        "isSuperAdmin": permission_service.is_super_admin(user_id),
        "permissions": sorted(permission_service.get_user_permissions(user_id, site_id, area_id)),
    }


@permissions_bp.route("", methods=["GET"])
@require_permission(Perm.VIEW_ROLES)
def list_permissions():
    return api_ok(role_service.list_permissions_grouped())


@permissions_bp.route("/categories", methods=["GET"])
@require_permission(Perm.VIEW_ROLES)
def list_categories():
    return api_ok(role_service.list_permission_categories())


@permissions_bp.route("/me", methods=["GET"])
@login_required
def my_permissions():
    return api_ok(_effective(g.current_user.id))


@permissions_bp.route("/me/can/<string:full_name>", methods=["GET"])
@login_required
def can(full_name):
    site_id, area_id = _context()
    return api_ok(permission_service.evaluate_permission(
        g.current_user.id, full_name, site_id=site_id, area_id=area_id,
    ))


@permissions_bp.route("/users/<int:user_id>", methods=["GET"])
@require_permission(Perm.VIEW_USERS)
def user_permissions(user_id):
    user = get_user(g.jwt_org_id, user_id)
    return api_ok(_effective(user.id))
