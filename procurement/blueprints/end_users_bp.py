"""
End Users Blueprint - staff accounts, role assignments, access grants and
the role-matrix editor.

Endpoints:
  GET    /api/v1/end-users                          - List users
  POST   /api/v1/end-users                          - Create user
  GET    /api/v1/end-users/:id                      - User details
  PUT    /api/v1/end-users/:id                      - Update user
  GET    /api/v1/end-users/:id/roles                - Role assignments
  POST   /api/v1/end-users/:id/roles                - Replace all assignments
  DELETE /api/v1/end-users/:id/roles/:roleId        - Remove one role
  PUT    /api/v1/end-users/:id/access               - Replace site/area/category grants
  GET    /api/v1/end-users/:id/role-matrix          - Matrix built from assignments
  POST   /api/v1/end-users/:id/role-matrix/toggle   - Apply one click (not persisted)
  PUT    /api/v1/end-users/:id/role-matrix          - Save matrix as assignments
"""

from flask import Blueprint, g, request

from procurement.core.exceptions import ValidationError
from procurement.core.permissions import Perm
from procurement.middleware.permission_required import require_permission
from procurement.services import user_service
from procurement.utils.errors import api_ok

end_users_bp = Blueprint("end_users", __name__, url_prefix="/api/v1/end-users")


def _json() -> dict:
    return request.get_json(silent=True) or {}


@end_users_bp.route("", methods=["GET"])
@require_permission(Perm.VIEW_USERS)
def list_users():
    include_inactive = request.args.get("includeInactive", "true").lower() == "true"
    users = user_service.list_users(g.jwt_org_id, include_inactive=include_inactive)
    return api_ok([u.to_dict(include_access=False) for u in users])


@end_users_bp.route("", methods=["POST"])
@require_permission(Perm.CREATE_USERS)
def create_user():
    user = user_service.create_user(g.jwt_org_id, _json())
    return api_ok(user.to_dict(), status=201)


@end_users_bp.route("/<int:user_id>", methods=["GET"])
@require_permission(Perm.VIEW_USERS)
def get_user(user_id):
    user = user_service.get_user(g.jwt_org_id, user_id)
    data = user.to_dict()
    data["roles"] = user_service.list_user_roles(g.jwt_org_id, user.id)
    return api_ok(data)


@end_users_bp.route("/<int:user_id>", methods=["PUT"])
@require_permission(Perm.EDIT_USERS)
def update_user(user_id):
    user = user_service.update_user(g.jwt_org_id, user_id, _json())
    return api_ok(user.to_dict())


# ── Role assignments ─────────────────────────────────────────────────────

@end_users_bp.route("/<int:user_id>/roles", methods=["GET"])
@require_permission(Perm.VIEW_USERS)
def list_roles(user_id):
    return api_ok(user_service.list_user_roles(g.jwt_org_id, user_id))


@end_users_bp.route("/<int:user_id>/roles", methods=["POST"])
@require_permission(Perm.EDIT_USERS)
def replace_roles(user_id):
    """Body: { "roles": [{ "roleId", "siteId"?, "areaId"? }] }"""
    entries = _json().get("roles")
    if not isinstance(entries, list):
        raise ValidationError("roles must be a list", details={"roles": "list expected"})
    roles = user_service.replace_user_roles(g.jwt_org_id, user_id, entries, actor_id=g.current_user.id)
    return api_ok(roles)


@end_users_bp.route("/<int:user_id>/roles/<int:role_id>", methods=["DELETE"])
@require_permission(Perm.EDIT_USERS)
def remove_role(user_id, role_id):
    removed = user_service.remove_user_role(g.jwt_org_id, user_id, role_id, actor_id=g.current_user.id)
    return api_ok({"removed": removed, "roleId": role_id})


# ── Access grants ────────────────────────────────────────────────────────

@end_users_bp.route("/<int:user_id>/access", methods=["PUT"])
@require_permission(Perm.EDIT_USERS)
def replace_access(user_id):
    """Body: { "siteIds": [...], "areaIds": [...], "categoryIds": [...] }"""
    user = user_service.replace_user_access(g.jwt_org_id, user_id, _json(), actor_id=g.current_user.id)
    return api_ok(user.to_dict())


# ── Role matrix ──────────────────────────────────────────────────────────

@end_users_bp.route("/<int:user_id>/role-matrix", methods=["GET"])
@require_permission(Perm.VIEW_USERS)
def get_role_matrix(user_id):
    return api_ok(user_service.get_role_matrix(g.jwt_org_id, user_id))


@end_users_bp.route("/<int:user_id>/role-matrix/toggle", methods=["POST"])
@require_permission(Perm.EDIT_USERS)
def toggle_role_matrix(user_id):
    """Body: { "matrix": {...}, "roleId", "locationKey" }"""
    user_service.get_user(g.jwt_org_id, user_id)
    data = _json()
    if not data.get("locationKey"):
        raise ValidationError("locationKey is required", details={"locationKey": "required"})
    matrix = user_service.toggle_role_matrix(
        g.jwt_org_id, data.get("matrix") or {}, data.get("roleId"), data["locationKey"],
    )
    return api_ok({"matrix": matrix})


@end_users_bp.route("/<int:user_id>/role-matrix", methods=["PUT"])
@require_permission(Perm.EDIT_USERS)
def save_role_matrix(user_id):
    """Body: { "matrix": {...} }"""
    matrix = _json().get("matrix")
    if not isinstance(matrix, dict):
        raise ValidationError("matrix must be an object", details={"matrix": "object expected"})
    roles = user_service.save_role_matrix(g.jwt_org_id, user_id, matrix, actor_id=g.current_user.id)
    return api_ok(roles)
