"""
Roles Blueprint - organization role management.

Endpoints:
  GET    /api/v1/roles              - List roles with permissionCount and userCount
  GET    /api/v1/roles/templates    - Built-in role templates
  GET    /api/v1/roles/:id          - Role details with permissions
  POST   /api/v1/roles              - Create custom role
  PUT    /api/v1/roles/:id          - Update custom role
  DELETE /api/v1/roles/:id          - Delete custom role
  POST   /api/v1/roles/:id/clone    - Copy a role under a new name
"""

from flask import Blueprint, g, request

from procurement.core.permissions import Perm
from procurement.middleware.permission_required import require_permission
from procurement.services import role_service
from procurement.utils.errors import api_ok

roles_bp = Blueprint("roles", __name__, url_prefix="/api/v1/roles")


@roles_bp.route("", methods=["GET"])
@require_permission(Perm.VIEW_ROLES)
def list_roles():
    return api_ok(role_service.list_roles(g.jwt_org_id))


@roles_bp.route("/templates", methods=["GET"])
@require_permission(Perm.VIEW_ROLES)
def list_templates():
    return api_ok(role_service.list_role_templates())


@roles_bp.route("/<int:role_id>", methods=["GET"])
@require_permission(Perm.VIEW_ROLES)
def get_role(role_id):
    role = role_service.get_role(g.jwt_org_id, role_id)
    return api_ok(role.to_dict(include_permissions=True, user_count=role_service.user_count(role.id)))


@roles_bp.route("", methods=["POST"])
@require_permission(Perm.CREATE_ROLES)
def create_role():
    data = request.get_json(silent=True) or {}
    role = role_service.create_role(
        g.jwt_org_id,
        name=data.get("name"),
        description=data.get("description"),
        scope=data.get("scope"),
        color=data.get("color"),
        permissions=data.get("permissions"),
        actor_id=g.current_user.id,
    )
    return api_ok(role.to_dict(include_permissions=True, user_count=0), status=201)


@roles_bp.route("/<int:role_id>", methods=["PUT"])
@require_permission(Perm.EDIT_ROLES)
def update_role(role_id):
    data = request.get_json(silent=True) or {}
    role = role_service.update_role(g.jwt_org_id, role_id, data, actor_id=g.current_user.id)
    return api_ok(role.to_dict(include_permissions=True, user_count=role_service.user_count(role.id)))


@roles_bp.route("/<int:role_id>", methods=["DELETE"])
@require_permission(Perm.DELETE_ROLES)
def delete_role(role_id):
    role_service.delete_role(g.jwt_org_id, role_id, actor_id=g.current_user.id)
    return api_ok({"deleted": True, "id": role_id})


@roles_bp.route("/<int:role_id>/clone", methods=["POST"])
@require_permission(Perm.CREATE_ROLES)
def clone_role(role_id):
    data = request.get_json(silent=True) or {}
    role = role_service.clone_role(g.jwt_org_id, role_id, data.get("name"), actor_id=g.current_user.id)
    return api_ok(role.to_dict(include_permissions=True, user_count=0), status=201)
