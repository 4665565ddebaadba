"""
Approval Workflows Blueprint.

Routes:
  GET    /api/v1/workflows                  – list workflows (?triggerType=)
  GET    /api/v1/workflows/<id>             – workflow with levels
  POST   /api/v1/workflows                  – create workflow
  PUT    /api/v1/workflows/<id>             – update workflow
  PATCH  /api/v1/workflows/<id>/activate    – make it the active one for its trigger
  POST   /api/v1/workflows/<id>/duplicate   – copy into a new inactive workflow
  DELETE /api/v1/workflows/<id>             – delete workflow
"""

from flask import Blueprint, g, request

from procurement.core.permissions import Perm
from procurement.middleware.permission_required import require_permission
from procurement.services import workflow_service
from procurement.utils.errors import api_ok

workflows_bp = Blueprint("workflows", __name__, url_prefix="/api/v1/workflows")


@workflows_bp.route("", methods=["GET"])
@require_permission(Perm.VIEW_WORKFLOWS)
def list_workflows():
    workflows = workflow_service.list_workflows(g.jwt_org_id, request.args.get("triggerType"))
    return api_ok([w.to_dict() for w in workflows])


@workflows_bp.route("/<int:workflow_id>", methods=["GET"])
@require_permission(Perm.VIEW_WORKFLOWS)
def get_workflow(workflow_id):
    return api_ok(workflow_service.get_workflow(g.jwt_org_id, workflow_id).to_dict())


@workflows_bp.route("", methods=["POST"])
@require_permission(Perm.CREATE_WORKFLOWS)
def create_workflow():
    """Body: { name, description?, triggerType?, isActive?, levels: [{roleId}] }"""
    data = request.get_json(silent=True) or {}
    wf = workflow_service.create_workflow(
        g.jwt_org_id,
        name=data.get("name"),
        levels=data.get("levels"),
        trigger_type=data.get("triggerType"),
        description=data.get("description"),
        is_active=data.get("isActive"),
        actor_id=g.current_user.id,
    )
    return api_ok(wf.to_dict(), status=201)


@workflows_bp.route("/<int:workflow_id>", methods=["PUT"])
@require_permission(Perm.EDIT_WORKFLOWS)
def update_workflow(workflow_id):
    data = request.get_json(silent=True) or {}
    wf = workflow_service.update_workflow(g.jwt_org_id, workflow_id, data, actor_id=g.current_user.id)
    return api_ok(wf.to_dict())


@workflows_bp.route("/<int:workflow_id>/activate", methods=["PATCH"])
@require_permission(Perm.EDIT_WORKFLOWS)
def activate_workflow(workflow_id):
    wf = workflow_service.activate_workflow(g.jwt_org_id, workflow_id, actor_id=g.current_user.id)
    return api_ok(wf.to_dict())


@workflows_bp.route("/<int:workflow_id>/duplicate", methods=["POST"])
@require_permission(Perm.CREATE_WORKFLOWS)
def duplicate_workflow(workflow_id):
    data = request.get_json(silent=True) or {}
    wf = workflow_service.duplicate_workflow(
        g.jwt_org_id, workflow_id, data.get("name"), actor_id=g.current_user.id,
    )
    return api_ok(wf.to_dict(), status=201)


@workflows_bp.route("/<int:workflow_id>", methods=["DELETE"])
@require_permission(Perm.DELETE_WORKFLOWS)
def delete_workflow(workflow_id):
    workflow_service.delete_workflow(g.jwt_org_id, workflow_id, actor_id=g.current_user.id)
    return api_ok({"deleted": True, "id": workflow_id})
