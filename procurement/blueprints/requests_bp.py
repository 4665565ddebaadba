"""
Purchase Requests Blueprint.

Routes:
  GET  /api/v1/requests                      – list visible requests (paginated)
  POST /api/v1/requests                      – submit a request
  GET  /api/v1/requests/pending-approvals    – requests awaiting the caller's decision
  GET  /api/v1/requests/<id>                 – request with approval levels
  POST /api/v1/requests/<id>/approve         – approve the current level
  POST /api/v1/requests/<id>/reject          – reject with a reason
  POST /api/v1/requests/<id>/fulfill         – mark an approved request fulfilled

Location-bound permission checks happen in the service against the
request's site and area, so routes only require a logged-in user.
"""

from flask import Blueprint, g, request

from procurement.blueprints import paginate_query
from procurement.middleware.permission_required import login_required
from procurement.services import request_service
from procurement.utils.errors import api_ok

requests_bp = Blueprint("requests", __name__, url_prefix="/api/v1/requests")


@requests_bp.route("", methods=["GET"])
@login_required
def list_requests():
    filters = {
        "status": request.args.get("status"),
        "priority": request.args.get("priority"),
        "siteId": request.args.get("siteId"),
        "areaId": request.args.get("areaId"),
        "mine": request.args.get("mine", "false").lower() == "true",
    }
    query = request_service.request_query(g.jwt_org_id, g.current_user, filters)
    items, pagination = paginate_query(query)
    return api_ok([r.to_dict(include_items=False) for r in items], pagination=pagination)


@requests_bp.route("", methods=["POST"])
@login_required
def create_request():
    """Body: { siteId, areaId, priority?, notes?, requestedByDate?,
               items: [{ catalogueItemId, quantity, notes? }] }"""
    data = request.get_json(silent=True) or {}
    req = request_service.create_request(g.jwt_org_id, g.current_user, data)
    return api_ok(req.to_dict(), status=201)


@requests_bp.route("/pending-approvals", methods=["GET"])
@login_required
def pending_approvals():
    pending = request_service.list_pending_approvals(g.jwt_org_id, g.current_user)
    return api_ok([r.to_dict(include_items=False) for r in pending])


@requests_bp.route("/<int:request_id>", methods=["GET"])
@login_required
def get_request(request_id):
    req = request_service.get_request_for_user(g.jwt_org_id, request_id, g.current_user)
    return api_ok(req.to_dict())


@requests_bp.route("/<int:request_id>/approve", methods=["POST"])
@login_required
def approve(request_id):
    """Body: { notes? }"""
    data = request.get_json(silent=True) or {}
    req = request_service.approve_request(
        g.jwt_org_id, request_id, g.current_user, comments=data.get("notes"),
    )
    return api_ok(req.to_dict())


@requests_bp.route("/<int:request_id>/reject", methods=["POST"])
@login_required
def reject(request_id):
    """Body: { notes } - the rejection reason is required."""
    data = request.get_json(silent=True) or {}
    req = request_service.reject_request(g.jwt_org_id, request_id, g.current_user, data.get("notes"))
    return api_ok(req.to_dict())


@requests_bp.route("/<int:request_id>/fulfill", methods=["POST"])
@login_required
def fulfill(request_id):
    req = request_service.fulfill_request(g.jwt_org_id, request_id, g.current_user)
    return api_ok(req.to_dict())
