"""
Request Service - purchase request submission and the approval state machine.

States:
    pending ──approve(last level)──▶ approved ──fulfil──▶ fulfilled
       │
       └──reject(any level)──▶ rejected

Each submitted request carries its own snapshot of the active workflow's
levels (``RequestApproval`` rows).  Level 1 starts PENDING, the rest
AWAITING; approving level k promotes level k+1.

Every transition is a conditional UPDATE on the expected current status.
When the guard matches no row another actor already moved the request and
the transaction is rolled back with RequestAlreadyProcessedError.
"""

import logging
from datetime import datetime, timezone

from sqlalchemy import or_

from procurement.core.exceptions import (
    InsufficientPermissionsError,
    InvalidRequestStatusError,
    NotFoundError,
    RequestAlreadyProcessedError,
    SelfApprovalError,
    ValidationError,
)
from procurement.core.permissions import Perm
from procurement.models import db
from procurement.models.audit import write_audit
from procurement.models.reference import Area, CatalogueItem, Site
from procurement.models.request import (
    DEFAULT_PRIORITY,
    LEVEL_APPROVED,
    LEVEL_AWAITING,
    LEVEL_PENDING,
    LEVEL_REJECTED,
    PRIORITIES,
    REQUEST_STATUSES,
    STATUS_APPROVED,
    STATUS_FULFILLED,
    STATUS_PENDING,
    STATUS_REJECTED,
    Request,
    RequestApproval,
    RequestItem,
)
from procurement.models.workflow import TRIGGER_REQUEST_SUBMITTED
from procurement.services import permission_service as perms
from procurement.services.workflow_service import get_active_workflow
from procurement.utils.helpers import as_int, parse_datetime, require_int

logger = logging.getLogger(__name__)


def _now():
    return datetime.now(timezone.utc)


def _covers(keys: set[str], req: Request) -> bool:
    return bool(keys & perms.covering_location_keys(req.site_id, req.area_id))


# ═══════════════════════════════════════════════════════════════
# Submission
# ═══════════════════════════════════════════════════════════════

def _resolve_location(org_id: int, data: dict) -> tuple[Site, Area]:
    site_id = require_int(data.get("siteId"), "siteId")
    area_id = require_int(data.get("areaId"), "areaId")
    site = Site.get_for_org(org_id, site_id)
    if site is None or not site.is_active:
        raise ValidationError("Unknown site", details={"siteId": site_id})
    area = Area.get_for_org(org_id, area_id)
    if area is None or not area.is_active:
        raise ValidationError("Unknown area", details={"areaId": area_id})
    if area.site_id != site.id:
        raise ValidationError(
            "Area does not belong to the selected site",
            details={"siteId": site_id, "areaId": area_id},
        )
    return site, area


def _resolve_items(org_id: int, raw_items) -> list[tuple[CatalogueItem, int, str | None]]:
    if not isinstance(raw_items, list) or not raw_items:
        raise ValidationError("At least one item is required", details={"items": "must be a non-empty list"})

    resolved = []
    for idx, raw in enumerate(raw_items):
        if not isinstance(raw, dict):
            raise ValidationError("Invalid item", details={f"items[{idx}]": "object expected"})
        item_id = as_int(raw.get("catalogueItemId"))
        quantity = raw.get("quantity")
        if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity < 1:
            raise ValidationError(
                "Quantity must be a whole number of at least 1",
                details={f"items[{idx}].quantity": quantity},
            )
        item = CatalogueItem.get_for_org(org_id, item_id)
        if item is None or not item.is_active:
            raise ValidationError(
                "Unknown or inactive catalogue item",
                details={f"items[{idx}].catalogueItemId": raw.get("catalogueItemId")},
            )
        resolved.append((item, quantity, raw.get("notes")))

    categories = {item.category_id for item, _, _ in resolved}
    if len(categories) > 1:
        raise ValidationError(
            "All items in a request must belong to the same category",
            details={"categoryIds": sorted(c for c in categories if c is not None)},
        )
    return resolved


def _clean_priority(value) -> str:
    priority = value or DEFAULT_PRIORITY
    if priority not in PRIORITIES:
        raise ValidationError(
            f"Invalid priority '{priority}'", details={"priority": f"one of {', '.join(PRIORITIES)}"}
        )
    return priority


def create_request(org_id: int, requester, data: dict) -> Request:
    """Submit a purchase request and snapshot the active workflow's levels."""
    site, area = _resolve_location(org_id, data)
    if not perms.has_permission(requester.id, Perm.SUBMIT_REQUESTS, site.id, area.id):
        logger.warning(
            "Submit denied",
            extra={"user_id": requester.id, "organization_id": org_id, "site_id": site.id, "area_id": area.id},
        )
        raise InsufficientPermissionsError(
            "You cannot submit requests for this area", required=Perm.SUBMIT_REQUESTS
        )
    items = _resolve_items(org_id, data.get("items"))
    priority = _clean_priority(data.get("priority"))
    requested_by = parse_datetime(data.get("requestedByDate"), "requestedByDate")

    workflow = get_active_workflow(org_id, TRIGGER_REQUEST_SUBMITTED)
    req = Request(
        organization_id=org_id,
        requester_id=requester.id,
        site_id=site.id,
        area_id=area.id,
        status=STATUS_PENDING,
        priority=priority,
        notes=data.get("notes"),
        requested_by_date=requested_by,
        workflow_id=workflow.id if workflow else None,
        workflow_name=workflow.name if workflow else None,
        workflow_version=workflow.version if workflow else None,
    )
    for item, quantity, notes in items:
        req.items.append(RequestItem(catalogue_item_id=item.id, quantity=quantity, notes=notes))
    if workflow is not None:
        for level in workflow.levels:
            req.approvals.append(RequestApproval(
                level_order=level.level_order,
                role_id=level.role_id,
                role_name=level.role.name if level.role else None,
                status=LEVEL_PENDING if level.level_order == 1 else LEVEL_AWAITING,
            ))
    db.session.add(req)
    db.session.flush()

    write_audit(
        organization_id=org_id,
        entity_type="request",
        entity_id=req.id,
        action="request_submitted",
        actor_user_id=requester.id,
        diff={
            "workflowId": req.workflow_id,
            "levels": len(req.approvals),
            "items": [[item.id, quantity] for item, quantity, _ in items],
        },
    )
    db.session.commit()
    logger.info(
        "Request %d submitted with %d level(s)", req.id, len(req.approvals),
        extra={"organization_id": org_id, "user_id": requester.id},
    )
    return req


# ═══════════════════════════════════════════════════════════════
# Queries
# ═══════════════════════════════════════════════════════════════

def get_request(org_id: int, request_id) -> Request:
    req = Request.get_for_org(org_id, as_int(request_id))
    if req is None:
        raise NotFoundError("Request", request_id)
    return req


def can_view(user, req: Request) -> bool:
    if req.requester_id == user.id:
        return True
    return _covers(perms.locations_with_permission(user.id, Perm.VIEW_REQUESTS), req)


def get_request_for_user(org_id: int, request_id, user) -> Request:
    """Requests the user may not see are reported as missing."""
    req = get_request(org_id, request_id)
    if not can_view(user, req):
        raise NotFoundError("Request", request_id)
    return req


def request_query(org_id: int, user, filters: dict | None = None):
    """Requests visible to *user*: their own plus those at viewable locations."""
    filters = filters or {}
    q = Request.query_for_org(org_id)

    keys = perms.locations_with_permission(user.id, Perm.VIEW_REQUESTS)
    if perms.ORG_WIDE_KEY not in keys:
        site_ids, area_ids = [], []
        for key in keys:
            s, a = perms.parse_location_key(key)
            if a is not None:
                area_ids.append(a)
            elif s is not None:
                site_ids.append(s)
        clauses = [Request.requester_id == user.id]
        if site_ids:
            clauses.append(Request.site_id.in_(site_ids))
        if area_ids:
            clauses.append(Request.area_id.in_(area_ids))
        q = q.filter(or_(*clauses))

    status = filters.get("status")
    if status:
        if status not in REQUEST_STATUSES:
            raise ValidationError(f"Invalid status '{status}'", details={"status": list(REQUEST_STATUSES)})
        q = q.filter(Request.status == status)
    priority = filters.get("priority")
    if priority:
        q = q.filter(Request.priority == _clean_priority(priority))
    if as_int(filters.get("siteId")) is not None:
        q = q.filter(Request.site_id == as_int(filters["siteId"]))
    if as_int(filters.get("areaId")) is not None:
        q = q.filter(Request.area_id == as_int(filters["areaId"]))
    if filters.get("mine"):
        q = q.filter(Request.requester_id == user.id)
    return q.order_by(Request.created_at.desc(), Request.id.desc())


def _decision_block(user, req: Request, permission: str) -> str | None:
    """Why *user* cannot decide *req* right now: "permission", "role" or None.

    Deciding needs *permission* at the request location and, unless the user
    is a super admin, the current level's role at a covering location.
    """
    if not perms.has_permission(user.id, permission, req.site_id, req.area_id):
        return "permission"
    level = req.current_level
    if level is None or perms.is_super_admin(user.id):
        return None
    if level.role_id is None or not perms.user_holds_role_at(
        user.id, level.role_id, req.site_id, req.area_id
    ):
        return "role"
    return None


def list_pending_approvals(org_id: int, user) -> list[Request]:
    """Pending requests whose current level *user* can approve."""
    pending = (
        Request.query_for_org(org_id)
        .filter(Request.status == STATUS_PENDING, Request.requester_id != user.id)
        .order_by(Request.created_at, Request.id)
        .all()
    )
    return [r for r in pending if _decision_block(user, r, Perm.APPROVE_REQUESTS) is None]


# ═══════════════════════════════════════════════════════════════
# Transitions
# ═══════════════════════════════════════════════════════════════

def _guarded_update(model, row_id: int, expected_status: str, values: dict) -> None:
    """UPDATE ... WHERE id = :id AND status = :expected; zero rows means lost race."""
    rows = (
        model.query
        .filter(model.id == row_id, model.status == expected_status)
        .update(values, synchronize_session=False)
    )
    if rows != 1:
        db.session.rollback()
        logger.info("Guarded update on %s %d lost the race", model.__tablename__, row_id)
        raise RequestAlreadyProcessedError()


def _authorize_decision(user, req: Request, permission: str, verb: str) -> None:
    block = _decision_block(user, req, permission)
    if block is None:
        return
    log_extra = {"user_id": user.id, "organization_id": req.organization_id, "purchase_request_id": req.id}
    if block == "permission":
        logger.warning("%s denied: missing %s", verb.capitalize(), permission, extra=log_extra)
        raise InsufficientPermissionsError(
            f"You cannot {verb} requests at this location", required=permission
        )
    level = req.current_level
    logger.warning(
        "%s denied: level %d requires role %s", verb.capitalize(), level.level_order, level.role_name,
        extra=log_extra,
    )
    raise InsufficientPermissionsError(
        f"Level {level.level_order} must be decided by a {level.role_name or 'removed role'}",
        required=level.role_name,
    )


def approve_request(org_id: int, request_id, user, comments: str | None = None) -> Request:
    """Approve the current level; the last level approves the request."""
    req = get_request(org_id, request_id)
    if req.status != STATUS_PENDING:
        raise InvalidRequestStatusError(req.status, STATUS_PENDING)
    if req.requester_id == user.id:
        raise SelfApprovalError()
    _authorize_decision(user, req, Perm.APPROVE_REQUESTS, "approve")

    now = _now()
    level = req.current_level
    next_level = None
    if level is not None:
        next_level = next(
            (a for a in req.approvals if a.level_order == level.level_order + 1), None
        )
        _guarded_update(RequestApproval, level.id, LEVEL_PENDING, {
            "status": LEVEL_APPROVED,
            "approved_by": user.id,
            "approved_at": now,
            "comments": comments,
        })

    if next_level is not None:
        _guarded_update(RequestApproval, next_level.id, LEVEL_AWAITING, {"status": LEVEL_PENDING})
        action, diff = "request_level_approved", {
            "level": level.level_order, "next": next_level.level_order,
        }
    else:
        _guarded_update(Request, req.id, STATUS_PENDING, {
            "status": STATUS_APPROVED,
            "approved_by": user.id,
            "approved_at": now,
        })
        action, diff = "request_approved", {
            "level": level.level_order if level else None,
            "from": STATUS_PENDING, "to": STATUS_APPROVED,
        }
    if comments:
        diff["comments"] = comments

    write_audit(
        organization_id=org_id,
        entity_type="request",
        entity_id=req.id,
        action=action,
        actor_user_id=user.id,
        diff=diff,
    )
    db.session.commit()
    logger.info(
        "Request %d: %s by user %d", req.id, action, user.id,
        extra={"organization_id": org_id, "user_id": user.id},
    )
    return req


def reject_request(org_id: int, request_id, user, reason) -> Request:
    """Reject at the current level; the request becomes terminal."""
    reason = (reason or "").strip() if isinstance(reason, str) else ""
    if not reason:
        raise ValidationError("A rejection reason is required", details={"notes": "required"})

    req = get_request(org_id, request_id)
    if req.status != STATUS_PENDING:
        raise InvalidRequestStatusError(req.status, STATUS_PENDING)
    _authorize_decision(user, req, Perm.REJECT_REQUESTS, "reject")

    now = _now()
    level = req.current_level
    if level is not None:
        _guarded_update(RequestApproval, level.id, LEVEL_PENDING, {
            "status": LEVEL_REJECTED,
            "approved_by": user.id,
            "approved_at": now,
            "rejection_reason": reason,
        })
    _guarded_update(Request, req.id, STATUS_PENDING, {"status": STATUS_REJECTED})

    write_audit(
        organization_id=org_id,
        entity_type="request",
        entity_id=req.id,
        action="request_rejected",
        actor_user_id=user.id,
        diff={"level": level.level_order if level else None, "reason": reason},
    )
    db.session.commit()
    logger.info(
        "Request %d rejected by user %d", req.id, user.id,
        extra={"organization_id": org_id, "user_id": user.id},
    )
    return req


def fulfill_request(org_id: int, request_id, user) -> Request:
    req = get_request(org_id, request_id)
    if req.status != STATUS_APPROVED:
        raise InvalidRequestStatusError(req.status, STATUS_APPROVED)
    if not perms.has_permission(user.id, Perm.FULFILL_REQUESTS, req.site_id, req.area_id):
        raise InsufficientPermissionsError(
            "You cannot fulfil requests at this location", required=Perm.FULFILL_REQUESTS
        )

    _guarded_update(Request, req.id, STATUS_APPROVED, {
        "status": STATUS_FULFILLED,
        "fulfilled_by": user.id,
        "fulfilled_at": _now(),
    })
    write_audit(
        organization_id=org_id,
        entity_type="request",
        entity_id=req.id,
        action="request_fulfilled",
        actor_user_id=user.id,
        diff={"from": STATUS_APPROVED, "to": STATUS_FULFILLED},
    )
    db.session.commit()
    logger.info(
        "Request %d fulfilled by user %d", req.id, user.id,
        extra={"organization_id": org_id, "user_id": user.id},
    )
    return req
