"""
Approval Workflow Service - template CRUD, activation and default seeding.

Invariants:
  - at most one workflow per (organization, trigger_type) is active; every
    operation that activates a workflow deactivates its siblings in the same
    transaction
  - the default workflow is read-only and cannot be deleted; it is only
    deactivated as a side effect of activating a sibling, and comes back
    when the active sibling is deleted
  - level_order is 1..N in the order the levels were given
"""

import logging

from procurement.core.exceptions import (
    ConflictError,
    ForbiddenError,
    NotFoundError,
    ValidationError,
)
from procurement.core.permissions import PROCUREMENT_MANAGER_ROLE, SITE_MANAGER_ROLE
from procurement.models import db
from procurement.models.audit import write_audit
from procurement.models.auth import Role
from procurement.models.workflow import (
    TRIGGER_REQUEST_SUBMITTED,
    TRIGGER_TYPES,
    ApprovalLevel,
    ApprovalWorkflow,
)
from procurement.utils.helpers import as_int

logger = logging.getLogger(__name__)

DEFAULT_WORKFLOW_NAME = "Standard Request Approval"
DEFAULT_WORKFLOW_DESCRIPTION = "Site manager approval followed by procurement approval"


# ═══════════════════════════════════════════════════════════════
# Helpers
# ═══════════════════════════════════════════════════════════════

def _role_ids_from_levels(org_id: int, levels) -> list[int]:
    """Validate a levels payload and return role ids in level order.

    Accepts ``[{"roleId": 3}, ...]``, ``[{"role_id": 3}, ...]`` or ``[3, ...]``.
    """
    if not isinstance(levels, list) or not levels:
        raise ValidationError(
            "At least one approval level is required", details={"levels": "must be a non-empty list"}
        )
    role_ids = []
    for idx, level in enumerate(levels, start=1):
        raw = level.get("roleId", level.get("role_id")) if isinstance(level, dict) else level
        role_id = as_int(raw)
        if role_id is None:
            raise ValidationError(
                f"Level {idx} is missing a role", details={f"levels[{idx - 1}]": "roleId is required"}
            )
        if Role.get_for_org(org_id, role_id) is None:
            raise ValidationError(
                f"Level {idx} references an unknown role", details={f"levels[{idx - 1}]": role_id}
            )
        role_ids.append(role_id)
    return role_ids


def _replace_levels(workflow: ApprovalWorkflow, role_ids: list[int]) -> None:
    workflow.levels.clear()
    db.session.flush()
    for order, role_id in enumerate(role_ids, start=1):
        workflow.levels.append(ApprovalLevel(level_order=order, role_id=role_id))


def _validate_name(name) -> str:
    if not name or not str(name).strip():
        raise ValidationError("Workflow name is required", details={"name": "required"})
    return str(name).strip()


def _validate_trigger(trigger_type) -> str:
    trigger_type = trigger_type or TRIGGER_REQUEST_SUBMITTED
    if trigger_type not in TRIGGER_TYPES:
        raise ValidationError(
            f"Unknown trigger type '{trigger_type}'",
            details={"triggerType": f"one of {', '.join(TRIGGER_TYPES)}"},
        )
    return trigger_type


def _deactivate_siblings(workflow: ApprovalWorkflow) -> int:
    return (
        ApprovalWorkflow.query_for_org(workflow.organization_id)
        .filter(
            ApprovalWorkflow.trigger_type == workflow.trigger_type,
            ApprovalWorkflow.id != workflow.id,
            ApprovalWorkflow.is_active.is_(True),
        )
        .update({"is_active": False}, synchronize_session="fetch")
    )


# ═══════════════════════════════════════════════════════════════
# Queries
# ═══════════════════════════════════════════════════════════════

def get_workflow(org_id: int, workflow_id) -> ApprovalWorkflow:
    workflow = ApprovalWorkflow.get_for_org(org_id, as_int(workflow_id))
    if workflow is None:
        raise NotFoundError("Workflow", workflow_id)
    return workflow


def list_workflows(org_id: int, trigger_type: str | None = None) -> list[ApprovalWorkflow]:
    q = ApprovalWorkflow.query_for_org(org_id)
    if trigger_type:
        q = q.filter_by(trigger_type=trigger_type)
    return q.order_by(
        ApprovalWorkflow.is_default.desc(), ApprovalWorkflow.name
    ).all()


def get_active_workflow(org_id: int, trigger_type: str = TRIGGER_REQUEST_SUBMITTED):
    return (
        ApprovalWorkflow.query_for_org(org_id)
        .filter_by(trigger_type=trigger_type, is_active=True)
        .order_by(ApprovalWorkflow.id)
        .first()
    )


# ═══════════════════════════════════════════════════════════════
# Commands
# ═══════════════════════════════════════════════════════════════

def create_workflow(
    org_id: int,
    *,
    name,
    levels,
    trigger_type: str | None = None,
    description: str | None = None,
    is_active: bool | None = None,
    actor_id: int | None = None,
) -> ApprovalWorkflow:
    """Create a workflow template.

    The new workflow becomes active when ``is_active`` is requested or when
    nothing is active yet for its trigger.
    """
    name = _validate_name(name)
    trigger_type = _validate_trigger(trigger_type)
    role_ids = _role_ids_from_levels(org_id, levels)

    workflow = ApprovalWorkflow(
        organization_id=org_id,
        name=name,
        description=description,
        trigger_type=trigger_type,
        is_default=False,
        is_active=False,
        version=1,
        created_by=actor_id,
    )
    db.session.add(workflow)
    db.session.flush()
    _replace_levels(workflow, role_ids)

    if is_active or get_active_workflow(org_id, trigger_type) is None:
        workflow.is_active = True
        db.session.flush()
        _deactivate_siblings(workflow)

    write_audit(
        organization_id=org_id,
        entity_type="workflow",
        entity_id=workflow.id,
        action="workflow_created",
        actor_user_id=actor_id,
        diff={"name": name, "triggerType": trigger_type, "levels": role_ids},
    )
    db.session.commit()
    logger.info("Created workflow '%s' (id=%d) for org %d", name, workflow.id, org_id)
    return workflow


def update_workflow(
    org_id: int,
    workflow_id,
    data: dict,
    actor_id: int | None = None,
) -> ApprovalWorkflow:
    """Edit name/description/levels, or toggle activation.

    Default workflows are read-only.  Deactivating the active workflow
    directly is refused: activate another one instead.
    """
    workflow = get_workflow(org_id, workflow_id)
    if workflow.is_default:
        raise ForbiddenError("The default workflow is read-only; duplicate it to customise")

    wanted_active = data.get("is_active", data.get("isActive"))
    if wanted_active is not None and not wanted_active and workflow.is_active:
        raise ConflictError(
            "Cannot deactivate the only active workflow for this trigger; "
            "activate another workflow instead",
            details={"triggerType": workflow.trigger_type},
        )

    name = _validate_name(data["name"]) if "name" in data else None
    role_ids = _role_ids_from_levels(org_id, data["levels"]) if "levels" in data else None

    changed = {}
    if name is not None:
        workflow.name = name
        changed["name"] = name
    if "description" in data:
        workflow.description = data["description"]
        changed["description"] = workflow.description
    if role_ids is not None:
        _replace_levels(workflow, role_ids)
        changed["levels"] = role_ids
    if changed:
        workflow.version = (workflow.version or 1) + 1

    if wanted_active and not workflow.is_active:
        workflow.is_active = True
        db.session.flush()
        _deactivate_siblings(workflow)
        changed["isActive"] = True

    write_audit(
        organization_id=org_id,
        entity_type="workflow",
        entity_id=workflow.id,
        action="workflow_updated",
        actor_user_id=actor_id,
        diff=changed,
    )
    db.session.commit()
    logger.info("Updated workflow %d (version %d) for org %d", workflow.id, workflow.version, org_id)
    return workflow


def activate_workflow(org_id: int, workflow_id, actor_id: int | None = None) -> ApprovalWorkflow:
    """Make this workflow the single active one for its trigger."""
    workflow = get_workflow(org_id, workflow_id)
    workflow.is_active = True
    db.session.flush()
    deactivated = _deactivate_siblings(workflow)

    write_audit(
        organization_id=org_id,
        entity_type="workflow",
        entity_id=workflow.id,
        action="workflow_activated",
        actor_user_id=actor_id,
        diff={"triggerType": workflow.trigger_type, "deactivated": deactivated},
    )
    db.session.commit()
    db.session.refresh(workflow)
    logger.info(
        "Activated workflow %d for trigger '%s' in org %d (%d sibling(s) deactivated)",
        workflow.id, workflow.trigger_type, org_id, deactivated,
    )
    return workflow


def duplicate_workflow(
    org_id: int,
    workflow_id,
    new_name: str | None = None,
    actor_id: int | None = None,
) -> ApprovalWorkflow:
    """Deep-copy levels into a new inactive, non-default workflow."""
    source = get_workflow(org_id, workflow_id)
    name = _validate_name(new_name) if new_name is not None else f"{source.name} (Copy)"

    copy = ApprovalWorkflow(
        organization_id=org_id,
        name=name,
        description=source.description,
        trigger_type=source.trigger_type,
        is_default=False,
        is_active=False,
        version=1,
        created_by=actor_id,
    )
    db.session.add(copy)
    db.session.flush()
    _replace_levels(copy, [lvl.role_id for lvl in source.levels])

    write_audit(
        organization_id=org_id,
        entity_type="workflow",
        entity_id=copy.id,
        action="workflow_duplicated",
        actor_user_id=actor_id,
        diff={"sourceId": source.id, "name": name},
    )
    db.session.commit()
    logger.info("Duplicated workflow %d as %d for org %d", source.id, copy.id, org_id)
    return copy


def delete_workflow(org_id: int, workflow_id, actor_id: int | None = None) -> None:
    """Delete a user-defined workflow.

    If it was active, the default workflow for the trigger is re-activated.
    Requests already submitted keep their own level snapshot.
    """
    workflow = get_workflow(org_id, workflow_id)
    if workflow.is_default:
        raise ForbiddenError("The default workflow cannot be deleted")

    was_active = workflow.is_active
    trigger_type = workflow.trigger_type
    deleted_id = workflow.id
    db.session.delete(workflow)
    db.session.flush()

    reactivated = None
    if was_active:
        fallback = (
            ApprovalWorkflow.query_for_org(org_id)
            .filter_by(trigger_type=trigger_type, is_default=True)
            .first()
        )
        if fallback is not None:
            fallback.is_active = True
            reactivated = fallback.id

    write_audit(
        organization_id=org_id,
        entity_type="workflow",
        entity_id=deleted_id,
        action="workflow_deleted",
        actor_user_id=actor_id,
        diff={"wasActive": was_active, "reactivated": reactivated},
    )
    db.session.commit()
    logger.info("Deleted workflow %d from org %d", deleted_id, org_id)


def seed_default_workflow(org_id: int):
    """Create the read-only default workflow for request submission.

    Levels: Site Manager, then Procurement Manager.  Idempotent; returns None
    when either role is missing.
    """
    existing = (
        ApprovalWorkflow.query_for_org(org_id)
        .filter_by(trigger_type=TRIGGER_REQUEST_SUBMITTED, is_default=True)
        .first()
    )
    if existing is not None:
        return existing

    site_manager = Role.query_for_org(org_id).filter_by(name=SITE_MANAGER_ROLE).first()
    procurement = Role.query_for_org(org_id).filter_by(name=PROCUREMENT_MANAGER_ROLE).first()
    if site_manager is None or procurement is None:
        logger.warning("Default workflow not seeded for org %d: approver roles missing", org_id)
        return None

    workflow = ApprovalWorkflow(
        organization_id=org_id,
        name=DEFAULT_WORKFLOW_NAME,
        description=DEFAULT_WORKFLOW_DESCRIPTION,
        trigger_type=TRIGGER_REQUEST_SUBMITTED,
        is_default=True,
        is_active=get_active_workflow(org_id, TRIGGER_REQUEST_SUBMITTED) is None,
        version=1,
    )
    db.session.add(workflow)
    db.session.flush()
    _replace_levels(workflow, [site_manager.id, procurement.id])
    db.session.flush()
    return workflow
