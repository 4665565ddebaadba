"""
Role Service - organization role management.

Features:
  - Create / update / delete roles scoped to an organization
  - Clone a role (deep copy of its permission set under a new name)
  - Built-in role templates
  - System role protection (is_system roles are read-only)
  - Deletion refused while users hold the role or a workflow level uses it
"""

import logging
import re

from sqlalchemy import func

from procurement.core.exceptions import (
    ConflictError,
    ForbiddenError,
    NotFoundError,
    ValidationError,
)
from procurement.core.permissions import ALL_PERMISSIONS, CATEGORY_LABELS, ROLE_TEMPLATES
from procurement.models import db
from procurement.models.audit import write_audit
from procurement.models.auth import (
    DEFAULT_ROLE_COLOR,
    ROLE_SCOPES,
    Permission,
    Role,
    RolePermission,
    UserRole,
)
from procurement.models.workflow import ApprovalLevel
from procurement.services.organization_service import permissions_by_name
from procurement.services.permission_service import invalidate_all_cache
from procurement.utils.helpers import as_int

logger = logging.getLogger(__name__)

_COLOR_RE = re.compile(r"^#[0-9A-Fa-f]{6}$")


# ═══════════════════════════════════════════════════════════════
# Validation helpers
# ═══════════════════════════════════════════════════════════════

def _clean_name(name) -> str:
    if not name or not str(name).strip():
        raise ValidationError("Role name is required", details={"name": "required"})
    return str(name).strip()


def _clean_scope(scope) -> str:
    scope = scope or "organization"
    if scope not in ROLE_SCOPES:
        raise ValidationError(
            f"Invalid role scope '{scope}'", details={"scope": f"one of {', '.join(ROLE_SCOPES)}"}
        )
    return scope


def _clean_color(color) -> str:
    color = color or DEFAULT_ROLE_COLOR
    if not _COLOR_RE.match(color):
        raise ValidationError("Color must be a hex value like #10B981", details={"color": color})
    return color


def _clean_permissions(names) -> list[str]:
    if names is None:
        return []
    if not isinstance(names, list):
        raise ValidationError("permissions must be a list", details={"permissions": "list expected"})
    # Accept either full names or {"fullName": ...} objects
    cleaned = []
    for item in names:
        name = item.get("fullName") if isinstance(item, dict) else item
        cleaned.append(str(name))
    unknown = sorted(set(cleaned) - ALL_PERMISSIONS)
    if unknown:
        raise ValidationError("Unknown permissions", details={"permissions": unknown})
    return sorted(set(cleaned))


def _ensure_unique_name(org_id: int, name: str, exclude_id: int | None = None) -> None:
    q = Role.query_for_org(org_id).filter(func.lower(Role.name) == name.lower())
    if exclude_id is not None:
        q = q.filter(Role.id != exclude_id)
    if q.first() is not None:
        raise ConflictError(f"Role '{name}' already exists", details={"name": name})


def _set_permissions(role: Role, names: list[str]) -> None:
    role.role_permissions.clear()
    db.session.flush()
    for perm in permissions_by_name(names).values():
        role.role_permissions.append(RolePermission(permission_id=perm.id))


def user_count(role_id: int) -> int:
    return (
        db.session.query(func.count(func.distinct(UserRole.user_id)))
        .filter(UserRole.role_id == role_id)
        .scalar()
    )


# ═══════════════════════════════════════════════════════════════
# Queries
# ═══════════════════════════════════════════════════════════════

def get_role(org_id: int, role_id) -> Role:
    role = Role.get_for_org(org_id, as_int(role_id))
    if role is None:
        raise NotFoundError("Role", role_id)
    return role


def list_roles(org_id: int) -> list[dict]:
    """All roles of the organization with permissionCount and userCount."""
    counts = dict(
        db.session.query(UserRole.role_id, func.count(func.distinct(UserRole.user_id)))
        .join(Role, Role.id == UserRole.role_id)
        .filter(Role.organization_id == org_id)
        .group_by(UserRole.role_id)
        .all()
    )
    roles = Role.query_for_org(org_id).order_by(Role.is_system.desc(), Role.name).all()
    return [r.to_dict(user_count=counts.get(r.id, 0)) for r in roles]


def list_role_templates() -> list[dict]:
    return [
        {
            "name": t["name"],
            "description": t["description"],
            "scope": t["scope"],
            "color": t["color"],
            "permissions": list(t["permissions"]),
        }
        for t in ROLE_TEMPLATES
    ]


def list_permissions_grouped() -> list[dict]:
    """Permission catalogue grouped by category."""
    grouped: dict[str, list[dict]] = {}
    for perm in Permission.query.order_by(Permission.category, Permission.action).all():
        grouped.setdefault(perm.category, []).append(perm.to_dict())
    return [
        {
            "category": category,
            "label": CATEGORY_LABELS.get(category, category.replace("_", " ").title()),
            "permissions": perms,
        }
        for category, perms in grouped.items()
    ]


def list_permission_categories() -> list[str]:
    results = db.session.query(Permission.category).distinct().order_by(Permission.category).all()
    return [r[0] for r in results]


# ═══════════════════════════════════════════════════════════════
# Commands
# ═══════════════════════════════════════════════════════════════

def create_role(
    org_id: int,
    *,
    name,
    description: str | None = None,
    scope: str | None = None,
    color: str | None = None,
    permissions=None,
    actor_id: int | None = None,
) -> Role:
    name = _clean_name(name)
    scope = _clean_scope(scope)
    color = _clean_color(color)
    perm_names = _clean_permissions(permissions)
    _ensure_unique_name(org_id, name)

    role = Role(
        organization_id=org_id,
        name=name,
        description=description,
        scope=scope,
        color=color,
        is_system=False,
    )
    db.session.add(role)
    db.session.flush()
    _set_permissions(role, perm_names)

    write_audit(
        organization_id=org_id,
        entity_type="role",
        entity_id=role.id,
        action="role_created",
        actor_user_id=actor_id,
        diff={"name": name, "scope": scope, "permissions": perm_names},
    )
    db.session.commit()
    logger.info("Created role '%s' for org %d", name, org_id)
    return role


def update_role(org_id: int, role_id, data: dict, actor_id: int | None = None) -> Role:
    """Update a custom role (system roles cannot be modified)."""
    role = get_role(org_id, role_id)
    if role.is_system:
        raise ForbiddenError("System roles cannot be modified")

    changes = {}
    if "name" in data:
        name = _clean_name(data["name"])
        _ensure_unique_name(org_id, name, exclude_id=role.id)
        changes["name"] = name
    if "scope" in data:
        changes["scope"] = _clean_scope(data["scope"])
    if "color" in data:
        changes["color"] = _clean_color(data["color"])
    if "description" in data:
        changes["description"] = data["description"]
    perm_names = _clean_permissions(data["permissions"]) if "permissions" in data else None

    for field, value in changes.items():
        setattr(role, field, value)
    if perm_names is not None:
        before = role.permission_names
        _set_permissions(role, perm_names)
        changes["permissions"] = {"old": before, "new": perm_names}

    write_audit(
        organization_id=org_id,
        entity_type="role",
        entity_id=role.id,
        action="role_updated",
        actor_user_id=actor_id,
        diff=changes,
    )
    db.session.commit()
    if perm_names is not None:
        invalidate_all_cache()
    logger.info("Updated role %d for org %d", role.id, org_id)
    return role


def delete_role(org_id: int, role_id, actor_id: int | None = None) -> None:
    """Delete a custom role that nobody holds and no workflow level uses."""
    role = get_role(org_id, role_id)
    if role.is_system:
        raise ForbiddenError("System roles cannot be deleted")

    assigned = user_count(role.id)
    if assigned > 0:
        raise ConflictError(
            f"Cannot delete role: it is assigned to {assigned} user(s). "
            "Remove assignments first.",
            details={"userCount": assigned},
        )
    levels = ApprovalLevel.query.filter_by(role_id=role.id).count()
    if levels > 0:
        raise ConflictError(
            f"Cannot delete role: it is used by {levels} approval level(s)",
            details={"workflowLevelCount": levels},
        )

    name = role.name
    db.session.delete(role)
    write_audit(
        organization_id=org_id,
        entity_type="role",
        entity_id=role_id,
        action="role_deleted",
        actor_user_id=actor_id,
        diff={"name": name},
    )
    db.session.commit()
    invalidate_all_cache()
    logger.info("Deleted role %s from org %d", role_id, org_id)


def clone_role(org_id: int, role_id, new_name, actor_id: int | None = None) -> Role:
    """Copy description, scope, color and permissions under a new name."""
    source = get_role(org_id, role_id)
    name = _clean_name(new_name)
    _ensure_unique_name(org_id, name)

    clone = Role(
        organization_id=org_id,
        name=name,
        description=source.description,
        scope=source.scope,
        color=source.color,
        is_system=False,
    )
    db.session.add(clone)
    db.session.flush()
    perm_names = source.permission_names
    _set_permissions(clone, perm_names)

    write_audit(
        organization_id=org_id,
        entity_type="role",
        entity_id=clone.id,
        action="role_cloned",
        actor_user_id=actor_id,
        diff={"sourceId": source.id, "name": name, "permissions": perm_names},
    )
    db.session.commit()
    logger.info("Cloned role %d as '%s' (id=%d) for org %d", source.id, name, clone.id, org_id)
    return clone
