"""
User Service - staff accounts, authentication, role assignments and access
grants.

Role assignments and access grants are replaced wholesale: the caller sends
the complete new set and the previous set is discarded in the same
transaction.
"""

import logging
from datetime import datetime, timezone

from email_validator import EmailNotValidError, validate_email
from sqlalchemy import func

from procurement.core.exceptions import (
    AuthenticationError,
    ConflictError,
    NotFoundError,
    ValidationError,
)
from procurement.models import db
from procurement.models.audit import write_audit
from procurement.models.auth import LEGACY_USER_ROLES, EndUser, Role, UserRole
from procurement.models.reference import Area, Category, Site
from procurement.services import role_matrix
from procurement.services.permission_service import invalidate_cache
from procurement.utils.crypto import hash_password, verify_password
from procurement.utils.helpers import as_int

logger = logging.getLogger(__name__)

MIN_PASSWORD_LENGTH = 8


# ═══════════════════════════════════════════════════════════════
# Authentication
# ═══════════════════════════════════════════════════════════════

def authenticate_user(org_id: int, username: str, password: str) -> EndUser:
    """Authenticate with username (or email) + password.  Returns EndUser on success."""
    login = (username or "").strip().lower()
    user = (
        EndUser.query_for_org(org_id)
        .filter((func.lower(EndUser.username) == login) | (func.lower(EndUser.email) == login))
        .first()
    )
    if not user or not verify_password(password, user.password_hash):
        raise AuthenticationError("Invalid username or password")
    if not user.is_active:
        raise AuthenticationError("Account is inactive")

    user.last_login_at = datetime.now(timezone.utc)
    db.session.commit()
    return user


def get_active_user(org_id: int, user_id) -> EndUser | None:
    user = EndUser.get_for_org(org_id, as_int(user_id))
    if user is None or not user.is_active:
        return None
    return user


# ═══════════════════════════════════════════════════════════════
# Staff accounts
# ═══════════════════════════════════════════════════════════════

def get_user(org_id: int, user_id) -> EndUser:
    user = EndUser.get_for_org(org_id, as_int(user_id))
    if user is None:
        raise NotFoundError("User", user_id)
    return user


def list_users(org_id: int, include_inactive: bool = True) -> list[EndUser]:
    q = EndUser.query_for_org(org_id)
    if not include_inactive:
        q = q.filter_by(is_active=True)
    return q.order_by(EndUser.last_name, EndUser.first_name).all()


def clean_email(value) -> str | None:
    """Normalize an optional email address; blank means none."""
    email = (value or "").strip()
    if not email:
        return None
    try:
        return validate_email(email, check_deliverability=False).normalized.lower()
    except EmailNotValidError as e:
        raise ValidationError(f"Invalid email: {e}", details={"email": email})


def _clean_legacy_role(value) -> str:
    value = (value or "STAFF").upper()
    if value not in LEGACY_USER_ROLES:
        raise ValidationError(
            f"Invalid role label '{value}'", details={"role": f"one of {', '.join(LEGACY_USER_ROLES)}"}
        )
    return value


def create_user(org_id: int, data: dict) -> EndUser:
    errors = {}
    username = (data.get("username") or "").strip().lower()
    if not username:
        errors["username"] = "required"
    for field in ("firstName", "lastName"):
        if not (data.get(field) or "").strip():
            errors[field] = "required"
    password = data.get("password") or ""
    if len(password) < MIN_PASSWORD_LENGTH:
        errors["password"] = f"must be at least {MIN_PASSWORD_LENGTH} characters"
    if errors:
        raise ValidationError("Invalid user payload", details=errors)
    email = clean_email(data.get("email"))
    role = _clean_legacy_role(data.get("role"))

    if EndUser.query_for_org(org_id).filter(func.lower(EndUser.username) == username).first():
        raise ConflictError(f"Username '{username}' is already taken", details={"username": username})

    user = EndUser(
        organization_id=org_id,
        username=username,
        email=email,
        password_hash=hash_password(password),
        first_name=data["firstName"].strip(),
        last_name=data["lastName"].strip(),
        role=role,
        is_active=bool(data.get("isActive", True)),
    )
    db.session.add(user)
    db.session.commit()
    logger.info("Created user '%s' (id=%d) in org %d", username, user.id, org_id)
    return user


def update_user(org_id: int, user_id, data: dict) -> EndUser:
    user = get_user(org_id, user_id)
    password = data.get("password")
    if password and len(password) < MIN_PASSWORD_LENGTH:
        raise ValidationError(
            f"Password must be at least {MIN_PASSWORD_LENGTH} characters",
            details={"password": "too short"},
        )
    email = clean_email(data["email"]) if "email" in data else user.email
    role = _clean_legacy_role(data["role"]) if "role" in data else user.role

    if "firstName" in data:
        user.first_name = (data["firstName"] or "").strip() or user.first_name
    if "lastName" in data:
        user.last_name = (data["lastName"] or "").strip() or user.last_name
    user.email = email
    user.role = role
    if password:
        user.password_hash = hash_password(password)
    active_changed = "isActive" in data and bool(data["isActive"]) != user.is_active
    if "isActive" in data:
        user.is_active = bool(data["isActive"])
    db.session.commit()
    if active_changed:
        invalidate_cache(user.id)
    return user


# ═══════════════════════════════════════════════════════════════
# Role assignments
# ═══════════════════════════════════════════════════════════════

def list_user_roles(org_id: int, user_id) -> list[dict]:
    user = get_user(org_id, user_id)
    return [ur.to_dict() for ur in user.role_assignments.order_by(UserRole.id).all()]


def _resolve_assignments(org_id: int, entries) -> list[tuple[int, int | None, int | None]]:
    """Validate ``[{roleId, siteId?, areaId?}]`` into unique (role, site, area) triples.

    Roles outside the organization are skipped; unknown sites/areas and
    site+area combinations are rejected.
    """
    if not isinstance(entries, list):
        raise ValidationError("roles must be a list", details={"roles": "list expected"})

    triples: list[tuple[int, int | None, int | None]] = []
    seen = set()
    for idx, entry in enumerate(entries):
        if not isinstance(entry, dict):
            raise ValidationError("Invalid role assignment", details={f"roles[{idx}]": entry})
        role_id = as_int(entry.get("roleId"))
        site_id = as_int(entry.get("siteId"))
        area_id = as_int(entry.get("areaId"))
        if role_id is None or Role.get_for_org(org_id, role_id) is None:
            logger.warning("Skipping role %r outside org %d", entry.get("roleId"), org_id)
            continue
        if site_id is not None and area_id is not None:
            raise ValidationError(
                "An assignment is bound to a site or an area, not both",
                details={f"roles[{idx}]": entry},
            )
        if site_id is not None and Site.get_for_org(org_id, site_id) is None:
            raise ValidationError("Unknown site", details={f"roles[{idx}].siteId": site_id})
        if area_id is not None and Area.get_for_org(org_id, area_id) is None:
            raise ValidationError("Unknown area", details={f"roles[{idx}].areaId": area_id})
        triple = (role_id, site_id, area_id)
        if triple not in seen:
            seen.add(triple)
            triples.append(triple)
    return triples


def replace_user_roles(org_id: int, user_id, entries, actor_id: int | None = None) -> list[dict]:
    """Atomically replace every role assignment of a user."""
    user = get_user(org_id, user_id)
    triples = _resolve_assignments(org_id, entries)

    before = [
        {"roleId": ur.role_id, "siteId": ur.site_id, "areaId": ur.area_id}
        for ur in user.role_assignments.all()
    ]
    UserRole.query.filter_by(user_id=user.id).delete(synchronize_session="fetch")
    for role_id, site_id, area_id in triples:
        db.session.add(UserRole(
            user_id=user.id,
            role_id=role_id,
            site_id=site_id,
            area_id=area_id,
            assigned_by=actor_id,
        ))

    write_audit(
        organization_id=org_id,
        entity_type="user",
        entity_id=user.id,
        action="user_roles_replaced",
        actor_user_id=actor_id,
        diff={
            "old": before,
            "new": [{"roleId": r, "siteId": s, "areaId": a} for r, s, a in triples],
        },
    )
    db.session.commit()
    invalidate_cache(user.id)
    logger.info("Replaced role assignments of user %d (%d assignment(s))", user.id, len(triples))
    return list_user_roles(org_id, user.id)


def remove_user_role(org_id: int, user_id, role_id, actor_id: int | None = None) -> int:
    """Remove every assignment of one role from a user.  Returns rows removed."""
    user = get_user(org_id, user_id)
    role_id = as_int(role_id)
    removed = UserRole.query.filter_by(user_id=user.id, role_id=role_id).delete(
        synchronize_session="fetch"
    )
    if not removed:
        raise NotFoundError("Role assignment", role_id)

    write_audit(
        organization_id=org_id,
        entity_type="user",
        entity_id=user.id,
        action="user_role_removed",
        actor_user_id=actor_id,
        diff={"roleId": role_id, "removed": removed},
    )
    db.session.commit()
    invalidate_cache(user.id)
    return removed


# ═══════════════════════════════════════════════════════════════
# Access grants (sites / areas / categories)
# ═══════════════════════════════════════════════════════════════

def _load_owned(model, org_id: int, ids, field: str) -> list:
    if ids is None:
        return []
    if not isinstance(ids, list):
        raise ValidationError(f"{field} must be a list", details={field: "list expected"})
    wanted = []
    for raw in ids:
        pk = as_int(raw)
        if pk is None:
            raise ValidationError(f"Invalid id in {field}", details={field: raw})
        if pk not in wanted:
            wanted.append(pk)
    rows = model.query_for_org(org_id).filter(model.id.in_(wanted)).all() if wanted else []
    missing = sorted(set(wanted) - {r.id for r in rows})
    if missing:
        raise ValidationError(f"Unknown ids in {field}", details={field: missing})
    return rows


def replace_user_access(org_id: int, user_id, data: dict, actor_id: int | None = None) -> EndUser:
    """Replace the user's site/area/category visibility grants."""
    user = get_user(org_id, user_id)
    sites = _load_owned(Site, org_id, data.get("siteIds"), "siteIds")
    areas = _load_owned(Area, org_id, data.get("areaIds"), "areaIds")
    categories = _load_owned(Category, org_id, data.get("categoryIds"), "categoryIds")

    user.sites = sites
    user.areas = areas
    user.categories = categories

    write_audit(
        organization_id=org_id,
        entity_type="user",
        entity_id=user.id,
        action="user_access_replaced",
        actor_user_id=actor_id,
        diff={
            "siteIds": [s.id for s in sites],
            "areaIds": [a.id for a in areas],
            "categoryIds": [c.id for c in categories],
        },
    )
    db.session.commit()
    return user


# ═══════════════════════════════════════════════════════════════
# Role matrix
# ═══════════════════════════════════════════════════════════════

def site_layout(org_id: int) -> dict[int, list[int]]:
    """``{site_id: [area_id, ...]}`` for active sites and areas."""
    layout: dict[int, list[int]] = {}
    for site in Site.query_for_org(org_id).filter_by(is_active=True).order_by(Site.id).all():
        layout[site.id] = sorted(a.id for a in site.areas if a.is_active)
    return layout


def get_role_matrix(org_id: int, user_id) -> dict:
    user = get_user(org_id, user_id)
    layout = site_layout(org_id)
    role_ids = [r.id for r in Role.query_for_org(org_id).order_by(Role.id).all()]
    assignments = [
        {"roleId": ur.role_id, "siteId": ur.site_id, "areaId": ur.area_id}
        for ur in user.role_assignments.all()
    ]
    matrix = role_matrix.build_matrix(role_ids, layout, assignments)
    return {
        "matrix": matrix,
        "impliedSiteGrants": {
            rid: role_matrix.implied_site_grants(row, layout) for rid, row in matrix.items()
        },
        "locations": role_matrix.location_keys(layout),
        "sites": {str(k): v for k, v in layout.items()},
    }


def toggle_role_matrix(org_id: int, matrix: dict, role_id, location_key: str) -> dict:
    """Apply one editor click to a client-held matrix.  Nothing is persisted."""
    role = Role.get_for_org(org_id, as_int(role_id))
    if role is None:
        raise NotFoundError("Role", role_id)
    try:
        current = role_matrix.matrix_from_json(matrix)
    except (TypeError, ValueError) as exc:
        raise ValidationError("Invalid role matrix", details={"matrix": str(exc)}) from exc
    try:
        return role_matrix.toggle_assignment(current, role.id, location_key, site_layout(org_id))
    except (TypeError, ValueError) as exc:
        raise ValidationError(str(exc), details={"locationKey": location_key}) from exc


def save_role_matrix(org_id: int, user_id, matrix: dict, actor_id: int | None = None) -> list[dict]:
    """Flatten the matrix and replace the user's assignments with it."""
    try:
        flat = role_matrix.flatten_matrix(role_matrix.matrix_from_json(matrix))
    except (TypeError, ValueError) as exc:
        raise ValidationError("Invalid role matrix", details={"matrix": str(exc)}) from exc
    return replace_user_roles(org_id, user_id, flat, actor_id=actor_id)
