"""
Permission Service - location-aware DB-driven RBAC with cache.

Location hierarchy:
  org-wide  >  site-{id}  >  area-{id}

Evaluation is deterministic, additive and deny-by-default:
  - with no location context every role assignment counts
  - with a context an assignment counts when it is org-wide, bound to the
    queried site (with no area), or bound to the queried area
  - an area grant never counts at its parent site or a sibling area, and a
    site grant never counts at another site
  - ``system.full_admin_access`` passes every check
"""

import logging
import threading
import time
from typing import Optional

from flask import current_app, has_app_context
from sqlalchemy.exc import SQLAlchemyError

from procurement.core.permissions import SUPER_ADMIN_PERMISSION
from procurement.models import db
from procurement.models.auth import EndUser, Permission, RolePermission, UserRole

logger = logging.getLogger(__name__)

CACHE_TTL = 300  # 5 minutes

ORG_WIDE_KEY = "org-wide"

# Cache key: (user_id, site_id, area_id)
_permission_cache: dict[tuple[int, int | None, int | None], tuple[float, frozenset[str]]] = {}
_cache_lock = threading.Lock()


# ═══════════════════════════════════════════════════════════════
# Location keys
# ═══════════════════════════════════════════════════════════════

def location_key(site_id: int | None = None, area_id: int | None = None) -> str:
    """Return the location key of a single assignment."""
    if area_id is not None:
        return f"area-{area_id}"
    if site_id is not None:
        return f"site-{site_id}"
    return ORG_WIDE_KEY


def parse_location_key(key: str) -> tuple[int | None, int | None]:
    """Inverse of ``location_key``: returns ``(site_id, area_id)``."""
    if key == ORG_WIDE_KEY:
        return None, None
    kind, _, raw_id = key.partition("-")
    try:
        ident = int(raw_id)
    except ValueError:
        raise ValueError(f"Invalid location key: {key!r}") from None
    if kind == "site":
        return ident, None
    if kind == "area":
        return None, ident
    raise ValueError(f"Invalid location key: {key!r}")


def covering_location_keys(site_id: int | None = None, area_id: int | None = None) -> set[str]:
    """Location keys whose grants apply to the given context."""
    keys = {ORG_WIDE_KEY}
    if site_id is not None:
        keys.add(f"site-{site_id}")
    if area_id is not None:
        keys.add(f"area-{area_id}")
    return keys


def assignment_matches_context(
    *,
    assignment_site_id: int | None,
    assignment_area_id: int | None,
    site_id: int | None,
    area_id: int | None,
) -> bool:
    # No requested context: include all assignments.
    if site_id is None and area_id is None:
        return True
    key = location_key(assignment_site_id, assignment_area_id)
    return key in covering_location_keys(site_id, area_id)


# ═══════════════════════════════════════════════════════════════
# Cache
# ═══════════════════════════════════════════════════════════════

def _cache_ttl() -> int:
    if has_app_context():
        return current_app.config.get("PERMISSION_CACHE_TTL", CACHE_TTL)
    return CACHE_TTL


def _get_cached(key: tuple[int, int | None, int | None]) -> Optional[frozenset[str]]:
    with _cache_lock:
        entry = _permission_cache.get(key)
        if entry is None:
            return None
        cached_at, perms = entry
        if time.time() - cached_at > _cache_ttl():
            del _permission_cache[key]
            return None
        return perms


def _set_cached(key: tuple[int, int | None, int | None], perms: frozenset[str]) -> None:
    with _cache_lock:
        _permission_cache[key] = (time.time(), perms)


def invalidate_cache(user_id: int) -> None:
    with _cache_lock:
        keys = [k for k in _permission_cache if k[0] == user_id]
        for k in keys:
            _permission_cache.pop(k, None)


def invalidate_all_cache() -> None:
    with _cache_lock:
        _permission_cache.clear()


# ═══════════════════════════════════════════════════════════════
# Resolution
# ═══════════════════════════════════════════════════════════════

def _matching_role_ids(
    user_id: int,
    site_id: int | None = None,
    area_id: int | None = None,
) -> list[int]:
    user = db.session.get(EndUser, user_id)
    if user is None or not user.is_active:
        return []

    rows = (
        db.session.query(UserRole.role_id, UserRole.site_id, UserRole.area_id)
        .filter(UserRole.user_id == user_id)
        .all()
    )
    return sorted({
        role_id
        for role_id, ur_site_id, ur_area_id in rows
        if assignment_matches_context(
            assignment_site_id=ur_site_id,
            assignment_area_id=ur_area_id,
            site_id=site_id,
            area_id=area_id,
        )
    })


def _permissions_for_roles(role_ids: list[int]) -> frozenset[str]:
    if not role_ids:
        return frozenset()
    rows = (
        db.session.query(Permission.category, Permission.action)
        .join(RolePermission, RolePermission.permission_id == Permission.id)
        .filter(RolePermission.role_id.in_(role_ids))
        .distinct()
        .all()
    )
    return frozenset(f"{category}.{action}" for category, action in rows)


def get_user_permissions(
    user_id: int,
    site_id: int | None = None,
    area_id: int | None = None,
) -> frozenset[str]:
    """Effective permission set for *user_id* at the given location.

    Storage failures degrade to an empty set; the caller is denied rather
    than crashed.
    """
    key = (user_id, site_id, area_id)
    cached = _get_cached(key)
    if cached is not None:
        return cached

    try:
        perms = _permissions_for_roles(_matching_role_ids(user_id, site_id, area_id))
    except SQLAlchemyError:
        logger.exception("Permission lookup failed for user %s; denying", user_id)
        db.session.rollback()
        return frozenset()

    _set_cached(key, perms)
    return perms


def is_super_admin(user_id: int) -> bool:
    return SUPER_ADMIN_PERMISSION in get_user_permissions(user_id)


def has_permission(
    user_id: int,
    full_name: str,
    site_id: int | None = None,
    area_id: int | None = None,
) -> bool:
    if is_super_admin(user_id):
        return True
    return full_name in get_user_permissions(user_id, site_id, area_id)


def has_any_permission(
    user_id: int,
    full_names: list[str],
    site_id: int | None = None,
    area_id: int | None = None,
) -> bool:
    if is_super_admin(user_id):
        return True
    return bool(get_user_permissions(user_id, site_id, area_id) & set(full_names))


def has_all_permissions(
    user_id: int,
    full_names: list[str],
    site_id: int | None = None,
    area_id: int | None = None,
) -> bool:
    if is_super_admin(user_id):
        return True
    return set(full_names).issubset(get_user_permissions(user_id, site_id, area_id))


def evaluate_permission(
    user_id: int,
    full_name: str,
    *,
    site_id: int | None = None,
    area_id: int | None = None,
) -> dict:
    perms = get_user_permissions(user_id, site_id, area_id)
    if is_super_admin(user_id):
        decision, allowed = "allow_super_admin", True
    else:
        allowed = full_name in perms
        decision = "allow_role_grant" if allowed else "deny_by_default"
    return {
        "allowed": allowed,
        "decision": decision,
        "permission": full_name,
        "context": {
            "siteId": site_id,
            "areaId": area_id,
            "locationKeys": sorted(covering_location_keys(site_id, area_id)),
        },
    }


def user_holds_role_at(
    user_id: int,
    role_id: int,
    site_id: int | None,
    area_id: int | None,
) -> bool:
    """True when *user_id* holds *role_id* at a location covering (site, area)."""
    rows = (
        db.session.query(UserRole.site_id, UserRole.area_id)
        .filter(UserRole.user_id == user_id, UserRole.role_id == role_id)
        .all()
    )
    covering = covering_location_keys(site_id, area_id)
    return any(location_key(s, a) in covering for s, a in rows)


def locations_with_permission(user_id: int, full_name: str) -> set[str]:
    """Location keys at which *user_id* is granted *full_name* by some role.

    Super admins get ``{ORG_WIDE_KEY}``.
    """
    if is_super_admin(user_id):
        return {ORG_WIDE_KEY}
    user = db.session.get(EndUser, user_id)
    if user is None or not user.is_active:
        return set()
    category, _, action = full_name.partition(".")
    rows = (
        db.session.query(UserRole.site_id, UserRole.area_id)
        .join(RolePermission, RolePermission.role_id == UserRole.role_id)
        .join(Permission, Permission.id == RolePermission.permission_id)
        .filter(
            UserRole.user_id == user_id,
            Permission.category == category,
            Permission.action == action,
        )
        .all()
    )
    return {location_key(s, a) for s, a in rows}
