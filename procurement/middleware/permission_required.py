"""
Permission Decorators - JWT-aware RBAC decorators for route protection.

Usage:
    @roles_bp.route("/roles", methods=["POST"])
    @require_permission(Perm.CREATE_ROLES)
    def create_role():
        ...

    @reference_bp.route("/sites", methods=["GET"])
    @require_any_permission(Perm.VIEW_SITES, Perm.SUBMIT_REQUESTS)
    def list_sites():
        ...

Decorated views run only for an authenticated user (``g.current_user`` set
by the org context middleware); anonymous calls get 401.  These checks use
no location context, so any assignment of the user counts; views that act
on a located resource re-check at that resource's site and area.
"""

import functools
import logging

from flask import g

from procurement.services.permission_service import has_any_permission, has_permission
from procurement.utils.errors import E, api_error

logger = logging.getLogger(__name__)


def _unauthenticated():
    return api_error(E.UNAUTHORIZED, "Authentication required")


def login_required(f):
    @functools.wraps(f)
    def decorated(*args, **kwargs):
        if getattr(g, "current_user", None) is None:
            return _unauthenticated()
        return f(*args, **kwargs)
    return decorated


def require_permission(full_name: str):
    """
    Decorator: require the JWT user to hold a specific permission.

    Super admins pass every check.
    """
    def decorator(f):
        @functools.wraps(f)
        def decorated(*args, **kwargs):
            user = getattr(g, "current_user", None)
            if user is None:
                return _unauthenticated()

            if not has_permission(user.id, full_name):
                logger.warning(
                    "User %d denied: missing permission '%s' on %s",
                    user.id, full_name, f.__name__,
                    extra={"organization_id": user.organization_id, "user_id": user.id},
                )
                return api_error(
                    E.INSUFFICIENT_PERMISSIONS, "Insufficient permissions",
                    details={"required": full_name},
                )
            return f(*args, **kwargs)
        return decorated
    return decorator


def require_any_permission(*full_names: str):
    """
    Decorator: require the JWT user to hold at least ONE of the listed permissions.
    """
    def decorator(f):
        @functools.wraps(f)
        def decorated(*args, **kwargs):
            user = getattr(g, "current_user", None)
            if user is None:
                return _unauthenticated()

            if not has_any_permission(user.id, list(full_names)):
                logger.warning(
                    "User %d denied: missing any of %s on %s",
                    user.id, full_names, f.__name__,
                    extra={"organization_id": user.organization_id, "user_id": user.id},
                )
                return api_error(
                    E.INSUFFICIENT_PERMISSIONS, "Insufficient permissions",
                    details={"requiredAny": list(full_names)},
                )
            return f(*args, **kwargs)
        return decorated
    return decorator
