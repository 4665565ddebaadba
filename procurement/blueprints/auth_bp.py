"""
Auth Blueprint - organization sign-up and JWT login.

Endpoints:
  POST /api/v1/auth/register    - Create organization + first admin → access token
  POST /api/v1/auth/login       - Username (or email) + password → access token
  GET  /api/v1/auth/me          - Current user profile with effective permissions
"""

import logging

from flask import Blueprint, g, request

from procurement.core.exceptions import AuthenticationError, ValidationError
from procurement.middleware.permission_required import login_required
from procurement.services.jwt_service import token_response
from procurement.services.organization_service import (
    get_organization_by_slug,
    register_organization,
)
from procurement.services.permission_service import get_user_permissions, is_super_admin
from procurement.services.user_service import authenticate_user
from procurement.utils.errors import api_ok

logger = logging.getLogger(__name__)

auth_bp = Blueprint("auth", __name__, url_prefix="/api/v1/auth")


def _session_payload(org, user) -> dict:
    return {
        **token_response(user.id, org.id),
        "organization": org.to_dict(),
        "user": user.to_dict(),
    }


# ═══════════════════════════════════════════════════════════════
# POST /api/v1/auth/register
# ═══════════════════════════════════════════════════════════════
@auth_bp.route("/register", methods=["POST"])
def register():
    """
    Body: { "organizationName", "slug"?, "username", "password",
            "firstName", "lastName", "email"? }
    """
    data = request.get_json(silent=True) or {}
    org, admin = register_organization(
        organization_name=data.get("organizationName", ""),
        slug=data.get("slug"),
        username=data.get("username", ""),
        password=data.get("password", ""),
        first_name=data.get("firstName", ""),
        last_name=data.get("lastName", ""),
        email=data.get("email"),
    )
    return api_ok(_session_payload(org, admin), status=201)


# ═══════════════════════════════════════════════════════════════
# POST /api/v1/auth/login
# ═══════════════════════════════════════════════════════════════
@auth_bp.route("/login", methods=["POST"])
def login():
    """
    Body: { "organization": "<slug>", "username": "...", "password": "..." }
    """
    data = request.get_json(silent=True) or {}
    slug = (data.get("organization") or "").strip()
    username = (data.get("username") or "").strip()
    password = data.get("password") or ""
    if not slug or not username or not password:
        raise ValidationError(
            "organization, username and password are required",
            details={k: "required" for k, v in
                     (("organization", slug), ("username", username), ("password", password)) if not v},
        )

    org = get_organization_by_slug(slug)
    if org is None:
        logger.info("Login for unknown organization '%s'", slug, extra={"remote_addr": request.remote_addr})
        raise AuthenticationError("Invalid username or password")

    try:
        user = authenticate_user(org.id, username, password)
    except AuthenticationError:
        logger.warning("Failed login for '%s'", username,
                       extra={"organization_id": org.id, "remote_addr": request.remote_addr})
        raise

    logger.info("User %d logged in", user.id, extra={"organization_id": org.id, "user_id": user.id})
    return api_ok(_session_payload(org, user))


# ═══════════════════════════════════════════════════════════════
# GET /api/v1/auth/me
# ═══════════════════════════════════════════════════════════════
@auth_bp.route("/me", methods=["GET"])
@login_required
def me():
    user = g.current_user
    data = user.to_dict()
    data["roles"] = [ur.to_dict() for ur in user.role_assignments.all()]
    data["permissions"] = sorted(get_user_permissions(user.id))
    data["isSuperAdmin"] = is_super_admin(user.id)
    data["organization"] = g.organization.to_dict()
    return api_ok(data)
