"""
Organization Context Middleware - loads the caller's organization and user.

Chain order:
  jwt_auth.py  →  org_context.py  →  route handler

When a JWT is present this hook verifies that the organization exists and
is active and that the user belongs to it and is active, then exposes
``g.organization`` and ``g.current_user``.  All downstream queries filter by
``g.jwt_org_id``.
"""

import logging

from flask import g, request

from procurement.models import db
from procurement.models.auth import Organization
from procurement.services.user_service import get_active_user
from procurement.utils.errors import E, api_error

logger = logging.getLogger(__name__)


def init_org_context(app):
    """Register organization context middleware as a before_request hook."""

    @app.before_request
    def _org_context():
        g.organization = None
        g.current_user = None

        org_id = getattr(g, "jwt_org_id", None)
        if org_id is None or not request.path.startswith("/api/v1/"):
            return None

        org = db.session.get(Organization, org_id)
        if org is None or not org.is_active:
            logger.warning("Token for unknown or inactive organization %s", org_id,
                           extra={"organization_id": org_id})
            return api_error(E.UNAUTHORIZED, "Organization is not active")

        user = get_active_user(org_id, g.jwt_user_id)
        if user is None:
            logger.warning("Token for unknown or inactive user %s", g.jwt_user_id,
                           extra={"organization_id": org_id, "user_id": g.jwt_user_id})
            return api_error(E.UNAUTHORIZED, "User account is not active")

        g.organization = org
        g.current_user = user
        return None
