"""
Organization Service - sign-up and per-organization defaults.

Registering an organization:
  1. seeds the global permission catalogue (idempotent)
  2. creates the organization
  3. seeds the built-in system roles
  4. seeds the default "Standard Request Approval" workflow
  5. creates the first admin account with an org-wide Super Admin assignment
"""

import logging
import re

from procurement.core.exceptions import ConflictError, ValidationError
from procurement.core.permissions import (
    PERMISSION_CATALOGUE,
    ROLE_TEMPLATES,
    SUPER_ADMIN_ROLE,
    split_full_name,
)
from procurement.models import db
from procurement.models.auth import (
    EndUser,
    Organization,
    Permission,
    Role,
    RolePermission,
    UserRole,
)
from procurement.services.user_service import clean_email
from procurement.services.workflow_service import seed_default_workflow
from procurement.utils.crypto import hash_password

logger = logging.getLogger(__name__)

MIN_PASSWORD_LENGTH = 8


def slugify(name: str) -> str:
    slug = re.sub(r"[^a-z0-9]+", "-", name.strip().lower()).strip("-")
    return slug or "org"


def seed_permission_catalogue() -> int:
    """Insert any catalogue permission missing from the table.  Returns rows added."""
    existing = {
        (p.category, p.action) for p in Permission.query.all()
    }
    added = 0
    for full_name, description, scope in PERMISSION_CATALOGUE:
        category, action = split_full_name(full_name)
        if (category, action) in existing:
            continue
        db.session.add(Permission(
            category=category, action=action, description=description, scope=scope,
        ))
        added += 1
    if added:
        db.session.flush()
        logger.info("Seeded %d permissions", added)
    return added


def permissions_by_name(full_names) -> dict[str, Permission]:
    """Map full names to Permission rows (unknown names are absent)."""
    wanted = set(full_names)
    return {
        p.full_name: p for p in Permission.query.all() if p.full_name in wanted
    }


def seed_system_roles(org_id: int) -> dict[str, Role]:
    """Create the built-in roles for an organization.  Idempotent."""
    roles = {}
    for template in ROLE_TEMPLATES:
        role = Role.query_for_org(org_id).filter_by(name=template["name"]).first()
        if role is None:
            role = Role(
                organization_id=org_id,
                name=template["name"],
                description=template["description"],
                scope=template["scope"],
                color=template["color"],
                is_system=True,
            )
            db.session.add(role)
            db.session.flush()
            for perm in permissions_by_name(template["permissions"]).values():
                db.session.add(RolePermission(role_id=role.id, permission_id=perm.id))
        roles[role.name] = role
    db.session.flush()
    return roles


def register_organization(
    *,
    organization_name: str,
    username: str,
    password: str,
    first_name: str,
    last_name: str,
    email: str | None = None,
    slug: str | None = None,
) -> tuple[Organization, EndUser]:
    """Create an organization with its defaults and first admin."""
    errors = {}
    if not organization_name or not organization_name.strip():
        errors["organizationName"] = "required"
    if not username or not username.strip():
        errors["username"] = "required"
    if not first_name or not last_name:
        errors["name"] = "firstName and lastName are required"
    if not password or len(password) < MIN_PASSWORD_LENGTH:
        errors["password"] = f"must be at least {MIN_PASSWORD_LENGTH} characters"
    if errors:
        raise ValidationError("Invalid registration payload", details=errors)

    email = clean_email(email)
    slug = slugify(slug or organization_name)
    if Organization.query.filter_by(slug=slug).first():
        raise ConflictError(f"Organization '{slug}' already exists", details={"slug": slug})

    seed_permission_catalogue()

    org = Organization(name=organization_name.strip(), slug=slug, settings={})
    db.session.add(org)
    db.session.flush()

    roles = seed_system_roles(org.id)
    seed_default_workflow(org.id)

    admin = EndUser(
        organization_id=org.id,
        username=username.strip().lower(),
        email=email,
        password_hash=hash_password(password),
        first_name=first_name.strip(),
        last_name=last_name.strip(),
        role="ADMIN",
    )
    db.session.add(admin)
    db.session.flush()
    db.session.add(UserRole(user_id=admin.id, role_id=roles[SUPER_ADMIN_ROLE].id))

    db.session.commit()
    logger.info("Registered organization '%s' (id=%d) with admin %s", slug, org.id, admin.username)
    return org, admin


def get_organization_by_slug(slug: str) -> Organization | None:
    return Organization.query.filter_by(slug=(slug or "").strip().lower(), is_active=True).first()
