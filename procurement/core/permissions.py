"""
Permission catalogue and built-in role templates.

Every permission the platform checks is declared here as a ``Perm``
constant.  The catalogue is seeded into the ``permissions`` table and role
create/update rejects names that are not listed, so a permission string can
never silently go dead.

Usage:
    from procurement.core.permissions import Perm

    @require_permission(Perm.APPROVE_REQUESTS)
"""

from __future__ import annotations


class Perm:
    """Permission full names (``category.action``)."""

    # System
    FULL_ADMIN_ACCESS = "system.full_admin_access"

    # Requests
    SUBMIT_REQUESTS = "requests.submit_requests"
    VIEW_REQUESTS = "requests.view_requests"
    APPROVE_REQUESTS = "requests.approve_requests"
    REJECT_REQUESTS = "requests.reject_requests"
    FULFILL_REQUESTS = "requests.fulfill_requests"

    # Catalogue
    VIEW_CATALOGUE = "catalogue.view_catalogue"
    CREATE_CATALOGUE = "catalogue.create_catalogue"
    EDIT_CATALOGUE = "catalogue.edit_catalogue"

    # Sites & areas
    VIEW_SITES = "sites_areas.view_sites"
    CREATE_SITES = "sites_areas.create_sites"
    EDIT_SITES = "sites_areas.edit_sites"
    VIEW_AREAS = "sites_areas.view_areas"
    CREATE_AREAS = "sites_areas.create_areas"
    EDIT_AREAS = "sites_areas.edit_areas"

    # Users & roles
    VIEW_USERS = "users_roles.view_users"
    CREATE_USERS = "users_roles.create_users"
    EDIT_USERS = "users_roles.edit_users"
    VIEW_ROLES = "users_roles.view_roles"
    CREATE_ROLES = "users_roles.create_roles"
    EDIT_ROLES = "users_roles.edit_roles"
    DELETE_ROLES = "users_roles.delete_roles"

    # Workflows
    VIEW_WORKFLOWS = "workflows.view_workflows"
    CREATE_WORKFLOWS = "workflows.create_workflows"
    EDIT_WORKFLOWS = "workflows.edit_workflows"
    DELETE_WORKFLOWS = "workflows.delete_workflows"

    # Reports
    VIEW_REPORTS = "reports.view_reports"


SUPER_ADMIN_PERMISSION = Perm.FULL_ADMIN_ACCESS

CATEGORY_LABELS = {
    "system": "System",
    "requests": "Requests",
    "catalogue": "Catalogue",
    "sites_areas": "Sites & Areas",
    "users_roles": "Users & Roles",
    "workflows": "Workflows",
    "reports": "Reports",
}

# (full_name, description, scope)
PERMISSION_CATALOGUE: tuple[tuple[str, str, str], ...] = (
    (Perm.FULL_ADMIN_ACCESS, "Unrestricted access to every feature", "organization"),
    (Perm.SUBMIT_REQUESTS, "Submit purchase requests", "area"),
    (Perm.VIEW_REQUESTS, "View purchase requests", "area"),
    (Perm.APPROVE_REQUESTS, "Approve purchase requests", "site"),
    (Perm.REJECT_REQUESTS, "Reject purchase requests", "site"),
    (Perm.FULFILL_REQUESTS, "Mark approved requests as fulfilled", "organization"),
    (Perm.VIEW_CATALOGUE, "Browse the catalogue", "area"),
    (Perm.CREATE_CATALOGUE, "Add catalogue items and categories", "organization"),
    (Perm.EDIT_CATALOGUE, "Edit catalogue items and categories", "organization"),
    (Perm.VIEW_SITES, "View sites", "organization"),
    (Perm.CREATE_SITES, "Create sites", "organization"),
    (Perm.EDIT_SITES, "Edit sites", "organization"),
    (Perm.VIEW_AREAS, "View areas", "site"),
    (Perm.CREATE_AREAS, "Create areas", "site"),
    (Perm.EDIT_AREAS, "Edit areas", "site"),
    (Perm.VIEW_USERS, "View staff accounts", "organization"),
    (Perm.CREATE_USERS, "Create staff accounts", "organization"),
    (Perm.EDIT_USERS, "Edit staff accounts, access and role assignments", "organization"),
    (Perm.VIEW_ROLES, "View roles", "organization"),
    (Perm.CREATE_ROLES, "Create and clone roles", "organization"),
    (Perm.EDIT_ROLES, "Edit roles", "organization"),
    (Perm.DELETE_ROLES, "Delete roles", "organization"),
    (Perm.VIEW_WORKFLOWS, "View approval workflows", "organization"),
    (Perm.CREATE_WORKFLOWS, "Create and duplicate approval workflows", "organization"),
    (Perm.EDIT_WORKFLOWS, "Edit and activate approval workflows", "organization"),
    (Perm.DELETE_WORKFLOWS, "Delete approval workflows", "organization"),
    (Perm.VIEW_REPORTS, "View spend and request reports", "organization"),
)

ALL_PERMISSIONS = frozenset(name for name, _, _ in PERMISSION_CATALOGUE)


def split_full_name(full_name: str) -> tuple[str, str]:
    """Split ``category.action`` into its parts."""
    category, _, action = full_name.partition(".")
    return category, action


# ── Built-in role templates ──────────────────────────────────────────────
# Seeded as system roles for every new organization and offered by
# GET /roles/templates as starting points for custom roles.

SUPER_ADMIN_ROLE = "Super Admin"
SITE_MANAGER_ROLE = "Site Manager"
PROCUREMENT_MANAGER_ROLE = "Procurement Manager"
STAFF_ROLE = "Staff"

ROLE_TEMPLATES: tuple[dict, ...] = (
    {
        "name": SUPER_ADMIN_ROLE,
        "description": "Full administrative access to the organization",
        "scope": "organization",
        "color": "#EF4444",
        "permissions": [Perm.FULL_ADMIN_ACCESS],
    },
    {
        "name": SITE_MANAGER_ROLE,
        "description": "Approves requests raised at their site",
        "scope": "site",
        "color": "#3B82F6",
        "permissions": [
            Perm.VIEW_REQUESTS,
            Perm.APPROVE_REQUESTS,
            Perm.REJECT_REQUESTS,
            Perm.VIEW_CATALOGUE,
            Perm.VIEW_AREAS,
            Perm.VIEW_USERS,
        ],
    },
    {
        "name": PROCUREMENT_MANAGER_ROLE,
        "description": "Final approval and fulfilment of purchase requests",
        "scope": "organization",
        "color": "#F59E0B",
        "permissions": [
            Perm.VIEW_REQUESTS,
            Perm.APPROVE_REQUESTS,
            Perm.REJECT_REQUESTS,
            Perm.FULFILL_REQUESTS,
            Perm.VIEW_CATALOGUE,
            Perm.CREATE_CATALOGUE,
            Perm.EDIT_CATALOGUE,
            Perm.VIEW_SITES,
            Perm.VIEW_REPORTS,
        ],
    },
    {
        "name": STAFF_ROLE,
        "description": "Browses the catalogue and submits requests",
        "scope": "area",
        "color": "#10B981",
        "permissions": [
            Perm.SUBMIT_REQUESTS,
            Perm.VIEW_REQUESTS,
            Perm.VIEW_CATALOGUE,
        ],
    },
)
